"""
Tests unitaires pour PidLock
"""

import os

import psutil
import pytest

from src.certificates.pid_lock import LockHeldError, PidLock


def dead_pid() -> int:
    pid = 4_000_000
    while psutil.pid_exists(pid):
        pid += 1
    return pid


class TestPidLock:
    def test_acquire_writes_pid(self, tmp_path) -> None:
        path = tmp_path / "run" / "stack.lock"

        with PidLock(path) as lock:
            assert lock.held
            assert path.read_text() == str(os.getpid())

        assert not path.exists()
        assert not lock.held

    def test_held_by_live_process(self, tmp_path) -> None:
        path = tmp_path / "stack.lock"
        path.write_text(str(os.getpid()))

        with pytest.raises(LockHeldError) as exc_info:
            PidLock(path).acquire()

        assert exc_info.value.pid == os.getpid()
        assert path.exists()

    def test_stale_lock_reclaimed(self, tmp_path, logger) -> None:
        path = tmp_path / "stack.lock"
        path.write_text(str(dead_pid()))

        with PidLock(path, logger=logger):
            assert path.read_text() == str(os.getpid())

        assert any(e.message == "Removing stale lock" for e in logger.get_entries())

    def test_unparsable_lock_treated_as_held(self, tmp_path) -> None:
        path = tmp_path / "stack.lock"
        path.write_text("not-a-pid")

        with pytest.raises(LockHeldError) as exc_info:
            PidLock(path).acquire()

        assert exc_info.value.pid is None
        assert path.read_text() == "not-a-pid"

    def test_empty_lock_of_writing_contender_treated_as_held(self, tmp_path) -> None:
        path = tmp_path / "stack.lock"
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        try:
            lock = PidLock(path)
            with pytest.raises(LockHeldError):
                lock.acquire()
            assert not lock.held
            assert path.exists()
        finally:
            os.close(fd)

    def test_second_contender_refused(self, tmp_path) -> None:
        path = tmp_path / "stack.lock"

        with PidLock(path):
            with pytest.raises(LockHeldError) as exc_info:
                PidLock(path).acquire()

        assert exc_info.value.pid == os.getpid()

    def test_no_temporary_file_left(self, tmp_path) -> None:
        path = tmp_path / "stack.lock"
        path.write_text(str(dead_pid()))

        with PidLock(path):
            assert not list(tmp_path.glob(".*.tmp"))

    def test_custom_held_error(self, tmp_path) -> None:
        class BusyError(Exception):
            def __init__(self, path, pid):
                super().__init__(f"{path} {pid}")

        path = tmp_path / "stack.lock"
        path.write_text(str(os.getpid()))

        with pytest.raises(BusyError):
            PidLock(path, held_error=BusyError).acquire()

    def test_released_on_exception(self, tmp_path) -> None:
        path = tmp_path / "stack.lock"

        with pytest.raises(RuntimeError):
            with PidLock(path):
                raise RuntimeError("boom")

        assert not path.exists()

    def test_release_without_acquire(self, tmp_path) -> None:
        path = tmp_path / "stack.lock"
        path.write_text("123")

        PidLock(path).release()

        assert path.exists()
