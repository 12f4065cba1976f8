"""
STACKCTL - Certificates - PID Lock

Verrou fichier mono-écrivain contenant le PID du détenteur. Le fichier est
publié par `os.link` d'un fichier temporaire déjà rempli: il n'existe jamais
vide. Un verrou dont le process n'existe plus est repris sous `flock` d'un
fichier de garde, un seul contendant à la fois.
"""

import fcntl
import os
from pathlib import Path
from typing import Optional, Type

import psutil

from src.logging.structured_logger import StructuredLogger


class LockHeldError(Exception):
    """Verrou détenu par un process vivant."""

    def __init__(self, path: Path, pid: Optional[int]):
        self.path = Path(path)
        self.pid = pid
        super().__init__(f"Lock {path} is held by process {pid}")


class PidLock:
    """
    Verrou exclusif par lien atomique.

    Usage:
        with PidLock(path, held_error=CutoverLockedError):
            ...
    """

    def __init__(
        self,
        path: Path,
        held_error: Type[Exception] = LockHeldError,
        logger: Optional[StructuredLogger] = None,
        component: str = "cutover",
    ):
        self._path = Path(path)
        self._guard_path = self._path.with_name(f".{self._path.name}.guard")
        self._held_error = held_error
        self._log = logger.with_context(component=component) if logger else None
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """
        Prend le verrou.

        Un fichier de verrou illisible ou sans PID valide est considéré détenu.

        Raises:
            held_error(path, pid): Si le verrou est détenu
            OSError: Répertoire du verrou non inscriptible
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._publish():
            self._held = True
            return

        with open(self._guard_path, "a") as guard:
            fcntl.flock(guard.fileno(), fcntl.LOCK_EX)
            try:
                # Relu sous garde: un autre contendant a pu reprendre le verrou
                if self._path.exists():
                    pid = self._read_pid()
                    if pid is None or psutil.pid_exists(pid):
                        raise self._held_error(self._path, pid)
                    if self._log:
                        self._log.warn("Removing stale lock", path=str(self._path), pid=pid)
                    self._path.unlink()
                if not self._publish():
                    raise self._held_error(self._path, self._read_pid())
            finally:
                fcntl.flock(guard.fileno(), fcntl.LOCK_UN)
        self._held = True

    def release(self) -> None:
        if self._held:
            self._path.unlink(missing_ok=True)
            self._held = False

    def _publish(self) -> bool:
        """Lie un fichier contenant notre PID sur le chemin du verrou."""
        tmp = self._path.with_name(f".{self._path.name}.{os.getpid()}.tmp")
        tmp.write_text(str(os.getpid()))
        try:
            os.link(tmp, self._path)
            return True
        except FileExistsError:
            return False
        finally:
            tmp.unlink(missing_ok=True)

    def _read_pid(self) -> Optional[int]:
        try:
            return int(self._path.read_text().strip())
        except (OSError, ValueError):
            return None

    def __enter__(self) -> "PidLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
