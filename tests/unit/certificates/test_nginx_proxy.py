"""
Tests unitaires pour NginxReverseProxy

Validation de la candidate hors live, archive, swap atomique, restauration
sur échec du reload.
"""

import pytest

from conftest import ScriptedRunner, failed, ok
from src.certificates.interfaces import ProxyConfiguration, ProxyMode
from src.certificates.nginx_proxy import NginxReverseProxy, ProxyApplyError, ProxyValidationError
from src.runtime.command_runner import CommandTimeoutError

PRODUCTION = ProxyConfiguration(mode=ProxyMode.PRODUCTION, content="server { listen 443 ssl; }\n")
CHALLENGE = ProxyConfiguration(mode=ProxyMode.CHALLENGE, content="server { listen 80; }\n")


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "conf.d" / "stack.conf"


def make_proxy(config_path, logger, runner) -> NginxReverseProxy:
    return NginxReverseProxy(config_path, config_path.parent.parent / "archive", logger, runner=runner)


class TestValidate:
    """Validation de la candidate."""

    @pytest.mark.asyncio
    async def test_candidate_validated_then_removed(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        runner = ScriptedRunner()

        await make_proxy(config_path, logger, runner).validate(PRODUCTION)

        argv = runner.calls[0]
        assert argv[:3] == ["nginx", "-t", "-c"]
        assert argv[3].endswith(".stack.conf.candidate")
        assert not any(config_path.parent.glob(".*candidate"))
        assert not config_path.exists()

    @pytest.mark.asyncio
    async def test_rejected_candidate(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text("live\n", encoding="utf-8")
        runner = ScriptedRunner([failed("nginx: [emerg] unknown directive")])

        with pytest.raises(ProxyValidationError) as exc_info:
            await make_proxy(config_path, logger, runner).validate(PRODUCTION)

        assert "[emerg]" in exc_info.value.output
        assert config_path.read_text(encoding="utf-8") == "live\n"

    @pytest.mark.asyncio
    async def test_validation_timeout(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        runner = ScriptedRunner([CommandTimeoutError(["nginx", "-t"], 30)])

        with pytest.raises(ProxyValidationError, match="timed out"):
            await make_proxy(config_path, logger, runner).validate(CHALLENGE)

    @pytest.mark.asyncio
    async def test_missing_directory(self, config_path, logger) -> None:
        with pytest.raises(ProxyValidationError, match="Cannot stage"):
            await make_proxy(config_path, logger, ScriptedRunner()).validate(CHALLENGE)


class TestApply:
    """Swap atomique et reload."""

    @pytest.mark.asyncio
    async def test_first_apply(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        runner = ScriptedRunner()
        proxy = make_proxy(config_path, logger, runner)

        archived = await proxy.apply(CHALLENGE)

        assert archived is None
        assert await proxy.current() == CHALLENGE.content
        assert runner.calls[-1] == ["nginx", "-s", "reload"]

    @pytest.mark.asyncio
    async def test_previous_config_archived(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text(CHALLENGE.content, encoding="utf-8")
        proxy = make_proxy(config_path, logger, ScriptedRunner())

        archived = await proxy.apply(PRODUCTION)

        assert archived.read_text(encoding="utf-8") == CHALLENGE.content
        assert archived.name.startswith("stack.conf.")
        assert config_path.read_text(encoding="utf-8") == PRODUCTION.content

    @pytest.mark.asyncio
    async def test_invalid_candidate_never_applied(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text(CHALLENGE.content, encoding="utf-8")
        runner = ScriptedRunner([failed("emerg")])

        with pytest.raises(ProxyValidationError):
            await make_proxy(config_path, logger, runner).apply(PRODUCTION)

        assert config_path.read_text(encoding="utf-8") == CHALLENGE.content
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_reload_failure_restores_previous(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_bytes(CHALLENGE.content.encode("utf-8"))
        runner = ScriptedRunner([ok(), failed("reload boom"), ok()])

        with pytest.raises(ProxyApplyError, match="reload boom"):
            await make_proxy(config_path, logger, runner).apply(PRODUCTION)

        assert config_path.read_bytes() == CHALLENGE.content.encode("utf-8")
        assert len(runner.calls) == 3

    @pytest.mark.asyncio
    async def test_reload_failure_without_previous_removes_file(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        runner = ScriptedRunner([ok(), failed("reload boom"), ok()])

        with pytest.raises(ProxyApplyError):
            await make_proxy(config_path, logger, runner).apply(CHALLENGE)

        assert not config_path.exists()

    @pytest.mark.asyncio
    async def test_archive_failure_leaves_live_untouched(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text(CHALLENGE.content, encoding="utf-8")
        (config_path.parent.parent / "archive").write_text("not a directory")
        runner = ScriptedRunner()

        with pytest.raises(ProxyApplyError, match="Cannot archive"):
            await make_proxy(config_path, logger, runner).apply(PRODUCTION)

        assert config_path.read_text(encoding="utf-8") == CHALLENGE.content
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_reload_not_executable_restores_previous(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_bytes(CHALLENGE.content.encode("utf-8"))
        runner = ScriptedRunner([ok(), PermissionError(13, "Permission denied"), ok()])

        with pytest.raises(ProxyApplyError, match="Permission denied"):
            await make_proxy(config_path, logger, runner).apply(PRODUCTION)

        assert config_path.read_bytes() == CHALLENGE.content.encode("utf-8")

    @pytest.mark.asyncio
    async def test_custom_commands(self, config_path, logger) -> None:
        config_path.parent.mkdir(parents=True)
        runner = ScriptedRunner()
        proxy = NginxReverseProxy(
            config_path,
            config_path.parent / "archive",
            logger,
            runner=runner,
            validate_command="docker compose exec -T nginx nginx -t -c {path}",
            reload_command="docker compose exec -T nginx nginx -s reload",
        )

        await proxy.apply(CHALLENGE)

        assert runner.calls[0][:4] == ["docker", "compose", "exec", "-T"]
        assert runner.calls[1][-2:] == ["-s", "reload"]
