"""
STACKCTL - Certificates - Nginx Reverse Proxy

Validation puis swap atomique de la configuration live:
    1. La candidate est écrite dans un fichier de staging et validée
       (`nginx -t`), la configuration live n'est pas touchée
    2. La configuration courante est archivée (jamais supprimée)
    3. La candidate remplace la live par os.replace (atomique)
    4. Reload; en cas d'échec la configuration précédente est restaurée
"""

import os
import shlex
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from src.logging.structured_logger import StructuredLogger
from src.runtime.command_runner import CommandRunner, CommandTimeoutError
from src.runtime.interfaces import ICommandRunner

from .interfaces import CutoverError, IReverseProxy, ProxyConfiguration


class ProxyValidationError(CutoverError):
    """Configuration candidate rejetée par le proxy."""

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(message)


class ProxyApplyError(CutoverError):
    """Échec du swap ou du reload."""

    pass


class NginxReverseProxy(IReverseProxy):
    """Proxy nginx piloté par commandes externes."""

    def __init__(
        self,
        config_path: Path,
        archive_dir: Path,
        logger: StructuredLogger,
        runner: Optional[ICommandRunner] = None,
        validate_command: str = "nginx -t -c {path}",
        reload_command: str = "nginx -s reload",
        timeout: float = 30.0,
    ):
        """
        Args:
            config_path: Fichier de configuration live
            archive_dir: Répertoire des configurations remplacées
            logger: Logger structuré
            runner: Exécuteur de commandes
            validate_command: Commande de test, {path} = fichier candidat
            reload_command: Commande de reload
            timeout: Timeout par commande
        """
        self._config_path = Path(config_path)
        self._archive_dir = Path(archive_dir)
        self._log = logger.with_context(component="cutover")
        self._runner = runner or CommandRunner()
        self._validate_command = validate_command
        self._reload_command = reload_command
        self._timeout = timeout

    @property
    def config_path(self) -> Path:
        return self._config_path

    async def current(self) -> Optional[str]:
        if not self._config_path.is_file():
            return None
        return self._config_path.read_bytes().decode("utf-8")

    async def validate(self, config: ProxyConfiguration) -> None:
        candidate = self._config_path.with_name(f".{self._config_path.name}.candidate")
        try:
            self._write(candidate, config.content)
            argv = self._command(self._validate_command, candidate)
            try:
                result = await self._runner.run(argv, timeout=self._timeout)
            except CommandTimeoutError as e:
                raise ProxyValidationError(f"Proxy validation timed out: {e}")
            if not result.ok:
                raise ProxyValidationError(
                    f"Proxy rejected {config.mode.value} configuration", output=result.output
                )
        except OSError as e:
            raise ProxyValidationError(f"Cannot stage candidate configuration: {e}")
        finally:
            candidate.unlink(missing_ok=True)

        self._log.debug(
            "Candidate configuration valid",
            mode=config.mode.value,
            fingerprint=config.fingerprint,
        )

    async def apply(self, config: ProxyConfiguration) -> Optional[Path]:
        await self.validate(config)

        try:
            previous = await self.current()
            archived = self._archive(previous) if previous is not None else None
        except OSError as e:
            raise ProxyApplyError(f"Cannot archive {self._config_path}: {e}")

        try:
            self._swap(config.content)
        except OSError as e:
            raise ProxyApplyError(f"Cannot replace {self._config_path}: {e}")

        reload_error = await self._reload()
        if reload_error is not None:
            self._log.error("Proxy reload failed, restoring previous configuration", error=reload_error)
            try:
                self._restore(previous)
            except OSError as e:
                raise ProxyApplyError(
                    f"Proxy reload failed ({reload_error}) and previous configuration not restored: {e}"
                )
            await self._reload()
            raise ProxyApplyError(f"Proxy reload failed: {reload_error}")

        self._log.info(
            "Proxy configuration applied",
            mode=config.mode.value,
            fingerprint=config.fingerprint,
            archived=str(archived) if archived else None,
        )
        return archived

    async def _reload(self) -> Optional[str]:
        """Retourne le message d'erreur, None si le reload réussit."""
        try:
            result = await self._runner.run(
                self._command(self._reload_command, self._config_path), timeout=self._timeout
            )
        except (CommandTimeoutError, OSError) as e:
            return str(e)
        return None if result.ok else (result.output or f"exit code {result.returncode}")

    def _archive(self, content: str) -> Path:
        self._archive_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        path = self._archive_dir / f"{self._config_path.name}.{stamp}"
        self._write(path, content)
        return path

    def _swap(self, content: str) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._config_path.with_name(f".{self._config_path.name}.swap")
        self._write(staging, content)
        os.replace(staging, self._config_path)

    def _restore(self, previous: Optional[str]) -> None:
        if previous is None:
            self._config_path.unlink(missing_ok=True)
        else:
            self._swap(previous)

    @staticmethod
    def _write(path: Path, content: str) -> None:
        with open(path, "wb") as f:
            f.write(content.encode("utf-8"))
            f.flush()
            os.fsync(f.fileno())

    @staticmethod
    def _command(template: str, path: Path) -> List[str]:
        return [part.replace("{path}", str(path)) for part in shlex.split(template)]
