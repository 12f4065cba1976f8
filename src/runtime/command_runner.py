"""
STACKCTL - Runtime - Command Runner

Exécution asynchrone de commandes externes (docker, nginx, certbot) avec
capture de sortie et timeout borné.
"""

import asyncio
import os
import time
from typing import Mapping, Optional, Sequence

from .interfaces import CommandResult, ICommandRunner


class CommandTimeoutError(Exception):
    """Commande externe hors délai."""

    def __init__(self, argv: Sequence[str], timeout: float):
        self.argv = list(argv)
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout}s: {' '.join(self.argv)}")


class CommandRunner(ICommandRunner):
    """Exécute les commandes via asyncio.create_subprocess_exec (pas de shell)."""

    def __init__(self, default_timeout: Optional[float] = 120.0):
        self._default_timeout = default_timeout

    async def run(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        """
        Exécute argv et capture stdout/stderr.

        Un binaire introuvable donne returncode 127, comme un shell.

        Raises:
            CommandTimeoutError: Si la commande dépasse le timeout (le process est tué)
        """
        if not argv:
            raise ValueError("argv must not be empty")

        effective_timeout = timeout if timeout is not None else self._default_timeout
        start = time.monotonic()
        process_env = {**os.environ, **env} if env else None

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=process_env,
            )
        except FileNotFoundError:
            return CommandResult(
                argv=list(argv),
                returncode=127,
                stderr=f"{argv[0]}: command not found",
                duration=time.monotonic() - start,
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=effective_timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CommandTimeoutError(argv, effective_timeout)
        except asyncio.CancelledError:
            # Annulation externe (timeout de tentative): pas de process orphelin
            if process.returncode is None:
                process.kill()
            raise

        return CommandResult(
            argv=list(argv),
            returncode=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration=time.monotonic() - start,
        )
