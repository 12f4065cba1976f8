"""
STACKCTL - Runtime - Compose Runtime

Runtime de conteneurs adossé à la CLI `docker compose`.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .command_runner import CommandRunner
from .interfaces import (
    ContainerStatus,
    ICommandRunner,
    IContainerRuntime,
    NetworkStatus,
)


class ContainerRuntimeError(Exception):
    """Le runtime a retourné une erreur."""

    def __init__(self, operation: str, target: str, detail: str = ""):
        self.operation = operation
        self.target = target
        self.detail = detail.strip()
        message = f"{operation} failed for {target}"
        if self.detail:
            message += f": {self.detail}"
        super().__init__(message)


class ComposeRuntime(IContainerRuntime):
    """
    Pilote les services d'un fichier compose.

    Chaque service est démarré individuellement (`up -d --no-deps`): l'ordre
    est décidé par le contrôleur de tiers, pas par depends_on.
    """

    def __init__(
        self,
        compose_file: Path,
        project_name: Optional[str] = None,
        runner: Optional[ICommandRunner] = None,
        docker_binary: str = "docker",
        timeout: float = 300.0,
    ):
        self._compose_file = Path(compose_file)
        self._project_name = project_name
        self._runner = runner or CommandRunner()
        self._docker = docker_binary
        self._timeout = timeout

    def _compose(self, *args: str) -> List[str]:
        argv = [self._docker, "compose", "-f", str(self._compose_file)]
        if self._project_name:
            argv += ["-p", self._project_name]
        return argv + list(args)

    async def check_available(self) -> bool:
        result = await self._runner.run(
            [self._docker, "info", "--format", "{{.ServerVersion}}"], timeout=30.0
        )
        return result.ok

    async def start_service(self, name: str) -> None:
        result = await self._runner.run(
            self._compose("up", "-d", "--no-deps", name), timeout=self._timeout
        )
        if not result.ok:
            raise ContainerRuntimeError("start", name, result.stderr or result.stdout)

    async def get_status(self, name: str) -> str:
        """
        Statut du conteneur du service.

        Returns:
            Health si le conteneur est running avec healthcheck,
            sinon State; not_found si aucun conteneur.

        Raises:
            ContainerRuntimeError: Si la commande ps échoue
        """
        result = await self._runner.run(
            self._compose("ps", "--all", "--format", "json", name), timeout=30.0
        )
        if not result.ok:
            raise ContainerRuntimeError("status", name, result.stderr)

        containers = self._parse_ps(result.stdout)
        if not containers:
            return ContainerStatus.NOT_FOUND

        container = containers[0]
        state = str(container.get("State", "")).lower() or ContainerStatus.NOT_FOUND
        health = str(container.get("Health", "")).lower()
        if state == ContainerStatus.RUNNING and health:
            return health
        return state

    async def fetch_logs(self, name: str, lines: int = 50) -> List[str]:
        result = await self._runner.run(
            self._compose("logs", "--tail", str(lines), "--no-color", name), timeout=30.0
        )
        if not result.ok:
            raise ContainerRuntimeError("logs", name, result.stderr)
        return result.stdout.splitlines()[-lines:]

    async def ensure_network(self, name: str, subnet: Optional[str] = None) -> NetworkStatus:
        """
        Crée le réseau bridge s'il n'existe pas.

        Un réseau existant est réutilisé; un range d'adresses différent est
        signalé via subnet_conflict, jamais corrigé.
        """
        inspect = await self._runner.run(
            [
                self._docker,
                "network",
                "inspect",
                name,
                "--format",
                "{{range .IPAM.Config}}{{.Subnet}} {{end}}",
            ],
            timeout=30.0,
        )
        if inspect.ok:
            subnets = inspect.stdout.split()
            conflict = bool(subnet) and bool(subnets) and subnet not in subnets
            return NetworkStatus(name=name, created=False, subnets=subnets, subnet_conflict=conflict)

        argv = [self._docker, "network", "create", "--driver", "bridge"]
        if subnet:
            argv += ["--subnet", subnet]
        created = await self._runner.run(argv + [name], timeout=30.0)
        if not created.ok:
            raise ContainerRuntimeError("network create", name, created.stderr)
        return NetworkStatus(name=name, created=True, subnets=[subnet] if subnet else [])

    @staticmethod
    def _parse_ps(stdout: str) -> List[Dict[str, Any]]:
        """`ps --format json`: tableau JSON (anciennes versions) ou un objet par ligne."""
        text = stdout.strip()
        if not text:
            return []
        if text.startswith("["):
            return list(json.loads(text))
        return [json.loads(line) for line in text.splitlines() if line.strip()]

