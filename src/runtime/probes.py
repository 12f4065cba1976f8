"""
STACKCTL - Runtime - Readiness Probes

Sondes de disponibilité: HTTP, commande, connexion TCP, statut conteneur.
Le contrôleur ne distingue que succès/échec; une sonde qui lève compte
comme un échec.
"""

import asyncio
import shlex
from typing import Optional

import httpx

from .command_runner import CommandRunner
from .interfaces import (
    ContainerStatus,
    ICommandRunner,
    IContainerRuntime,
    IReadinessProbe,
    ProbeKind,
    ProbeSpec,
)


class HttpProbe(IReadinessProbe):
    """Succès si la réponse est 2xx, ou égale à expected_status si défini."""

    def __init__(
        self,
        url: str,
        expected_status: Optional[int] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._expected_status = expected_status
        self._timeout = timeout
        self._transport = transport

    async def check(self) -> bool:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport, verify=False
        ) as client:
            response = await client.get(self._url)
        if self._expected_status is not None:
            return response.status_code == self._expected_status
        return response.is_success

    def describe(self) -> str:
        return f"http {self._url}"


class CommandProbe(IReadinessProbe):
    """Succès si la commande sort avec le code 0."""

    def __init__(self, command: str, runner: ICommandRunner, timeout: float = 5.0):
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("command probe requires a command")
        self._runner = runner
        self._timeout = timeout

    async def check(self) -> bool:
        result = await self._runner.run(self._argv, timeout=self._timeout)
        return result.ok

    def describe(self) -> str:
        return f"command {shlex.join(self._argv)}"


class TcpProbe(IReadinessProbe):
    """Succès si une connexion TCP s'établit."""

    def __init__(self, address: str, timeout: float = 5.0):
        host, separator, port = address.rpartition(":")
        if not separator or not host or not port.isdigit():
            raise ValueError(f"tcp probe target must be host:port, got {address!r}")
        self._host = host
        self._port = int(port)
        self._timeout = timeout

    async def check(self) -> bool:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(self._host, self._port), timeout=self._timeout
        )
        writer.close()
        await writer.wait_closed()
        return True

    def describe(self) -> str:
        return f"tcp {self._host}:{self._port}"


class ContainerStatusProbe(IReadinessProbe):
    """Succès si le runtime rapporte le conteneur running ou healthy."""

    def __init__(self, service: str, runtime: IContainerRuntime):
        self._service = service
        self._runtime = runtime

    async def check(self) -> bool:
        status = await self._runtime.get_status(self._service)
        return status in ContainerStatus.READY

    def describe(self) -> str:
        return f"container {self._service}"


def build_probe(
    spec: ProbeSpec,
    service: str,
    runtime: IContainerRuntime,
    runner: Optional[ICommandRunner] = None,
) -> IReadinessProbe:
    """
    Construit la sonde décrite par spec.

    Args:
        spec: Description de la sonde
        service: Nom du service sondé (cible par défaut des sondes conteneur)
        runtime: Runtime de conteneurs
        runner: Exécuteur de commandes (sondes command)

    Returns:
        Sonde prête à l'emploi
    """
    if spec.kind == ProbeKind.HTTP:
        return HttpProbe(spec.target, spec.expected_status, spec.timeout)
    if spec.kind == ProbeKind.COMMAND:
        return CommandProbe(spec.target, runner or CommandRunner(), spec.timeout)
    if spec.kind == ProbeKind.TCP:
        return TcpProbe(spec.target, spec.timeout)
    return ContainerStatusProbe(spec.target or service, runtime)
