"""
STACKCTL: Runtime

Collaborateurs externes de l'orchestrateur:
- CommandRunner: commandes externes avec timeout borné
- ComposeRuntime: start / status / logs / réseau via `docker compose`
- Sondes de disponibilité (HTTP, commande, TCP, statut conteneur)
"""

from .command_runner import CommandRunner, CommandTimeoutError
from .compose_runtime import ComposeRuntime, ContainerRuntimeError
from .interfaces import (
    CommandResult,
    ContainerStatus,
    ICommandRunner,
    IContainerRuntime,
    IReadinessProbe,
    NetworkStatus,
    ProbeKind,
    ProbeSpec,
)
from .probes import (
    CommandProbe,
    ContainerStatusProbe,
    HttpProbe,
    TcpProbe,
    build_probe,
)

__all__ = [
    # Enums
    "ProbeKind",
    "ContainerStatus",
    # Dataclasses
    "CommandResult",
    "ProbeSpec",
    "NetworkStatus",
    # Interfaces
    "ICommandRunner",
    "IContainerRuntime",
    "IReadinessProbe",
    # Implementations
    "CommandRunner",
    "ComposeRuntime",
    "HttpProbe",
    "CommandProbe",
    "TcpProbe",
    "ContainerStatusProbe",
    "build_probe",
    # Exceptions
    "CommandTimeoutError",
    "ContainerRuntimeError",
]
