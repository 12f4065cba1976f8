"""
STACKCTL - Runtime - Interfaces

Contrats des collaborateurs externes pilotés par l'orchestrateur:
exécution de commandes, runtime de conteneurs, sondes de disponibilité.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional, Sequence


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════


class ProbeKind(Enum):
    """Type de sonde de disponibilité."""

    HTTP = "http"
    COMMAND = "command"
    TCP = "tcp"
    CONTAINER = "container"


class ContainerStatus:
    """Statuts rapportés par le runtime (chaînes structurées)."""

    RUNNING = "running"
    HEALTHY = "healthy"
    STARTING = "starting"
    UNHEALTHY = "unhealthy"
    EXITED = "exited"
    NOT_FOUND = "not_found"

    READY = frozenset({RUNNING, HEALTHY})


# ══════════════════════════════════════════════════════════════════════════════
# DATACLASSES
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CommandResult:
    """Résultat d'une commande externe."""

    argv: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout + stderr, pour la classification des erreurs."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass(frozen=True)
class ProbeSpec:
    """
    Sonde de disponibilité d'un service.

    target selon kind:
        - http: URL
        - command: ligne de commande
        - tcp: host:port
        - container: nom du service (défaut: le service sondé)
    """

    kind: ProbeKind
    target: str = ""
    expected_status: Optional[int] = None
    timeout: float = 5.0


@dataclass(frozen=True)
class NetworkStatus:
    """État du réseau isolé après ensure_network."""

    name: str
    created: bool
    subnets: List[str] = field(default_factory=list)
    subnet_conflict: bool = False


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class ICommandRunner(ABC):
    """Exécute une commande externe avec timeout borné."""

    @abstractmethod
    async def run(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        """
        Exécute argv et capture sa sortie.

        Raises:
            CommandTimeoutError: Si la commande dépasse timeout
        """
        pass


class IContainerRuntime(ABC):
    """Runtime de conteneurs (start, status, logs, réseau)."""

    @abstractmethod
    async def check_available(self) -> bool:
        """True si le runtime répond."""
        pass

    @abstractmethod
    async def start_service(self, name: str) -> None:
        """
        Démarre un service par son nom.

        Raises:
            ContainerRuntimeError: Si le runtime retourne une erreur
        """
        pass

    @abstractmethod
    async def get_status(self, name: str) -> str:
        """Statut structuré (voir ContainerStatus)."""
        pass

    @abstractmethod
    async def fetch_logs(self, name: str, lines: int = 50) -> List[str]:
        """Dernières lignes de log du service."""
        pass

    @abstractmethod
    async def ensure_network(self, name: str, subnet: Optional[str] = None) -> NetworkStatus:
        """Crée le réseau s'il n'existe pas; réutilise un réseau existant."""
        pass


class IReadinessProbe(ABC):
    """Sonde: répond seulement succès ou échec."""

    @abstractmethod
    async def check(self) -> bool:
        """
        Exécute la sonde une fois.

        Returns:
            True si le service est prêt

        Raises:
            Exception: Une erreur de sonde compte comme un échec
        """
        pass

    @abstractmethod
    def describe(self) -> str:
        pass
