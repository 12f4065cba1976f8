"""
STACKCTL - Provisioning - Interfaces

Contrats de la préparation idempotente de l'hôte avant tout démarrage de
service: répertoires, réseau isolé, ressources disponibles.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from src.runtime.interfaces import NetworkStatus


class ResourceStatus(Enum):
    """Statut d'une ressource hôte."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


class DirectoryAction(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class ResourceCheck:
    """Résultat d'un check de ressource hôte (disk, memory)."""

    name: str
    status: ResourceStatus
    available: Optional[float] = None
    threshold: Optional[float] = None
    unit: str = ""
    message: Optional[str] = None


@dataclass
class HostSnapshot:
    """Ressources de l'hôte au moment du provisioning."""

    checks: List[ResourceCheck]
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def critical(self) -> List[ResourceCheck]:
        return [c for c in self.checks if c.status == ResourceStatus.CRITICAL]

    @property
    def warnings(self) -> List[ResourceCheck]:
        return [c for c in self.checks if c.status == ResourceStatus.WARNING]

    def to_dict(self) -> Dict[str, Any]:
        """Convertit en dict pour sérialisation JSON."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "available": c.available,
                    "threshold": c.threshold,
                    "unit": c.unit,
                    "message": c.message,
                }
                for c in self.checks
            ],
        }


@dataclass(frozen=True)
class DirectorySpec:
    """Répertoire à garantir, avec mode et propriétaire explicites."""

    path: Path
    mode: int = 0o755
    owner: Optional[str] = None
    group: Optional[str] = None


@dataclass(frozen=True)
class NetworkSpec:
    """Réseau isolé inter-services."""

    name: str
    subnet: Optional[str] = None


@dataclass
class ProvisionResult:
    """Résultat du provisioning."""

    directories: Dict[str, DirectoryAction] = field(default_factory=dict)
    network: Optional[NetworkStatus] = None
    host: Optional[HostSnapshot] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """False si l'hôte était déjà conforme (exécution no-op)."""
        if self.network is not None and self.network.created:
            return True
        return any(a != DirectoryAction.UNCHANGED for a in self.directories.values())


class IHostResourceChecker(ABC):
    """Vérifie les ressources de l'hôte."""

    @abstractmethod
    def check(self) -> HostSnapshot:
        pass


class IResourceProvisioner(ABC):
    """Provisioning idempotent de l'hôte."""

    @abstractmethod
    async def provision(
        self,
        paths: Sequence[DirectorySpec],
        network: Optional[NetworkSpec] = None,
    ) -> ProvisionResult:
        """
        Garantit répertoires et réseau.

        Raises:
            ProvisionError: Erreur fatale, aucun service ne doit démarrer
        """
        pass
