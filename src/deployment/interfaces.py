"""
STACKCTL - Deployment - Interfaces

Modèle de la mise en service par tiers: services, tiers, résultat de
rollout et codes de sortie.

Garanties:
    - Les tiers sont traités strictement dans l'ordre croissant
    - Les services d'un même tier démarrent et sont sondés en parallèle
    - Un service blocking unhealthy arrête le rollout (fatal)
    - Un service best-effort unhealthy dégrade au plus en partial
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

from src.runtime.interfaces import ProbeKind, ProbeSpec


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════


class Criticality(Enum):
    """Effet d'un échec du service sur le rollout."""

    BLOCKING = "blocking"
    BEST_EFFORT = "best-effort"


class ServiceState(Enum):
    """État final d'un service."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    NOT_ATTEMPTED = "not_attempted"


class ExitStatus(Enum):
    """Statut global du rollout."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FATAL = "fatal"


class ExitCode(IntEnum):
    """
    Codes de sortie du process.

    Chaque classe d'échec a son code: la CI distingue mauvaise config,
    mauvais rollout et système dégradé mais fonctionnel.
    """

    SUCCESS = 0
    CONFIG_INVALID = 2
    PROVISION_FAILED = 3
    ROLLOUT_FATAL = 4
    CUTOVER_FAILED = 5
    LOCKED = 6

    @classmethod
    def for_status(cls, status: ExitStatus) -> "ExitCode":
        if status == ExitStatus.FATAL:
            return cls.ROLLOUT_FATAL
        return cls.SUCCESS


# Tiers dont les services sont best-effort par défaut
BEST_EFFORT_TIERS = frozenset({"observability", "monitoring", "auxiliary"})


# ══════════════════════════════════════════════════════════════════════════════
# DATACLASSES
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RetryPolicy:
    """Budget de sondage d'un service."""

    interval: float = 5.0
    max_attempts: int = 10
    attempt_timeout: float = 5.0
    startup_timeout: float = 120.0
    backoff: float = 1.0  # 1.0 = intervalle fixe
    max_interval: float = 30.0


@dataclass(frozen=True)
class ServiceSpec:
    """
    Unité déployable.

    Immuable: créée depuis le manifeste au démarrage, jamais modifiée.
    """

    name: str
    tier: int
    probe: ProbeSpec = field(default_factory=lambda: ProbeSpec(kind=ProbeKind.CONTAINER))
    criticality: Criticality = Criticality.BLOCKING
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    depends_on: Tuple[str, ...] = ()

    @property
    def is_blocking(self) -> bool:
        return self.criticality == Criticality.BLOCKING


@dataclass(frozen=True)
class Tier:
    """Groupe de services partageant un rang de dépendance."""

    index: int
    name: str
    services: Tuple[ServiceSpec, ...] = ()

    @property
    def is_empty(self) -> bool:
        return len(self.services) == 0

    @property
    def blocking_services(self) -> List[ServiceSpec]:
        return [s for s in self.services if s.is_blocking]


@dataclass
class DiagnosticSnapshot:
    """Diagnostic capturé pour un service en échec."""

    service: str
    status: Optional[str] = None
    log_tail: List[str] = field(default_factory=list)
    captured_at: datetime = field(default_factory=datetime.now)
    capture_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "status": self.status,
            "log_tail": list(self.log_tail),
            "captured_at": self.captured_at.isoformat(),
            "capture_error": self.capture_error,
        }


@dataclass
class ServiceOutcome:
    """Résultat d'un service."""

    name: str
    tier: int
    criticality: Criticality
    state: ServiceState = ServiceState.NOT_ATTEMPTED
    attempts: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None
    diagnostics: Optional[DiagnosticSnapshot] = None


@dataclass
class RolloutResult:
    """
    Résultat du rollout.

    Mis à jour au fil de la résolution des services, finalisé une fois tous
    les tiers tentés ou à l'arrêt fatal.
    """

    outcomes: Dict[str, ServiceOutcome] = field(default_factory=dict)
    status: ExitStatus = ExitStatus.SUCCESS
    halted_tier: Optional[int] = None
    tiers_attempted: List[int] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def failed(self) -> List[str]:
        """Services unhealthy, dans l'ordre des tiers."""
        return [
            o.name
            for o in sorted(self.outcomes.values(), key=lambda o: (o.tier, o.name))
            if o.state == ServiceState.UNHEALTHY
        ]

    @property
    def healthy(self) -> List[str]:
        return sorted(o.name for o in self.outcomes.values() if o.state == ServiceState.HEALTHY)

    @property
    def not_attempted(self) -> List[str]:
        return sorted(
            o.name for o in self.outcomes.values() if o.state == ServiceState.NOT_ATTEMPTED
        )

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.for_status(self.status)


@dataclass
class RolloutSummary:
    """Synthèse déterministe pour l'opérateur et l'automatisation."""

    status: ExitStatus
    exit_code: ExitCode
    attempted: int
    healthy: int
    unhealthy: int
    failed_services: List[str]
    halted_tier: Optional[int]
    not_attempted: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "exit_code": int(self.exit_code),
            "attempted": self.attempted,
            "healthy": self.healthy,
            "unhealthy": self.unhealthy,
            "failed_services": list(self.failed_services),
            "halted_tier": self.halted_tier,
            "not_attempted": list(self.not_attempted),
        }


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IRolloutController(ABC):
    """Mise en service par tiers."""

    @abstractmethod
    async def rollout(self, tiers: List[Tier]) -> RolloutResult:
        """
        Démarre et sonde les tiers dans l'ordre.

        Ne lève jamais pour un service unhealthy: les échecs sont des
        données du RolloutResult.
        """
        pass


class IFailureReporter(ABC):
    """Synthèse et diagnostic d'un rollout."""

    @abstractmethod
    def report(self, result: RolloutResult) -> RolloutSummary:
        pass


class IDiagnosticsCollector(ABC):
    """Capture statut et logs d'un service en échec."""

    @abstractmethod
    async def capture(self, service: str) -> DiagnosticSnapshot:
        """Ne lève jamais: une erreur de capture est consignée dans le snapshot."""
        pass
