"""
STACKCTL: Deployment

Rollout par tiers et pipeline de déploiement:
- ServiceManifest: manifeste YAML des tiers et services (pydantic)
- RolloutController: démarrage concurrent par tier, sondes avec retry,
  arrêt au premier échec bloquant
- FailureReporter: synthèse, diagnostics, rapport JSON
- DeploymentPipeline: config -> provisioning -> rollout -> bascule
"""

from .interfaces import (
    # Enums
    Criticality,
    ServiceState,
    ExitStatus,
    ExitCode,
    # Dataclasses
    RetryPolicy,
    ServiceSpec,
    Tier,
    DiagnosticSnapshot,
    ServiceOutcome,
    RolloutResult,
    RolloutSummary,
    # Interfaces
    IRolloutController,
    IFailureReporter,
    IDiagnosticsCollector,
    BEST_EFFORT_TIERS,
)
from .service_manifest import ServiceManifest, ManifestError
from .rollout_controller import RolloutController, ProbeFailedError, ServiceUnhealthyError
from .failure_reporter import FailureReporter, DiagnosticsCollector
from .deployment_pipeline import (
    DeploymentPipeline,
    PipelineOptions,
    PipelineResult,
    RunLockedError,
)

__all__ = [
    # Enums
    "Criticality",
    "ServiceState",
    "ExitStatus",
    "ExitCode",
    # Dataclasses
    "RetryPolicy",
    "ServiceSpec",
    "Tier",
    "DiagnosticSnapshot",
    "ServiceOutcome",
    "RolloutResult",
    "RolloutSummary",
    "PipelineOptions",
    "PipelineResult",
    # Interfaces
    "IRolloutController",
    "IFailureReporter",
    "IDiagnosticsCollector",
    # Implementations
    "ServiceManifest",
    "RolloutController",
    "FailureReporter",
    "DiagnosticsCollector",
    "DeploymentPipeline",
    "BEST_EFFORT_TIERS",
    # Exceptions
    "ManifestError",
    "ProbeFailedError",
    "ServiceUnhealthyError",
    "RunLockedError",
]
