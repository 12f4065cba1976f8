"""
STACKCTL - Deployment - Service Manifest

Charge le manifeste YAML des services et le convertit en tiers immuables.

Format:

    defaults:            # budget de sondage commun (optionnel)
      interval: 5
      max_attempts: 10
    tiers:
      - name: data
        services:
          - name: postgres
            probe: {type: command, target: "pg_isready -h postgres"}
      - name: proxy
        services:
          - name: nginx
            depends_on: [postgres]
            probe: {type: http, target: "http://localhost/health"}

L'index d'un tier est sa position dans la liste.
"""

from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.runtime.interfaces import ProbeKind, ProbeSpec

from .interfaces import (
    BEST_EFFORT_TIERS,
    Criticality,
    RetryPolicy,
    ServiceSpec,
    Tier,
)


class ManifestError(Exception):
    """Manifeste invalide (erreur de configuration)."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


# ══════════════════════════════════════════════════════════════════════════════
# SCHEMA
# ══════════════════════════════════════════════════════════════════════════════


class ProbeModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: ProbeKind = ProbeKind.CONTAINER
    target: str = ""
    expected_status: Optional[int] = Field(default=None, ge=100, le=599)
    timeout: float = Field(default=5.0, gt=0)

    @field_validator("target")
    @classmethod
    def strip_target(cls, v: str) -> str:
        return v.strip()


class RetryModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interval: Optional[float] = Field(default=None, ge=0)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    attempt_timeout: Optional[float] = Field(default=None, gt=0)
    startup_timeout: Optional[float] = Field(default=None, gt=0)
    backoff: Optional[float] = Field(default=None, ge=1.0)
    max_interval: Optional[float] = Field(default=None, ge=0)

    def apply(self, base: RetryPolicy) -> RetryPolicy:
        overrides = {k: v for k, v in self.model_dump().items() if v is not None}
        return replace(base, **overrides)


class ServiceModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    probe: ProbeModel = Field(default_factory=ProbeModel)
    criticality: Optional[Criticality] = None
    depends_on: List[str] = Field(default_factory=list)
    retry: RetryModel = Field(default_factory=RetryModel)


class TierModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    criticality: Optional[Criticality] = None
    services: List[ServiceModel] = Field(default_factory=list)


class ManifestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    defaults: RetryModel = Field(default_factory=RetryModel)
    tiers: List[TierModel]


# ══════════════════════════════════════════════════════════════════════════════
# LOADER
# ══════════════════════════════════════════════════════════════════════════════


class ServiceManifest:
    """
    Manifeste des services.

    Règles de validation:
        - noms de services uniques
        - dépendance vers un service connu
        - dépendance vers un tier de rang inférieur ou égal
        - pas de cycle entre services d'un même tier
    """

    def __init__(self, default_retry: Optional[RetryPolicy] = None):
        self._default_retry = default_retry or RetryPolicy()

    def load(self, path: Union[str, Path]) -> List[Tier]:
        """
        Charge un manifeste YAML.

        Raises:
            ManifestError: Fichier absent, YAML invalide ou manifeste incohérent
        """
        manifest_path = Path(path)
        if not manifest_path.is_file():
            raise ManifestError(f"Service manifest not found: {manifest_path}")

        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML in {manifest_path}: {e}")
        except OSError as e:
            raise ManifestError(f"Cannot read {manifest_path}: {e}")

        return self.parse(data)

    def parse(self, data: Any) -> List[Tier]:
        """Valide une structure déjà chargée et construit les tiers."""
        if not isinstance(data, dict):
            raise ManifestError("Service manifest must be a YAML mapping")

        try:
            model = ManifestModel.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise ManifestError("Invalid service manifest", errors=errors)

        base_retry = model.defaults.apply(self._default_retry)
        tiers: List[Tier] = []
        for index, tier_model in enumerate(model.tiers):
            services = tuple(
                self._build_service(service, index, tier_model, base_retry)
                for service in tier_model.services
            )
            tiers.append(Tier(index=index, name=tier_model.name, services=services))

        self.validate_dependencies(tiers)
        return tiers

    def _build_service(
        self,
        service: ServiceModel,
        index: int,
        tier: TierModel,
        base_retry: RetryPolicy,
    ) -> ServiceSpec:
        criticality = service.criticality or tier.criticality or self.default_criticality(tier.name)
        probe = ProbeSpec(
            kind=service.probe.type,
            target=service.probe.target,
            expected_status=service.probe.expected_status,
            timeout=service.probe.timeout,
        )
        if probe.kind in (ProbeKind.HTTP, ProbeKind.COMMAND, ProbeKind.TCP) and not probe.target:
            raise ManifestError(f"Service {service.name}: {probe.kind.value} probe requires a target")

        return ServiceSpec(
            name=service.name,
            tier=index,
            probe=probe,
            criticality=criticality,
            retry=service.retry.apply(base_retry),
            depends_on=tuple(service.depends_on),
        )

    @staticmethod
    def default_criticality(tier_name: str) -> Criticality:
        """Services des tiers observabilité/auxiliaires: best-effort par défaut."""
        if tier_name.strip().lower() in BEST_EFFORT_TIERS:
            return Criticality.BEST_EFFORT
        return Criticality.BLOCKING

    @staticmethod
    def validate_dependencies(tiers: List[Tier]) -> None:
        """
        Vérifie l'ordre des dépendances.

        Raises:
            ManifestError: Doublon, dépendance inconnue, vers un tier
                ultérieur, ou cycle intra-tier
        """
        services: Dict[str, ServiceSpec] = {}
        for tier in tiers:
            for service in tier.services:
                if service.name in services:
                    raise ManifestError(f"Duplicate service name: {service.name}")
                services[service.name] = service

        for service in services.values():
            for dependency in service.depends_on:
                if dependency not in services:
                    raise ManifestError(
                        f"Service {service.name} depends on unknown service {dependency}"
                    )
                if services[dependency].tier > service.tier:
                    raise ManifestError(
                        f"Service {service.name} (tier {service.tier}) depends on "
                        f"{dependency} from later tier {services[dependency].tier}"
                    )

        for tier in tiers:
            _check_tier_cycles(tier)

    @staticmethod
    def plan(tiers: List[Tier]) -> List[Dict[str, Any]]:
        """Plan d'exécution (dry-run), sans toucher au runtime."""
        return [
            {
                "tier": tier.index,
                "name": tier.name,
                "services": [
                    {
                        "name": s.name,
                        "criticality": s.criticality.value,
                        "probe": f"{s.probe.kind.value} {s.probe.target}".strip(),
                        "max_attempts": s.retry.max_attempts,
                        "interval": s.retry.interval,
                        "startup_timeout": s.retry.startup_timeout,
                    }
                    for s in tier.services
                ],
            }
            for tier in tiers
        ]


def _check_tier_cycles(tier: Tier) -> None:
    """DFS sur les dépendances internes au tier."""
    names = {s.name for s in tier.services}
    local = {s.name: [d for d in s.depends_on if d in names] for s in tier.services}
    visiting: set = set()
    done: set = set()

    def visit(name: str, path: List[str]) -> None:
        if name in done:
            return
        if name in visiting:
            cycle = " -> ".join(path[path.index(name):] + [name])
            raise ManifestError(f"Dependency cycle in tier {tier.name}: {cycle}")
        visiting.add(name)
        for dependency in local[name]:
            visit(dependency, path + [name])
        visiting.discard(name)
        done.add(name)

    for name in local:
        visit(name, [])
