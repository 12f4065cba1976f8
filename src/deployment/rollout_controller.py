"""
STACKCTL - Deployment - Rollout Controller

Mise en service par tiers:
    1. Start: tous les services du tier démarrent en parallèle
    2. Poll: chaque service est sondé indépendamment (retry borné)
    3. Resolve: healthy au premier succès, unhealthy à l'épuisement du budget
    4. Gate: le tier suivant ne démarre que si tous les services blocking
       du tier courant sont healthy

Les services déjà démarrés ne sont jamais arrêtés par le contrôleur.
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, List, Optional

from src.logging.structured_logger import StructuredLogger
from src.network.interfaces import RetryConfig
from src.network.retry_handler import RetryHandler
from src.runtime.command_runner import CommandTimeoutError
from src.runtime.compose_runtime import ContainerRuntimeError
from src.runtime.interfaces import (
    ICommandRunner,
    IContainerRuntime,
    IReadinessProbe,
    ProbeSpec,
)
from src.runtime.probes import build_probe

from .failure_reporter import DiagnosticsCollector
from .interfaces import (
    DiagnosticSnapshot,
    ExitStatus,
    IDiagnosticsCollector,
    IRolloutController,
    RetryPolicy,
    RolloutResult,
    ServiceOutcome,
    ServiceSpec,
    ServiceState,
    Tier,
)

ProbeFactory = Callable[[ProbeSpec, str, IContainerRuntime, Optional[ICommandRunner]], IReadinessProbe]


class ProbeFailedError(Exception):
    """Sonde exécutée avec un résultat négatif."""

    pass


class ServiceUnhealthyError(Exception):
    """
    Service non disponible après épuisement de son budget.

    Converti en donnée (ServiceOutcome) par le contrôleur, ne le quitte jamais.
    """

    def __init__(self, service: str, attempts: int, reason: str):
        self.service = service
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"{service} unhealthy after {attempts} attempt(s): {reason}")


class RolloutController(IRolloutController):
    """Contrôleur de rollout par tiers."""

    def __init__(
        self,
        runtime: IContainerRuntime,
        logger: StructuredLogger,
        diagnostics: Optional[IDiagnosticsCollector] = None,
        retry_handler: Optional[RetryHandler] = None,
        runner: Optional[ICommandRunner] = None,
        probe_factory: ProbeFactory = build_probe,
    ):
        """
        Initialise le contrôleur.

        Args:
            runtime: Runtime de conteneurs (start/status/logs)
            logger: Logger structuré
            diagnostics: Capture des diagnostics en échec
            retry_handler: Primitive de retry partagée entre services
            runner: Exécuteur des sondes command
            probe_factory: Construction des sondes (injectable en test)
        """
        self._runtime = runtime
        self._log = logger.with_context(component="rollout")
        self._diagnostics = diagnostics or DiagnosticsCollector(runtime)
        self._retry = retry_handler or RetryHandler()
        self._runner = runner
        self._probe_factory = probe_factory

    async def rollout(self, tiers: List[Tier]) -> RolloutResult:
        """
        Démarre et sonde les tiers dans l'ordre croissant.

        Args:
            tiers: Tiers à déployer

        Returns:
            RolloutResult (ne lève jamais pour un service unhealthy)
        """
        ordered = sorted(tiers, key=lambda t: t.index)
        result = RolloutResult()
        for tier in ordered:
            for service in tier.services:
                result.outcomes[service.name] = ServiceOutcome(
                    name=service.name,
                    tier=tier.index,
                    criticality=service.criticality,
                )

        self._log.info(
            "Rollout started",
            tiers=len(ordered),
            services=len(result.outcomes),
        )

        for tier in ordered:
            result.tiers_attempted.append(tier.index)

            if tier.is_empty:
                self._log.info("Empty tier, advancing", tier=tier.index, tier_name=tier.name)
                continue

            self._log.info(
                "Starting tier",
                tier=tier.index,
                tier_name=tier.name,
                services=[s.name for s in tier.services],
            )
            await asyncio.gather(
                *(self._bring_up(service, result.outcomes[service.name]) for service in tier.services)
            )

            failed_blocking = [
                s.name for s in tier.services
                if s.is_blocking and result.outcomes[s.name].state != ServiceState.HEALTHY
            ]
            failed_best_effort = [
                s.name for s in tier.services
                if not s.is_blocking and result.outcomes[s.name].state != ServiceState.HEALTHY
            ]

            if failed_blocking:
                result.status = ExitStatus.FATAL
                result.halted_tier = tier.index
                self._log.critical(
                    "Blocking service(s) unhealthy, rollout halted",
                    tier=tier.index,
                    tier_name=tier.name,
                    failed=failed_blocking,
                )
                break

            if failed_best_effort:
                result.status = ExitStatus.PARTIAL
                self._log.warn(
                    "Best-effort service(s) unhealthy, continuing",
                    tier=tier.index,
                    tier_name=tier.name,
                    failed=failed_best_effort,
                )
            else:
                self._log.info("Tier healthy", tier=tier.index, tier_name=tier.name)

        result.finished_at = datetime.now()
        self._log.info(
            "Rollout finished",
            status=result.status.value,
            healthy=len(result.healthy),
            failed=result.failed,
            halted_tier=result.halted_tier,
        )
        return result

    async def _bring_up(self, service: ServiceSpec, outcome: ServiceOutcome) -> None:
        """Start + poll d'un service. Ne lève jamais: tout échec devient UNHEALTHY."""
        start = time.monotonic()
        try:
            outcome.attempts = await self._start_and_wait(service)
            outcome.state = ServiceState.HEALTHY
            self._log.info("Service healthy", service=service.name, attempts=outcome.attempts)
        except ServiceUnhealthyError as e:
            await self._mark_unhealthy(service, outcome, e.attempts, e.reason)
        except Exception as e:
            await self._mark_unhealthy(service, outcome, 0, f"{type(e).__name__}: {e}")
        finally:
            outcome.duration_seconds = time.monotonic() - start

    async def _mark_unhealthy(
        self,
        service: ServiceSpec,
        outcome: ServiceOutcome,
        attempts: int,
        reason: str,
    ) -> None:
        outcome.state = ServiceState.UNHEALTHY
        outcome.attempts = attempts
        outcome.error = reason
        try:
            outcome.diagnostics = await self._diagnostics.capture(service.name)
        except Exception as e:
            outcome.diagnostics = DiagnosticSnapshot(
                service=service.name, capture_error=f"{type(e).__name__}: {e}"
            )
        log = self._log.error if service.is_blocking else self._log.warn
        log(
            "Service unhealthy",
            service=service.name,
            criticality=service.criticality.value,
            attempts=attempts,
            reason=reason,
        )

    async def _start_and_wait(self, service: ServiceSpec) -> int:
        """
        Démarre le service puis le sonde jusqu'au premier succès.

        Returns:
            Nombre de tentatives de sondage

        Raises:
            ServiceUnhealthyError: Start en erreur ou budget épuisé
        """
        try:
            await self._runtime.start_service(service.name)
        except (ContainerRuntimeError, CommandTimeoutError, OSError) as e:
            raise ServiceUnhealthyError(service.name, 0, f"start failed: {e}")

        try:
            probe = self._probe_factory(service.probe, service.name, self._runtime, self._runner)
        except ValueError as e:
            raise ServiceUnhealthyError(service.name, 0, f"invalid probe: {e}")

        def on_retry(attempt: int, error: Exception, next_delay: float) -> None:
            self._log.debug(
                "Readiness probe failed",
                service=service.name,
                attempt=attempt,
                error=str(error) or type(error).__name__,
                next_delay=next_delay,
            )

        outcome = await self._retry.execute_with_retry(
            self._probe_once,
            probe,
            config=self.retry_config(service.retry),
            on_retry=on_retry,
        )
        if not outcome.success:
            reason = str(outcome.last_error) or type(outcome.last_error).__name__
            if outcome.timed_out:
                reason = f"startup timeout ({service.retry.startup_timeout}s): {reason}"
            raise ServiceUnhealthyError(service.name, outcome.attempts, reason)
        return outcome.attempts

    @staticmethod
    async def _probe_once(probe: IReadinessProbe) -> bool:
        # Une sonde qui lève et une sonde négative comptent pareil
        if not await probe.check():
            raise ProbeFailedError(f"{probe.describe()} returned a negative result")
        return True

    @staticmethod
    def retry_config(policy: RetryPolicy) -> RetryConfig:
        """Budget de sondage -> configuration de la primitive de retry."""
        return RetryConfig(
            max_attempts=policy.max_attempts,
            initial_delay=policy.interval,
            max_delay=max(policy.max_interval, policy.interval),
            exponential_base=policy.backoff,
            total_timeout=policy.startup_timeout,
            attempt_timeout=policy.attempt_timeout,
            retryable_exceptions=(Exception,),
        )
