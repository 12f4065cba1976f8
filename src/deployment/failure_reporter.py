"""
STACKCTL - Deployment - Failure Reporter

Diagnostic des services en échec et synthèse déterministe du rollout.
Aucun rollback destructif: un système partiellement sain reste en place.
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from src.logging.structured_logger import StructuredLogger
from src.runtime.interfaces import IContainerRuntime

from .interfaces import (
    DiagnosticSnapshot,
    ExitCode,
    IDiagnosticsCollector,
    IFailureReporter,
    RolloutResult,
    RolloutSummary,
    ServiceState,
)


class DiagnosticsCollector(IDiagnosticsCollector):
    """Capture statut + fin de log d'un service via le runtime."""

    def __init__(self, runtime: IContainerRuntime, log_lines: int = 50, timeout: float = 15.0):
        self._runtime = runtime
        self._log_lines = log_lines
        self._timeout = timeout

    async def capture(self, service: str) -> DiagnosticSnapshot:
        snapshot = DiagnosticSnapshot(service=service)
        errors = []

        try:
            snapshot.status = await asyncio.wait_for(
                self._runtime.get_status(service), timeout=self._timeout
            )
        except Exception as e:
            errors.append(f"status: {str(e) or type(e).__name__}")

        try:
            lines = await asyncio.wait_for(
                self._runtime.fetch_logs(service, self._log_lines), timeout=self._timeout
            )
            snapshot.log_tail = list(lines)[-self._log_lines:]
        except Exception as e:
            errors.append(f"logs: {str(e) or type(e).__name__}")

        if errors:
            snapshot.capture_error = "; ".join(errors)
        snapshot.captured_at = datetime.now()
        return snapshot


class FailureReporter(IFailureReporter):
    """Synthèse du rollout, logs de diagnostic et rapport JSON."""

    def __init__(self, logger: StructuredLogger, reports_dir: Optional[Path] = None):
        self._log = logger.with_context(component="reporter")
        self._reports_dir = Path(reports_dir) if reports_dir else None

    def report(self, result: RolloutResult) -> RolloutSummary:
        """
        Produit la synthèse et journalise chaque échec avec son diagnostic.

        Args:
            result: Résultat finalisé du rollout

        Returns:
            RolloutSummary déterministe
        """
        attempted = [o for o in result.outcomes.values() if o.state != ServiceState.NOT_ATTEMPTED]
        summary = RolloutSummary(
            status=result.status,
            exit_code=ExitCode.for_status(result.status),
            attempted=len(attempted),
            healthy=len(result.healthy),
            unhealthy=len(result.failed),
            failed_services=result.failed,
            halted_tier=result.halted_tier,
            not_attempted=result.not_attempted,
        )

        for name in result.failed:
            outcome = result.outcomes[name]
            diagnostics = outcome.diagnostics.to_dict() if outcome.diagnostics else None
            self._log.error(
                "Service failure diagnostic",
                service=name,
                tier=outcome.tier,
                criticality=outcome.criticality.value,
                error=outcome.error,
                diagnostics=diagnostics,
            )

        self._log.info("Rollout summary", **summary.to_dict())
        return summary

    @staticmethod
    def render(summary: RolloutSummary) -> str:
        """JSON stable (clés triées) pour l'automatisation."""
        return json.dumps(summary.to_dict(), sort_keys=True)

    def build_report(
        self,
        result: RolloutResult,
        summary: RolloutSummary,
        host: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Rapport complet: synthèse, services, durée, ressources hôte."""
        return {
            "summary": summary.to_dict(),
            "started_at": result.started_at.isoformat(),
            "finished_at": result.finished_at.isoformat() if result.finished_at else None,
            "duration_seconds": round(result.duration_seconds, 3),
            "tiers_attempted": list(result.tiers_attempted),
            "services": [
                {
                    "name": o.name,
                    "tier": o.tier,
                    "criticality": o.criticality.value,
                    "state": o.state.value,
                    "attempts": o.attempts,
                    "duration_seconds": round(o.duration_seconds, 3),
                    "error": o.error,
                    "diagnostics": o.diagnostics.to_dict() if o.diagnostics else None,
                }
                for o in sorted(result.outcomes.values(), key=lambda o: (o.tier, o.name))
            ],
            "host": host,
        }

    def write_report(
        self,
        result: RolloutResult,
        summary: RolloutSummary,
        host: Optional[Dict[str, Any]] = None,
    ) -> Optional[Path]:
        """
        Écrit deployment-report-<timestamp>.json dans reports_dir.

        Returns:
            Chemin du rapport, None si aucun répertoire n'est configuré ou si
            l'écriture échoue (le rapport ne change jamais le code de sortie)
        """
        if self._reports_dir is None:
            return None

        stamp = (result.finished_at or datetime.now()).strftime("%Y%m%d-%H%M%S")
        path = self._reports_dir / f"deployment-report-{stamp}.json"
        try:
            self._reports_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.build_report(result, summary, host), f, indent=2, sort_keys=True)
        except OSError as e:
            self._log.warn("Cannot write deployment report", path=str(path), error=str(e))
            return None

        self._log.info("Deployment report written", path=str(path))
        return path
