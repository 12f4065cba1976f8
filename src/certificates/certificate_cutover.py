"""
STACKCTL - Certificates - Certificate Cutover

Machine à états de la bascule de certificat:

    ChallengeMode -> Issuing -> Verifying -> ProductionMode
                       |           |
                       +-----------+--> RolledBack

- Court-circuit: certificat existant valide, couvrant tous les domaines et
  loin de l'expiration => pas de challenge ni d'émission; si la config live
  est déjà la config de production (même empreinte SHA-384), pas de reload.
- RolledBack restaure la dernière configuration connue bonne (production
  précédente, sinon challenge). Si la configuration live n'a pas changé,
  rien n'est réappliqué: elle reste identique au bit près.
"""

import asyncio
from pathlib import Path
from typing import Optional, Sequence

from src.logging.structured_logger import StructuredLogger

from .certificate_inspector import CertificateInspector, CertificateVerificationError
from .interfaces import (
    CutoverError,
    CutoverResult,
    CutoverState,
    ICertificateClient,
    IReverseProxy,
    ProxyConfiguration,
    ProxyMode,
    fingerprint,
)
from .pid_lock import PidLock
from .proxy_templates import ProxyConfigRenderer


class CutoverLockedError(CutoverError):
    """Une autre bascule est en cours."""

    def __init__(self, path: Path, pid: Optional[int]):
        self.path = Path(path)
        self.pid = pid
        super().__init__(f"Another cutover holds {path} (pid {pid})")


class RollbackError(CutoverError):
    """Impossible de restaurer la configuration connue bonne."""

    pass


class CertificateCutover:
    """Bascule de certificat en deux phases, mono-écrivain."""

    def __init__(
        self,
        proxy: IReverseProxy,
        client: ICertificateClient,
        renderer: ProxyConfigRenderer,
        logger: StructuredLogger,
        lock_path: Path,
        domains: Sequence[str],
        email: str,
        inspector: Optional[CertificateInspector] = None,
        staging: bool = False,
        renew_before_days: float = 30,
        min_valid_days: float = 7,
        issue_timeout: float = 300.0,
    ):
        if not domains:
            raise ValueError("at least one domain is required")
        self._proxy = proxy
        self._client = client
        self._renderer = renderer
        self._logger = logger
        self._log = logger.with_context(component="cutover")
        self._lock_path = Path(lock_path)
        self._domains = list(domains)
        self._email = email
        self._inspector = inspector or CertificateInspector(min_valid_days=min_valid_days)
        self._staging = staging
        self._renew_before_days = renew_before_days
        self._min_valid_days = min_valid_days
        self._issue_timeout = issue_timeout

    async def run(self, force: bool = False) -> CutoverResult:
        """
        Exécute la bascule sous verrou.

        Args:
            force: Émet un nouveau certificat même si l'actuel est valide

        Returns:
            CutoverResult (ProductionMode, ou RolledBack avec l'erreur)

        Raises:
            CutoverLockedError: Une autre bascule détient le verrou
            RollbackError: La configuration connue bonne n'a pas pu être restaurée
        """
        with PidLock(self._lock_path, held_error=CutoverLockedError, logger=self._logger):
            return await self._run(force)

    async def _run(self, force: bool) -> CutoverResult:
        result = CutoverResult(final_state=CutoverState.CHALLENGE_MODE)

        try:
            fullchain, privkey = self._client.live_paths(self._domains)
            production = self._renderer.production(fullchain, privkey)
            challenge = self._renderer.challenge()
            live = await self._proxy.current()
            existing = None if force else await self._client.existing_certificate(self._domains)
        except Exception as e:
            # Rien n'a encore été modifié
            self._log.error("Cutover inspection failed", error_type=type(e).__name__, error=str(e))
            return self._finish_rolled_back(result, f"inspection: {e}")

        if existing is not None and self._inspector.is_current(
            existing, self._domains, self._renew_before_days
        ):
            return await self._short_circuit(live, production, result)

        # Dernière configuration connue bonne: la live si elle existe
        known_good = live

        self._log.info("Entering challenge mode", domains=self._domains, force=force)
        try:
            await self._apply(challenge, result)
        except CutoverError as e:
            # Swap atomique: la configuration live n'a pas bougé
            return self._finish_rolled_back(result, f"challenge mode: {e}")
        except Exception as e:
            await self._rollback(known_good, result)
            return self._finish_rolled_back(result, f"challenge mode: {e}")
        self._transition(result, CutoverState.CHALLENGE_MODE)
        if known_good is None:
            known_good = challenge.content

        try:
            self._transition(result, CutoverState.ISSUING)
            material = await asyncio.wait_for(
                self._client.issue(self._domains, self._email, staging=self._staging, force=force),
                timeout=self._issue_timeout,
            )

            self._transition(result, CutoverState.VERIFYING)
            try:
                result.certificate = self._inspector.verify(
                    material, self._domains, min_valid_days=self._min_valid_days
                )
            except OSError as e:
                raise CertificateVerificationError(f"Cannot read issued certificate: {e}")

            await self._apply(production, result)
        except Exception as e:
            reason = str(e) or f"certificate client timed out after {self._issue_timeout}s"
            self._log.error(
                "Cutover step failed, rolling back",
                step=result.transitions[-1].value,
                error_type=type(e).__name__,
                error=reason,
            )
            await self._rollback(known_good, result)
            return self._finish_rolled_back(result, reason)

        self._transition(result, CutoverState.PRODUCTION_MODE)
        self._log.info(
            "Certificate cutover complete",
            fingerprint=result.certificate.fingerprint if result.certificate else None,
            days_remaining=round(result.certificate.days_remaining, 1) if result.certificate else None,
        )
        return result

    async def _short_circuit(
        self,
        live: Optional[str],
        production: ProxyConfiguration,
        result: CutoverResult,
    ) -> CutoverResult:
        result.short_circuited = True
        if live is not None and fingerprint(live) == production.fingerprint:
            self._log.info("Certificate valid and production config live, nothing to do")
            self._transition(result, CutoverState.PRODUCTION_MODE)
            return result

        self._log.info("Certificate valid, switching to production config without issuance")
        try:
            await self._apply(production, result)
        except CutoverError as e:
            return self._finish_rolled_back(result, f"production mode: {e}")
        except Exception as e:
            await self._rollback(live, result)
            return self._finish_rolled_back(result, f"production mode: {e}")
        self._transition(result, CutoverState.PRODUCTION_MODE)
        return result

    async def _apply(self, config: ProxyConfiguration, result: CutoverResult) -> None:
        archived = await self._proxy.apply(config)
        result.reloaded = True
        if archived is not None:
            result.archived.append(archived)

    async def _rollback(self, known_good: Optional[str], result: CutoverResult) -> None:
        """Restaure known_good si la configuration live en diffère."""
        if known_good is None:
            return
        try:
            live = await self._proxy.current()
        except Exception as e:
            self._log.critical("Rollback failed", error=str(e))
            raise RollbackError(f"Cannot read live configuration: {e}")
        if live == known_good:
            self._log.info("Live configuration unchanged, no restore needed")
            return

        challenge = self._renderer.challenge()
        mode = ProxyMode.CHALLENGE if known_good == challenge.content else ProxyMode.PRODUCTION
        restore = ProxyConfiguration(mode=mode, content=known_good)
        try:
            await self._apply(restore, result)
        except Exception as e:
            self._log.critical("Rollback failed", error=str(e))
            raise RollbackError(f"Cannot restore last known-good configuration: {e}")
        self._log.warn("Previous configuration restored", fingerprint=fingerprint(known_good))

    def _finish_rolled_back(self, result: CutoverResult, reason: str) -> CutoverResult:
        result.error = reason
        self._transition(result, CutoverState.ROLLED_BACK)
        return result

    def _transition(self, result: CutoverResult, state: CutoverState) -> None:
        result.transitions.append(state)
        result.final_state = state
        self._log.debug("Cutover state", state=state.value)

