"""
STACKCTL - Network - Retry Handler

Retry borné: intervalle (fixe ou exponentiel), nombre maximal de tentatives,
timeout par tentative et timeout total, le premier atteint l'emporte.
"""

import asyncio
import inspect
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from .interfaces import IRetryHandler, RetryCallback, RetryConfig, RetryResult

T = TypeVar("T")


class RetryHandler(IRetryHandler):
    """
    Gestion retries bornés.

    Les tentatives indépendantes (une par service) peuvent s'exécuter en
    parallèle sur la même instance: l'état par appel reste local.
    """

    def __init__(self, default_config: Optional[RetryConfig] = None) -> None:
        """
        Initialise le gestionnaire de retries.

        Args:
            default_config: Configuration par défaut (optionnel)
        """
        self._default_config = default_config or RetryConfig()
        self._retry_stats: Dict[str, int] = {
            "total_retries": 0,
            "successful_retries": 0,
            "failed_retries": 0,
        }

    async def execute_with_retry(
        self,
        func: Callable[..., T],
        *args: Any,
        config: Optional[RetryConfig] = None,
        on_retry: Optional[RetryCallback] = None,
        **kwargs: Any,
    ) -> RetryResult:
        """
        Exécute func jusqu'au premier succès ou à l'épuisement du budget.

        Le budget est épuisé quand max_attempts tentatives ont échoué ou quand
        le temps écoulé (attente suivante incluse) dépasserait total_timeout.

        Args:
            func: Fonction à exécuter (sync ou async)
            *args: Arguments positionnels
            config: Configuration retry optionnelle
            on_retry: Callback (attempt, error, next_delay) après chaque échec
            **kwargs: Arguments nommés

        Returns:
            RetryResult avec succès/échec et détails
        """
        retry_config = config or self._default_config
        last_error: Optional[Exception] = None
        total_delay: float = 0.0
        start = time.monotonic()
        attempts = 0

        for attempt in range(retry_config.max_attempts):
            attempts = attempt + 1
            try:
                result = await self._run_attempt(func, args, kwargs, retry_config, start)

                if attempt > 0:
                    self._retry_stats["successful_retries"] += 1

                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts,
                    total_delay=total_delay,
                    last_error=None,
                    elapsed=time.monotonic() - start,
                )

            except Exception as e:
                last_error = e
                self._retry_stats["total_retries"] += 1

                if not self.is_retryable(e, retry_config):
                    return RetryResult(
                        success=False,
                        result=None,
                        attempts=attempts,
                        total_delay=total_delay,
                        last_error=e,
                        elapsed=time.monotonic() - start,
                    )

                if attempt >= retry_config.max_attempts - 1:
                    if on_retry:
                        on_retry(attempts, e, 0.0)
                    break

                delay = self.calculate_delay(attempt, retry_config)
                if self._would_exceed_total(start, delay, retry_config):
                    if on_retry:
                        on_retry(attempts, e, 0.0)
                    self._retry_stats["failed_retries"] += 1
                    return RetryResult(
                        success=False,
                        result=None,
                        attempts=attempts,
                        total_delay=total_delay,
                        last_error=e,
                        elapsed=time.monotonic() - start,
                        timed_out=True,
                    )

                if on_retry:
                    on_retry(attempts, e, delay)
                total_delay += delay
                await asyncio.sleep(delay)

        self._retry_stats["failed_retries"] += 1

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            total_delay=total_delay,
            last_error=last_error,
            elapsed=time.monotonic() - start,
        )

    async def _run_attempt(
        self,
        func: Callable[..., Any],
        args: tuple,
        kwargs: Dict[str, Any],
        config: RetryConfig,
        start: float,
    ) -> Any:
        """Exécute une tentative, bornée par attempt_timeout et le temps restant."""
        outcome = func(*args, **kwargs)
        if not inspect.isawaitable(outcome):
            return outcome

        timeout = config.attempt_timeout
        if config.total_timeout is not None:
            remaining = max(config.total_timeout - (time.monotonic() - start), 0.001)
            timeout = remaining if timeout is None else min(timeout, remaining)

        if timeout is None:
            return await outcome

        try:
            return await asyncio.wait_for(outcome, timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Attempt timed out after {timeout:.2f}s")

    def _would_exceed_total(self, start: float, delay: float, config: RetryConfig) -> bool:
        if config.total_timeout is None:
            return False
        return (time.monotonic() - start) + delay >= config.total_timeout

    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        """
        Calcule délai avant la tentative suivante.

        Formula: min(initial * (base ^ attempt), max_delay)

        Args:
            attempt: Numéro de tentative (0-indexed)
            config: Configuration retry

        Returns:
            Délai en secondes
        """
        delay = config.initial_delay * (config.exponential_base**attempt)
        return min(delay, config.max_delay)

    def is_retryable(self, error: Exception, config: RetryConfig) -> bool:
        """True si l'erreur est dans retryable_exceptions."""
        return isinstance(error, config.retryable_exceptions)

    def get_retry_stats(self) -> Dict[str, int]:
        """Retourne les statistiques de retry."""
        return dict(self._retry_stats)

    def reset_stats(self) -> None:
        """Remet les statistiques à zéro."""
        self._retry_stats = {
            "total_retries": 0,
            "successful_retries": 0,
            "failed_retries": 0,
        }
