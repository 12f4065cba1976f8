"""
STACKCTL - Network - Interfaces

Primitive de retry bornée utilisée par les sondes de disponibilité et les
appels aux collaborateurs externes.

Garanties:
    - Nombre de tentatives borné (max_attempts)
    - Durée totale bornée (total_timeout) si définie
    - Chaque tentative bornée (attempt_timeout) si définie
    - Aucune attente illimitée
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration des retries.

    Avec exponential_base=1.0 l'intervalle est fixe (polling régulier);
    au-delà, delay = min(initial_delay * base^attempt, max_delay).
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    total_timeout: Optional[float] = None
    attempt_timeout: Optional[float] = None
    retryable_exceptions: tuple = field(
        default_factory=lambda: (ConnectionError, TimeoutError)
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.total_timeout is not None and self.total_timeout <= 0:
            raise ValueError("total_timeout must be positive")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be positive")


@dataclass
class RetryResult:
    """Résultat d'une opération avec retry."""

    success: bool
    result: Optional[Any]
    attempts: int
    total_delay: float
    last_error: Optional[Exception]
    elapsed: float = 0.0
    timed_out: bool = False


# Callback appelé après chaque tentative en échec: (attempt, error, next_delay)
RetryCallback = Callable[[int, Exception, float], None]


class IRetryHandler(ABC):
    """Interface gestion retries."""

    @abstractmethod
    async def execute_with_retry(
        self,
        func: Callable[..., T],
        *args: Any,
        config: Optional[RetryConfig] = None,
        on_retry: Optional[RetryCallback] = None,
        **kwargs: Any,
    ) -> RetryResult:
        """
        Exécute func avec retries bornés.

        Args:
            func: Fonction à exécuter (sync ou async)
            config: Configuration retry optionnelle
            on_retry: Callback après chaque échec

        Returns:
            RetryResult (ne lève jamais pour une erreur retryable)
        """
        pass

    @abstractmethod
    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        """Calcule le délai avant la tentative suivante."""
        pass

    @abstractmethod
    def is_retryable(self, error: Exception, config: RetryConfig) -> bool:
        """Vérifie si exception est retryable."""
        pass
