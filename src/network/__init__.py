"""
STACKCTL: Network

Primitive de retry bornée (intervalle, tentatives max, timeout par tentative,
timeout total) partagée par les sondes de disponibilité et les collaborateurs
"""

from .interfaces import (
    IRetryHandler,
    RetryCallback,
    RetryConfig,
    RetryResult,
)
from .retry_handler import RetryHandler

__all__ = [
    # Dataclasses
    "RetryConfig",
    "RetryResult",
    "RetryCallback",
    # Interfaces
    "IRetryHandler",
    # Implementations
    "RetryHandler",
]
