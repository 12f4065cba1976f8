"""
STACKCTL: Certificates

Bascule de certificat en deux phases avec garantie de configuration proxy
toujours valide:
- ProxyConfigRenderer: configurations challenge / production (Jinja2)
- NginxReverseProxy: validation de la candidate puis swap atomique + reload
- CertbotClient: émission ACME, échecs typés
- CertificateInspector: couverture des domaines et validité (X.509)
- PidLock: verrou mono-écrivain (bascule et exécutions complètes)
- CertificateCutover: machine à états ChallengeMode -> ProductionMode
"""

from .certbot_client import (
    CertbotClient,
    CertificateNetworkError,
    ChallengeValidationError,
    RateLimitedError,
    classify_failure,
)
from .certificate_cutover import CertificateCutover, CutoverLockedError, RollbackError
from .certificate_inspector import CertificateInspector, CertificateVerificationError
from .interfaces import (
    CertificateClientError,
    CertificateMaterial,
    CertificateReport,
    CutoverError,
    CutoverResult,
    CutoverState,
    ICertificateClient,
    IReverseProxy,
    ProxyConfiguration,
    ProxyMode,
)
from .nginx_proxy import NginxReverseProxy, ProxyApplyError, ProxyValidationError
from .pid_lock import LockHeldError, PidLock
from .proxy_templates import ProxyConfigRenderer

__all__ = [
    # Enums
    "CutoverState",
    "ProxyMode",
    # Dataclasses
    "ProxyConfiguration",
    "CertificateMaterial",
    "CertificateReport",
    "CutoverResult",
    # Interfaces
    "IReverseProxy",
    "ICertificateClient",
    # Implementations
    "ProxyConfigRenderer",
    "NginxReverseProxy",
    "CertbotClient",
    "CertificateInspector",
    "CertificateCutover",
    "PidLock",
    "classify_failure",
    # Exceptions
    "CutoverError",
    "CutoverLockedError",
    "ProxyValidationError",
    "ProxyApplyError",
    "CertificateVerificationError",
    "RollbackError",
    "CertificateClientError",
    "RateLimitedError",
    "ChallengeValidationError",
    "CertificateNetworkError",
    "LockHeldError",
]
