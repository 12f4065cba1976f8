"""
STACKCTL - Certificates - Interfaces

Bascule de certificat en deux phases:
    ChallengeMode -> Issuing -> Verifying -> ProductionMode
    avec RolledBack atteignable depuis Issuing et Verifying.

Garanties:
    - La configuration live du proxy correspond à tout instant à
      ChallengeMode ou ProductionMode, jamais à aucune configuration
    - Toute configuration candidate est validée avant d'être appliquée
    - Un seul écrivain à la fois (verrou fichier)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from src.core.crypto_provider import CryptoProvider


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════


class CutoverState(Enum):
    CHALLENGE_MODE = "challenge_mode"
    ISSUING = "issuing"
    VERIFYING = "verifying"
    PRODUCTION_MODE = "production_mode"
    ROLLED_BACK = "rolled_back"


class ProxyMode(Enum):
    CHALLENGE = "challenge"
    PRODUCTION = "production"


# ══════════════════════════════════════════════════════════════════════════════
# DATACLASSES
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ProxyConfiguration:
    """Configuration complète du proxy pour un mode donné."""

    mode: ProxyMode
    content: str

    @property
    def fingerprint(self) -> str:
        """SHA-384 du contenu (96 caractères hex)."""
        return fingerprint(self.content)


def fingerprint(content: str) -> str:
    return CryptoProvider().hash_text(content)


@dataclass(frozen=True)
class CertificateMaterial:
    """Certificat émis (ou déjà présent) pour un jeu de domaines."""

    primary_domain: str
    fullchain_path: Path
    privkey_path: Path
    fullchain_pem: bytes = b""


@dataclass
class CertificateReport:
    """Propriétés d'un certificat inspecté."""

    subject_names: List[str]
    not_before: datetime
    not_after: datetime
    days_remaining: float
    fingerprint: str
    missing_domains: List[str] = field(default_factory=list)

    @property
    def covers_all(self) -> bool:
        return not self.missing_domains


@dataclass
class CutoverResult:
    """Résultat d'une exécution de la bascule."""

    final_state: CutoverState
    transitions: List[CutoverState] = field(default_factory=list)
    reloaded: bool = False
    short_circuited: bool = False
    error: Optional[str] = None
    certificate: Optional[CertificateReport] = None
    archived: List[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.final_state == CutoverState.PRODUCTION_MODE and self.error is None


# ══════════════════════════════════════════════════════════════════════════════
# EXCEPTIONS DE CONTRAT
# ══════════════════════════════════════════════════════════════════════════════


class CutoverError(Exception):
    """Échec d'une étape de la bascule (déclenche toujours un rollback)."""

    pass


class CertificateClientError(Exception):
    """Échec typé du client de certificats."""

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(message)


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IReverseProxy(ABC):
    """Reverse proxy piloté par la bascule."""

    @abstractmethod
    async def current(self) -> Optional[str]:
        """Configuration live, None si aucune."""
        pass

    @abstractmethod
    async def validate(self, config: ProxyConfiguration) -> None:
        """
        Valide la candidate sans toucher à l'état live.

        Raises:
            ProxyValidationError: Si la candidate est rejetée
        """
        pass

    @abstractmethod
    async def apply(self, config: ProxyConfiguration) -> Optional[Path]:
        """
        Valide, remplace atomiquement et recharge.

        Tout ou rien: en cas d'échec la configuration live est inchangée.

        Returns:
            Chemin de l'archive de la configuration remplacée

        Raises:
            ProxyValidationError: Candidate invalide (rien n'est modifié)
            ProxyApplyError: Reload en échec (configuration précédente restaurée)
        """
        pass


class ICertificateClient(ABC):
    """Client ACME externe."""

    @abstractmethod
    def live_paths(self, domains: Sequence[str]) -> Tuple[Path, Path]:
        """(fullchain, privkey) où le certificat des domaines est publié."""
        pass

    @abstractmethod
    async def existing_certificate(self, domains: Sequence[str]) -> Optional[CertificateMaterial]:
        """Certificat déjà publié pour ces domaines, None si absent."""
        pass

    @abstractmethod
    async def issue(
        self,
        domains: Sequence[str],
        email: str,
        staging: bool = False,
        force: bool = False,
    ) -> CertificateMaterial:
        """
        Émet un certificat via le challenge HTTP.

        Raises:
            RateLimitedError, ChallengeValidationError, CertificateNetworkError,
            CertificateClientError
        """
        pass
