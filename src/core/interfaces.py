"""
STACKCTL - Core Interfaces
Contrats du chargement/validation de configuration et des primitives crypto.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel

from src.logging.sensitive_masker import SensitiveMasker


# ══════════════════════════════════════════════════════════════════════════════
# TYPES
# ══════════════════════════════════════════════════════════════════════════════


class ValidationSeverity(Enum):
    BLOCKING = "blocking"
    WARNING = "warning"
    INFO = "info"


_ERROR_PRECEDENCE = {"missing_key": 0, "weak_value": 1, "invalid_value": 2}


class ValidationError(BaseModel):
    """Constat de validation sur une variable du bundle."""

    rule_id: str  # missing_key, weak_value, invalid_value, default_applied
    key: str
    message: str
    location: str = "environment"
    value: Optional[str] = None  # Jamais renseigné pour une clé sensible
    severity: ValidationSeverity = ValidationSeverity.BLOCKING


class ValidationResult(BaseModel):
    """Résultat de validation d'un bundle."""

    valid: bool
    errors: List[ValidationError] = []
    warnings: List[ValidationError] = []
    infos: List[ValidationError] = []
    checked_at: datetime

    def first_error(self) -> Optional[ValidationError]:
        """Erreur à remonter: clé manquante, puis valeur faible, puis valeur invalide."""
        if not self.errors:
            return None
        return min(self.errors, key=lambda e: _ERROR_PRECEDENCE.get(e.rule_id, len(_ERROR_PRECEDENCE)))


@dataclass(frozen=True)
class KeyRule:
    """
    Règle statique de validation d'une variable d'environnement.

    Les règles sont énumérées par l'orchestrateur et ne sont pas extensibles
    à l'exécution.
    """

    name: str
    required: bool = True
    security_critical: bool = False
    min_length: int = 0
    pattern: Optional[str] = None
    numeric_range: Optional[Tuple[int, int]] = None
    default: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class ConfigBundle:
    """
    Bundle de configuration validé.

    Chargé une fois par exécution puis immuable: values et derived sont
    exposés en lecture seule. Jamais persisté par l'orchestrateur.
    """

    values: Mapping[str, str]
    derived: Mapping[str, str] = field(default_factory=dict)
    source: str = "environment"
    loaded_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        object.__setattr__(self, "derived", MappingProxyType(dict(self.derived)))

    def __contains__(self, key: object) -> bool:
        return key in self.values or key in self.derived

    def __getitem__(self, key: str) -> str:
        return self.require(key)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Valeur brute, puis dérivée, sinon default."""
        if key in self.values:
            return self.values[key]
        return self.derived.get(key, default)

    def require(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None or value == "":
            return default
        return int(value)

    def get_float(self, key: str, default: float) -> float:
        value = self.get(key)
        if value is None or value == "":
            return default
        return float(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None or value == "":
            return default
        return value.strip().lower() in ("1", "true", "yes", "on")

    def get_list(self, key: str, separator: str = ",") -> List[str]:
        value = self.get(key) or ""
        return [item.strip() for item in value.split(separator) if item.strip()]

    def domains(self) -> List[str]:
        """Domaines du certificat (SSL_DOMAINS), dans l'ordre déclaré."""
        return self.get_list("SSL_DOMAINS")

    def as_masked_dict(self, masker: Optional[SensitiveMasker] = None) -> Dict[str, Any]:
        """Copie loggable: secrets masqués."""
        masker = masker or SensitiveMasker()
        return masker.mask({**dict(self.values), **dict(self.derived)})


# Source d'un bundle: fichier KEY=value, mapping explicite, ou None (os.environ)
ConfigSource = Union[str, os.PathLike, Mapping[str, Optional[str]], None]


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IConfigLoader(ABC):
    """Charge un bundle d'environnement et le valide."""

    @abstractmethod
    async def load(self, source: ConfigSource = None) -> ConfigBundle:
        """
        Charge et valide un bundle.

        Raises:
            ConfigSourceError: Si la source est illisible
            MissingKeyError: Si une clé requise est absente ou vide
            WeakValueError: Si une valeur est un placeholder ou trop courte
            InvalidValueError: Si une valeur ne respecte pas son format
        """
        pass


class IConfigValidator(ABC):
    """Valide les variables contre les règles statiques."""

    @abstractmethod
    def validate(self, values: Mapping[str, str]) -> ValidationResult:
        """
        Valide TOUTES les règles.
        Retourne TOUS les constats (pas fail-fast).
        """
        pass

    @abstractmethod
    def validate_key(self, rule: KeyRule, values: Mapping[str, str]) -> List[ValidationError]:
        """Valide UNE règle."""
        pass


class ICryptoProvider(ABC):
    """Empreintes et lecture de certificats."""

    @abstractmethod
    def hash(self, data: bytes) -> str:
        """
        Calcule hash SHA-384.

        Returns:
            Hash hex string (96 caractères)
        """
        pass

    @abstractmethod
    def load_certificates(self, pem_data: bytes) -> List[Any]:
        """Charge la chaîne de certificats X.509 d'un bundle PEM."""
        pass

    @abstractmethod
    def certificate_fingerprint(self, certificate: Any) -> str:
        """Empreinte SHA-256 hex d'un certificat."""
        pass
