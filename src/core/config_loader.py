"""
STACKCTL - Config Loader Implementation
Charge le bundle d'environnement (fichier KEY=value ou environnement du
process), applique les valeurs par défaut, dérive les URLs de connexion et
valide le tout avant toute action.
"""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import quote

from dotenv import dotenv_values

from src.logging.structured_logger import StructuredLogger

from .config_validator import ConfigValidator
from .interfaces import (
    ConfigBundle,
    ConfigSource,
    IConfigLoader,
    ValidationError,
    ValidationResult,
)


class ConfigValidationError(Exception):
    """Bundle invalide: au moins un constat bloquant."""

    def __init__(
        self,
        key: str,
        message: Optional[str] = None,
        result: Optional[ValidationResult] = None,
    ):
        self.key = key
        self.result = result
        super().__init__(f"{key}: {message}" if message else key)


class MissingKeyError(ConfigValidationError):
    """Clé requise absente ou vide."""

    pass


class WeakValueError(ConfigValidationError):
    """Valeur placeholder ou trop courte."""

    pass


class InvalidValueError(ConfigValidationError):
    """Valeur hors format ou hors plage."""

    pass


class ConfigSourceError(Exception):
    """Source de configuration illisible."""

    pass


_ERRORS_BY_RULE = {
    "missing_key": MissingKeyError,
    "weak_value": WeakValueError,
    "invalid_value": InvalidValueError,
}


class ConfigLoader(IConfigLoader):
    """Chargement et validation du bundle d'environnement."""

    def __init__(
        self,
        validator: Optional[ConfigValidator] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self._validator = validator or ConfigValidator()
        self._logger = logger
        self._last_result: Optional[ValidationResult] = None

    @property
    def last_result(self) -> Optional[ValidationResult]:
        """Résultat complet de la dernière validation."""
        return self._last_result

    async def load(self, source: ConfigSource = None) -> ConfigBundle:
        """
        Charge et valide un bundle.

        Args:
            source: Chemin d'un fichier KEY=value, mapping explicite,
                ou None pour l'environnement du process

        Returns:
            ConfigBundle immuable (valeurs + URLs dérivées)

        Raises:
            ConfigSourceError: Si le fichier est absent ou illisible
            MissingKeyError: Si une clé requise est absente ou vide
            WeakValueError: Si une valeur est un placeholder ou trop courte
            InvalidValueError: Si une valeur ne respecte pas son format
        """
        raw, origin = self._read_source(source)
        result = self._validator.validate(raw)
        self._last_result = result

        for warning in result.warnings:
            self._log("warn", warning.message, variable=warning.key, rule=warning.rule_id)

        first = result.first_error()
        if first is not None:
            for error in result.errors:
                self._log("error", error.message, variable=error.key, rule=error.rule_id)
            raise self._to_exception(first, result)

        values = self._apply_defaults(raw)
        derived = self.derive_urls(values)
        self._log(
            "info",
            "Configuration bundle loaded",
            source=origin,
            variables=len(values),
            derived=sorted(derived),
        )
        return ConfigBundle(values=values, derived=derived, source=origin)

    def validate(self, source: ConfigSource = None) -> ValidationResult:
        """Valide sans lever: retourne tous les constats (commande `validate`)."""
        raw, _ = self._read_source(source)
        self._last_result = self._validator.validate(raw)
        return self._last_result

    def _read_source(self, source: ConfigSource) -> Tuple[Dict[str, str], str]:
        if source is None:
            return dict(os.environ), "environment"

        if isinstance(source, Mapping):
            return {k: v if v is not None else "" for k, v in source.items()}, "mapping"

        path = Path(source)
        if not path.is_file():
            raise ConfigSourceError(f"Environment file not found: {path}")
        try:
            # Pas d'interpolation: les secrets peuvent contenir '$'
            parsed = dotenv_values(path, interpolate=False, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigSourceError(f"Cannot read environment file {path}: {e}")
        return {k: v if v is not None else "" for k, v in parsed.items()}, str(path)

    def _apply_defaults(self, raw: Mapping[str, str]) -> Dict[str, str]:
        values = {k: v.strip() for k, v in raw.items()}
        for name, default in self._validator.defaults().items():
            if not values.get(name):
                values[name] = default
        return values

    @staticmethod
    def derive_urls(values: Mapping[str, str]) -> Dict[str, str]:
        """
        Dérive DATABASE_URL et REDIS_URL des composantes.

        Une URL déjà définie dans le bundle est conservée telle quelle.
        Les identifiants sont encodés pour l'URL.
        """
        derived: Dict[str, str] = {}

        if not values.get("DATABASE_URL") and values.get("POSTGRES_PASSWORD"):
            derived["DATABASE_URL"] = "postgresql://{user}:{password}@{host}:{port}/{db}".format(
                user=quote(values.get("POSTGRES_USER", ""), safe=""),
                password=quote(values["POSTGRES_PASSWORD"], safe=""),
                host=values.get("POSTGRES_HOST", "postgres"),
                port=values.get("POSTGRES_PORT", "5432"),
                db=values.get("POSTGRES_DB", ""),
            )

        if not values.get("REDIS_URL") and values.get("REDIS_HOST"):
            password = values.get("REDIS_PASSWORD")
            auth = f":{quote(password, safe='')}@" if password else ""
            derived["REDIS_URL"] = "redis://{auth}{host}:{port}/0".format(
                auth=auth,
                host=values["REDIS_HOST"],
                port=values.get("REDIS_PORT", "6379"),
            )

        return derived

    @staticmethod
    def _to_exception(finding: ValidationError, result: ValidationResult) -> ConfigValidationError:
        error_class = _ERRORS_BY_RULE.get(finding.rule_id, InvalidValueError)
        return error_class(finding.key, finding.message, result=result)

    def _log(self, level: str, message: str, **extra) -> None:
        if self._logger is None:
            return
        getattr(self._logger, level)(message, component="config", **extra)
