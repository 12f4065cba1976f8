"""
STACKCTL - Logging - Structured Logger

Logger JSON structuré avec champs obligatoires.

Chaque exécution de l'orchestrateur reçoit un correlation_id unique; chaque
sous-système (config, provisioner, rollout, reporter, cutover, cli) logge via
un ContextualLogger qui fixe son component.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .interfaces import (
    IStructuredLogger,
    ISensitiveMasker,
    LogConfig,
    LogEntry,
    LogLevel,
)
from .sensitive_masker import SensitiveMasker


class MissingRequiredFieldError(Exception):
    """Champ obligatoire manquant."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f"Required log field missing: {field_name}")


class StructuredLogger(IStructuredLogger):
    """
    Logger JSON structuré avec champs obligatoires.

    Example:
        logger = StructuredLogger("stackctl")
        logger.set_default_correlation(run_id)
        rollout_log = logger.with_context(component="rollout")
        rollout_log.info("Tier started", tier=0, services=["postgres"])
    """

    def __init__(
        self,
        name: str,
        config: Optional[LogConfig] = None,
        masker: Optional[ISensitiveMasker] = None,
        output_handler: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Initialise le logger structuré.

        Args:
            name: Nom du logger
            config: Configuration optionnelle
            masker: Masker pour données sensibles
            output_handler: Handler de sortie (stderr, fichier, capture en test)

        Raises:
            ValueError: Si name vide
        """
        if not name or not name.strip():
            raise ValueError("Logger name cannot be empty")

        self._name = name.strip()
        self._config = config or LogConfig()
        self._masker = masker or SensitiveMasker()
        self._output_handler = output_handler
        self._entries: List[LogEntry] = []
        self._default_component: Optional[str] = self._config.default_component
        self._default_correlation_id: Optional[str] = self._config.default_correlation_id

    @property
    def name(self) -> str:
        """Retourne le nom du logger."""
        return self._name

    @property
    def config(self) -> LogConfig:
        """Retourne la configuration."""
        return self._config

    @property
    def correlation_id(self) -> Optional[str]:
        """Retourne le correlation_id par défaut (ID de l'exécution)."""
        return self._default_correlation_id

    def set_default_component(self, component: str) -> None:
        """Définit le component par défaut."""
        self._default_component = component

    def set_default_correlation(self, correlation_id: str) -> None:
        """Définit correlation_id par défaut."""
        self._default_correlation_id = correlation_id

    def set_output_handler(self, output_handler: Optional[Callable[[str], None]]) -> None:
        """Remplace le handler de sortie."""
        self._output_handler = output_handler

    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        component: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        """
        Crée log structuré JSON.

        Processus:
            1. Vérifie niveau >= min_level
            2. Génère timestamp ISO 8601 UTC
            3. Résout correlation_id et component
            4. Masque données sensibles dans extra
            5. Crée LogEntry et l'émet en JSON

        Raises:
            MissingRequiredFieldError: Si component ou message manquant
        """
        if not self._should_log(level):
            return None

        resolved_correlation = correlation_id or self._default_correlation_id
        if not resolved_correlation:
            resolved_correlation = self._generate_correlation_id()
            self._default_correlation_id = resolved_correlation

        resolved_component = component or self._default_component
        if not resolved_component:
            raise MissingRequiredFieldError("component")

        if not message:
            raise MissingRequiredFieldError("message")

        masked_extra: Dict[str, Any] = {}
        if extra and self._config.include_extra:
            if self._config.mask_sensitive:
                masked_extra = self._masker.mask(dict(extra))
            else:
                masked_extra = dict(extra)

        entry = LogEntry(
            timestamp=self._generate_timestamp(),
            level=level,
            correlation_id=resolved_correlation,
            component=resolved_component,
            message=message,
            extra=masked_extra,
            logger_name=self._name,
        )

        self._entries.append(entry)
        if self._config.max_entries and len(self._entries) > self._config.max_entries:
            del self._entries[0]

        if self._output_handler:
            self._output_handler(entry.to_json())

        return entry

    def _generate_timestamp(self) -> str:
        """
        Génère timestamp ISO 8601 UTC avec millisecondes.

        Format: 2024-12-04T14:30:00.123Z
        """
        now = datetime.now(timezone.utc)
        return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

    def _generate_correlation_id(self) -> str:
        """Génère un correlation_id unique (UUID v4)."""
        return str(uuid.uuid4())

    def _should_log(self, level: LogLevel) -> bool:
        return LogLevel.get_priority(level) >= LogLevel.get_priority(self._config.min_level)

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau DEBUG."""
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau INFO."""
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau WARN."""
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau ERROR."""
        return self.log(LogLevel.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau CRITICAL."""
        return self.log(LogLevel.CRITICAL, message, **extra)

    def get_entries(self) -> List[LogEntry]:
        """
        Retourne les entrées de log capturées.

        Returns:
            Liste des LogEntry
        """
        return list(self._entries)

    def clear_entries(self) -> None:
        """Efface les entrées capturées."""
        self._entries.clear()

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        """Filtre les entrées par niveau."""
        return [e for e in self._entries if e.level == level]

    def get_entries_by_component(self, component: str) -> List[LogEntry]:
        """Filtre les entrées par sous-système."""
        return [e for e in self._entries if e.component == component]

    def with_context(
        self,
        component: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> "ContextualLogger":
        """
        Crée un logger avec contexte pré-défini.

        Args:
            component: Sous-système pour ce contexte
            correlation_id: ID corrélation pour ce contexte

        Returns:
            ContextualLogger avec contexte fixé
        """
        return ContextualLogger(
            self,
            component=component or self._default_component,
            correlation_id=correlation_id,
        )


class ContextualLogger:
    """
    Logger avec contexte pré-défini.

    Wrapper qui fixe component (et éventuellement correlation_id) pour
    éviter de les répéter à chaque appel.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        component: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        self._logger = logger
        self._component = component
        self._correlation_id = correlation_id

    @property
    def component(self) -> Optional[str]:
        return self._component

    def log(self, level: LogLevel, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log avec contexte."""
        return self._logger.log(
            level,
            message,
            correlation_id=self._correlation_id,
            component=self._component,
            **extra,
        )

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.CRITICAL, message, **extra)
