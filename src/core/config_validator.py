"""
STACKCTL - Config Validator Implementation
Valide un bundle d'environnement contre le catalogue statique de clés.
"""

import re
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from .interfaces import (
    IConfigValidator,
    KeyRule,
    ValidationError,
    ValidationResult,
    ValidationSeverity,
)


EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
HOSTNAME = r"(?=.{1,253}$)(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,63}"
DOMAIN_LIST_PATTERN = rf"^\s*{HOSTNAME}\s*(,\s*{HOSTNAME}\s*)*$"
DURATION_PATTERN = r"^[0-9]+[smhd]$"
BOOLEAN_PATTERN = r"^(?i:true|false|1|0|yes|no)$"

# Comparaison exacte, insensible à la casse
PLACEHOLDER_DENYLIST = frozenset(
    {
        "changeme",
        "change_me",
        "change-me",
        "password",
        "passwd",
        "secret",
        "admin",
        "test",
        "default",
        "123456",
        "12345678",
        "qwerty",
        "example",
        "todo",
    }
)

# Sentinelles de template recherchées n'importe où dans la valeur
PLACEHOLDER_SENTINELS = ("changeme", "change_me", "change-me", "change-this", "your-", "replace-me")

# Longueur minimale des secrets de signature
SIGNING_SECRET_MIN_LENGTH = 32


DEFAULT_KEY_RULES: List[KeyRule] = [
    # Secrets obligatoires
    KeyRule("POSTGRES_PASSWORD", security_critical=True, min_length=16,
            description="Mot de passe PostgreSQL"),
    KeyRule("JWT_SECRET", security_critical=True, min_length=SIGNING_SECRET_MIN_LENGTH,
            description="Secret de signature des jetons d'accès"),
    KeyRule("JWT_REFRESH_SECRET", security_critical=True, min_length=SIGNING_SECRET_MIN_LENGTH,
            description="Secret de signature des jetons de rafraîchissement"),
    KeyRule("GRAFANA_ADMIN_PASSWORD", security_critical=True, min_length=12,
            description="Mot de passe administrateur Grafana"),
    # Certificats
    KeyRule("SSL_EMAIL", pattern=EMAIL_PATTERN, description="Contact ACME"),
    KeyRule("SSL_DOMAINS", pattern=DOMAIN_LIST_PATTERN,
            description="Domaines du certificat, séparés par des virgules"),
    # Optionnelles
    KeyRule("POSTGRES_USER", required=False, pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$", default="stack_user"),
    KeyRule("POSTGRES_DB", required=False, pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$", default="stack"),
    KeyRule("POSTGRES_HOST", required=False, default="postgres"),
    KeyRule("POSTGRES_PORT", required=False, numeric_range=(1, 65535), default="5432"),
    KeyRule("REDIS_PASSWORD", required=False, security_critical=True, min_length=16),
    KeyRule("REDIS_HOST", required=False, default="redis"),
    KeyRule("REDIS_PORT", required=False, numeric_range=(1, 65535), default="6379"),
    KeyRule("JWT_EXPIRES_IN", required=False, pattern=DURATION_PATTERN, default="15m"),
    KeyRule("SSL_STAGING", required=False, pattern=BOOLEAN_PATTERN, default="false"),
    KeyRule("CERT_MIN_VALID_DAYS", required=False, numeric_range=(1, 365), default="7"),
    KeyRule("CERT_RENEW_BEFORE_DAYS", required=False, numeric_range=(1, 365), default="30"),
    KeyRule("HEALTH_CHECK_INTERVAL", required=False, numeric_range=(1, 300), default="5"),
    KeyRule("HEALTH_CHECK_RETRIES", required=False, numeric_range=(1, 100), default="10"),
    KeyRule("STACK_ROOT", required=False, pattern=r"^/.*", default="/opt/stack"),
    KeyRule("STACK_OWNER", required=False, pattern=r"^[a-z_][a-z0-9_-]*$"),
    KeyRule("STACK_GROUP", required=False, pattern=r"^[a-z_][a-z0-9_-]*$"),
    KeyRule("STACK_NETWORK", required=False, pattern=r"^[a-zA-Z0-9][a-zA-Z0-9_.-]+$", default="stack_network"),
    KeyRule("STACK_SUBNET", required=False, pattern=r"^\d{1,3}(\.\d{1,3}){3}/\d{1,2}$", default="172.20.0.0/16"),
    KeyRule("STACK_MIN_DISK_GB", required=False, numeric_range=(0, 10000), default="10"),
]


class ConfigValidator(IConfigValidator):
    """Validation du bundle contre les règles statiques de l'orchestrateur."""

    def __init__(self, rules: Optional[Sequence[KeyRule]] = None):
        self._rules: Dict[str, KeyRule] = {}
        for rule in rules if rules is not None else DEFAULT_KEY_RULES:
            if rule.name in self._rules:
                raise ValueError(f"Duplicate key rule: {rule.name}")
            self._rules[rule.name] = rule

    @property
    def rules(self) -> List[KeyRule]:
        return list(self._rules.values())

    @property
    def required_keys(self) -> List[str]:
        return [r.name for r in self._rules.values() if r.required]

    def defaults(self) -> Dict[str, str]:
        """Valeurs par défaut des clés optionnelles."""
        return {r.name: r.default for r in self._rules.values() if r.default is not None}

    def validate(self, values: Mapping[str, str]) -> ValidationResult:
        """
        Valide le bundle contre TOUTES les règles.
        Retourne TOUS les constats (pas fail-fast).
        """
        errors: List[ValidationError] = []
        warnings: List[ValidationError] = []
        infos: List[ValidationError] = []

        for rule in self._rules.values():
            for finding in self.validate_key(rule, values):
                if finding.severity == ValidationSeverity.BLOCKING:
                    errors.append(finding)
                elif finding.severity == ValidationSeverity.WARNING:
                    warnings.append(finding)
                else:
                    infos.append(finding)

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            infos=infos,
            checked_at=datetime.now(),
        )

    def validate_key(self, rule: KeyRule, values: Mapping[str, str]) -> List[ValidationError]:
        """Valide UNE règle. Au plus un constat bloquant par clé."""
        raw = values.get(rule.name)
        value = raw.strip() if isinstance(raw, str) else ""

        if not value:
            if rule.required:
                return [self._finding(rule, "missing_key", f"{rule.name} is missing or empty")]
            if rule.default is not None:
                return [
                    self._finding(
                        rule,
                        "default_applied",
                        f"{rule.name} not set, using default",
                        severity=ValidationSeverity.INFO,
                        value=rule.default,
                    )
                ]
            return []

        checks_placeholder = rule.required or rule.security_critical
        if checks_placeholder and self.is_placeholder(value):
            return [
                self._finding(
                    rule,
                    "weak_value",
                    f"{rule.name} uses a placeholder value",
                    value=value,
                )
            ]

        if rule.min_length and len(value) < rule.min_length:
            return [
                self._finding(
                    rule,
                    "weak_value",
                    f"{rule.name} is shorter than {rule.min_length} characters",
                    value=value,
                )
            ]

        if rule.pattern and not re.match(rule.pattern, value):
            return [
                self._finding(
                    rule,
                    "invalid_value",
                    f"{rule.name} does not match the expected format",
                    value=value,
                )
            ]

        if rule.numeric_range is not None:
            low, high = rule.numeric_range
            try:
                number = int(value)
            except ValueError:
                return [self._finding(rule, "invalid_value", f"{rule.name} is not an integer", value=value)]
            if not low <= number <= high:
                return [
                    self._finding(
                        rule,
                        "invalid_value",
                        f"{rule.name}={number} is outside [{low}, {high}]",
                        value=value,
                    )
                ]

        if rule.security_critical and self._is_low_entropy(value):
            return [
                self._finding(
                    rule,
                    "low_entropy",
                    f"{rule.name} uses very few distinct characters",
                    severity=ValidationSeverity.WARNING,
                )
            ]

        return []

    @staticmethod
    def is_placeholder(value: str) -> bool:
        """True si la valeur est un littéral de la denylist ou contient une sentinelle."""
        lowered = value.strip().lower()
        if lowered in PLACEHOLDER_DENYLIST:
            return True
        return any(sentinel in lowered for sentinel in PLACEHOLDER_SENTINELS)

    @staticmethod
    def _is_low_entropy(value: str) -> bool:
        return len(set(value)) < 6

    def _finding(
        self,
        rule: KeyRule,
        rule_id: str,
        message: str,
        severity: ValidationSeverity = ValidationSeverity.BLOCKING,
        value: Optional[str] = None,
    ) -> ValidationError:
        # Les valeurs des clés sensibles ne sortent jamais du validateur
        shown = None if rule.security_critical else value
        return ValidationError(
            rule_id=rule_id,
            key=rule.name,
            message=message,
            location=f"environment.{rule.name}",
            value=shown,
            severity=severity,
        )
