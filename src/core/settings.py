"""
STACKCTL - Deployment Settings
Paramètres de l'orchestrateur dérivés du bundle validé.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .interfaces import ConfigBundle


# Arborescence de la stack, relative à STACK_ROOT
DEFAULT_LAYOUT: Tuple[str, ...] = (
    "data/postgres",
    "data/redis",
    "logs/nginx",
    "logs/certbot",
    "ssl/certs",
    "ssl/private",
    "ssl/challenges",
    "backups",
    "monitoring",
    "proxy/archive",
    "reports",
)

# Répertoires contenant des secrets: accès propriétaire seulement
PRIVATE_DIRECTORIES = frozenset({"ssl/private", "data/postgres", "data/redis"})


@dataclass(frozen=True)
class DeploymentSettings:
    """Paramètres d'une exécution de l'orchestrateur."""

    stack_root: Path
    owner: Optional[str] = None
    group: Optional[str] = None
    network_name: str = "stack_network"
    subnet: str = "172.20.0.0/16"
    compose_file: Path = Path("docker-compose.yml")
    manifest_path: Path = Path("stack.yaml")
    project_name: Optional[str] = None
    min_disk_gb: int = 10
    min_memory_mb: int = 2048

    # Reverse proxy
    proxy_config_path: Path = Path("/etc/nginx/conf.d/stack.conf")
    proxy_validate_command: str = "nginx -t -c {path}"
    proxy_reload_command: str = "nginx -s reload"
    proxy_upstream: str = "http://web:3000"

    # Certificats
    domains: List[str] = field(default_factory=list)
    email: str = ""
    staging: bool = False
    certbot_binary: str = "certbot"
    letsencrypt_dir: Path = Path("/etc/letsencrypt")
    cert_min_valid_days: int = 7
    cert_renew_before_days: int = 30
    issue_timeout: float = 300.0

    # Sondes
    health_check_interval: float = 5.0
    health_check_retries: int = 10

    @property
    def webroot(self) -> Path:
        return self.stack_root / "ssl" / "challenges"

    @property
    def archive_dir(self) -> Path:
        return self.stack_root / "proxy" / "archive"

    @property
    def reports_dir(self) -> Path:
        return self.stack_root / "reports"

    @property
    def lock_path(self) -> Path:
        return self.stack_root / ".stackctl.lock"

    @property
    def cutover_lock_path(self) -> Path:
        return self.stack_root / ".cutover.lock"

    def layout(self) -> List[Tuple[Path, int]]:
        """Répertoires à provisionner avec leur mode."""
        return [
            (self.stack_root / rel, 0o700 if rel in PRIVATE_DIRECTORIES else 0o755)
            for rel in DEFAULT_LAYOUT
        ]

    @classmethod
    def from_bundle(cls, bundle: ConfigBundle) -> "DeploymentSettings":
        """
        Construit les paramètres depuis un bundle validé.

        Les clés STACK_*, PROXY_* et CERT_* absentes prennent leur valeur
        par défaut.
        """
        stack_root = Path(bundle.get("STACK_ROOT") or "/opt/stack")
        compose = Path(bundle.get("STACK_COMPOSE_FILE") or "docker-compose.yml")
        if not compose.is_absolute():
            compose = stack_root / compose
        manifest = Path(bundle.get("STACK_MANIFEST") or "stack.yaml")
        if not manifest.is_absolute():
            manifest = stack_root / manifest

        return cls(
            stack_root=stack_root,
            owner=bundle.get("STACK_OWNER") or None,
            group=bundle.get("STACK_GROUP") or None,
            network_name=bundle.get("STACK_NETWORK") or "stack_network",
            subnet=bundle.get("STACK_SUBNET") or "172.20.0.0/16",
            compose_file=compose,
            manifest_path=manifest,
            project_name=bundle.get("STACK_PROJECT") or None,
            min_disk_gb=bundle.get_int("STACK_MIN_DISK_GB", 10),
            min_memory_mb=bundle.get_int("STACK_MIN_MEMORY_MB", 2048),
            proxy_config_path=Path(
                bundle.get("PROXY_CONFIG_PATH") or "/etc/nginx/conf.d/stack.conf"
            ),
            proxy_validate_command=bundle.get("PROXY_VALIDATE_COMMAND") or "nginx -t -c {path}",
            proxy_reload_command=bundle.get("PROXY_RELOAD_COMMAND") or "nginx -s reload",
            proxy_upstream=bundle.get("PROXY_UPSTREAM") or "http://web:3000",
            domains=bundle.domains(),
            email=bundle.get("SSL_EMAIL") or "",
            staging=bundle.get_bool("SSL_STAGING", False),
            certbot_binary=bundle.get("CERTBOT_BINARY") or "certbot",
            letsencrypt_dir=Path(bundle.get("LETSENCRYPT_DIR") or "/etc/letsencrypt"),
            cert_min_valid_days=bundle.get_int("CERT_MIN_VALID_DAYS", 7),
            cert_renew_before_days=bundle.get_int("CERT_RENEW_BEFORE_DAYS", 30),
            issue_timeout=bundle.get_float("CERT_ISSUE_TIMEOUT", 300.0),
            health_check_interval=bundle.get_float("HEALTH_CHECK_INTERVAL", 5.0),
            health_check_retries=bundle.get_int("HEALTH_CHECK_RETRIES", 10),
        )
