"""
STACKCTL - Pytest Configuration
Fixtures partagées: logger en mémoire, collaborateurs factices, certificats.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from src.certificates.interfaces import (
    CertificateMaterial,
    ICertificateClient,
    IReverseProxy,
    ProxyConfiguration,
    ProxyMode,
)
from src.certificates.nginx_proxy import ProxyValidationError
from src.logging.interfaces import LogConfig, LogLevel
from src.logging.structured_logger import StructuredLogger
from src.provisioning.interfaces import HostSnapshot, IHostResourceChecker, ResourceCheck, ResourceStatus
from src.runtime.compose_runtime import ContainerRuntimeError
from src.runtime.interfaces import (
    CommandResult,
    ContainerStatus,
    ICommandRunner,
    IContainerRuntime,
    IReadinessProbe,
    NetworkStatus,
)


# Bundle minimal accepté par les règles par défaut
VALID_ENV: Dict[str, str] = {
    "POSTGRES_PASSWORD": "Xk9#mP2$vL7@nQ4!",
    "JWT_SECRET": "a8F3kL9mN2pQ5rT7vW0xY4zB6cD1eG8h",
    "JWT_REFRESH_SECRET": "Z1y2X3w4V5u6T7s8R9q0P1o2N3m4L5k6",
    "GRAFANA_ADMIN_PASSWORD": "Gr4f@na-Adm1n!",
    "SSL_EMAIL": "ops@example.com",
    "SSL_DOMAINS": "example.com,www.example.com",
}


@pytest.fixture
def valid_env() -> Dict[str, str]:
    return dict(VALID_ENV)


@pytest.fixture
def logger() -> StructuredLogger:
    """Logger dont les entrées restent en mémoire."""
    return StructuredLogger("test", config=LogConfig(min_level=LogLevel.DEBUG))


# ============================================================================
# Certificats
# ============================================================================


def make_certificate(
    domains: Sequence[str],
    days_valid: float = 90,
    not_before_days: float = -1,
    with_san: bool = True,
) -> bytes:
    """Certificat auto-signé PEM pour les domaines donnés."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])])
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now + timedelta(days=not_before_days))
        .not_valid_after(now + timedelta(days=days_valid))
    )
    if with_san:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
    certificate = builder.sign(key, hashes.SHA256())
    return certificate.public_bytes(serialization.Encoding.PEM)


def make_material(domains: Sequence[str], **kwargs) -> CertificateMaterial:
    live = Path("/etc/letsencrypt/live") / domains[0]
    return CertificateMaterial(
        primary_domain=domains[0],
        fullchain_path=live / "fullchain.pem",
        privkey_path=live / "privkey.pem",
        fullchain_pem=make_certificate(domains, **kwargs),
    )


# ============================================================================
# Collaborateurs factices
# ============================================================================


class FakeRuntime(IContainerRuntime):
    """Runtime en mémoire: enregistre les démarrages, statuts scriptés."""

    def __init__(
        self,
        statuses: Optional[Dict[str, str]] = None,
        available: bool = True,
        start_errors: Optional[Dict[str, Exception]] = None,
        existing_subnets: Optional[List[str]] = None,
    ):
        self.statuses = statuses or {}
        self.available = available
        self.start_errors = start_errors or {}
        self.existing_subnets = existing_subnets
        self.started: List[str] = []
        self.networks: List[Tuple[str, Optional[str]]] = []
        self.log_requests: List[str] = []

    async def check_available(self) -> bool:
        return self.available

    async def start_service(self, name: str) -> None:
        self.started.append(name)
        if name in self.start_errors:
            raise self.start_errors[name]

    async def get_status(self, name: str) -> str:
        return self.statuses.get(name, ContainerStatus.RUNNING)

    async def fetch_logs(self, name: str, lines: int = 50) -> List[str]:
        self.log_requests.append(name)
        return [f"{name} log line {i}" for i in range(3)]

    async def ensure_network(self, name: str, subnet: Optional[str] = None) -> NetworkStatus:
        self.networks.append((name, subnet))
        if self.existing_subnets is None:
            return NetworkStatus(name=name, created=True, subnets=[subnet] if subnet else [])
        return NetworkStatus(
            name=name,
            created=False,
            subnets=list(self.existing_subnets),
            subnet_conflict=bool(subnet) and subnet not in self.existing_subnets,
        )


class FailingNetworkRuntime(FakeRuntime):
    async def ensure_network(self, name: str, subnet: Optional[str] = None) -> NetworkStatus:
        raise ContainerRuntimeError("network create", name, "permission denied")


class ScriptedProbe(IReadinessProbe):
    """Sonde dont les réponses successives sont scriptées (la dernière se répète)."""

    def __init__(self, name: str, answers: Sequence[Union[bool, Exception]]):
        self.name = name
        self.answers = list(answers)
        self.calls = 0

    async def check(self) -> bool:
        answer = self.answers[min(self.calls, len(self.answers) - 1)]
        self.calls += 1
        if isinstance(answer, Exception):
            raise answer
        return answer

    def describe(self) -> str:
        return f"scripted probe {self.name}"


class ProbeBoard:
    """Fabrique de sondes scriptées par nom de service (healthy par défaut)."""

    def __init__(self, answers: Optional[Dict[str, Sequence[Union[bool, Exception]]]] = None):
        self.answers = answers or {}
        self.probes: Dict[str, ScriptedProbe] = {}

    def __call__(self, spec, service, runtime, runner=None) -> IReadinessProbe:
        probe = ScriptedProbe(service, self.answers.get(service, [True]))
        self.probes[service] = probe
        return probe


class FakeProxy(IReverseProxy):
    """Proxy en mémoire: config live, reloads, rejets de validation par mode."""

    def __init__(self, live: Optional[str] = None, reject: Sequence[ProxyMode] = ()):
        self.live = live
        self.reject = set(reject)
        self.applied: List[ProxyConfiguration] = []
        self.reloads = 0

    async def current(self) -> Optional[str]:
        return self.live

    async def validate(self, config: ProxyConfiguration) -> None:
        if config.mode in self.reject:
            raise ProxyValidationError(f"{config.mode.value} config rejected", "nginx: [emerg]")

    async def apply(self, config: ProxyConfiguration) -> Optional[Path]:
        await self.validate(config)
        archived = Path(f"/archive/stack.conf.{len(self.applied)}") if self.live is not None else None
        self.live = config.content
        self.applied.append(config)
        self.reloads += 1
        return archived


class FakeCertificateClient(ICertificateClient):
    """Client ACME factice: certificat existant et résultat d'émission scriptés."""

    def __init__(
        self,
        existing: Optional[CertificateMaterial] = None,
        issued: Optional[CertificateMaterial] = None,
        error: Optional[Exception] = None,
    ):
        self.existing = existing
        self.issued = issued
        self.error = error
        self.issue_calls: List[Dict[str, object]] = []

    def live_paths(self, domains: Sequence[str]) -> Tuple[Path, Path]:
        live = Path("/etc/letsencrypt/live") / domains[0]
        return live / "fullchain.pem", live / "privkey.pem"

    async def existing_certificate(self, domains: Sequence[str]) -> Optional[CertificateMaterial]:
        return self.existing

    async def issue(
        self,
        domains: Sequence[str],
        email: str,
        staging: bool = False,
        force: bool = False,
    ) -> CertificateMaterial:
        self.issue_calls.append({"domains": list(domains), "email": email, "staging": staging, "force": force})
        if self.error is not None:
            raise self.error
        if self.issued is None:
            self.issued = make_material(domains)
        self.existing = self.issued
        return self.issued


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def domains() -> List[str]:
    return ["example.com", "www.example.com"]


class ScriptedRunner(ICommandRunner):
    """
    Exécuteur de commandes factice.

    Les réponses en file sont consommées dans l'ordre, puis handler(argv)
    s'il est fourni, sinon succès vide. Une exception en file est levée.
    """

    def __init__(
        self,
        responses: Optional[List[Union[CommandResult, Exception]]] = None,
        handler: Optional[Callable[[List[str]], CommandResult]] = None,
    ):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: List[List[str]] = []

    async def run(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        if self.handler is not None:
            return self.handler(argv)
        return CommandResult(argv=argv, returncode=0)


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(argv=[], returncode=0, stdout=stdout)


def failed(stderr: str = "error", returncode: int = 1) -> CommandResult:
    return CommandResult(argv=[], returncode=returncode, stderr=stderr)


class StubHostChecker(IHostResourceChecker):
    """Ressources hôte fixées par le test."""

    def __init__(self, disk: ResourceStatus = ResourceStatus.OK, memory: ResourceStatus = ResourceStatus.OK):
        self.disk = disk
        self.memory = memory

    def check(self) -> HostSnapshot:
        return HostSnapshot(
            checks=[
                ResourceCheck(name="disk", status=self.disk, available=50.0, threshold=10, unit="GiB",
                              message=f"disk {self.disk.value}"),
                ResourceCheck(name="memory", status=self.memory, available=4096.0, threshold=2048, unit="MiB",
                              message=f"memory {self.memory.value}"),
            ]
        )
