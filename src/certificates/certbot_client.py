"""
STACKCTL - Certificates - Certbot Client

Émission de certificats Let's Encrypt via `certbot certonly --webroot`.
Les échecs sont classés en erreurs typées à partir de la sortie de certbot.
"""

import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from src.logging.structured_logger import StructuredLogger
from src.runtime.command_runner import CommandRunner, CommandTimeoutError
from src.runtime.interfaces import ICommandRunner

from .interfaces import CertificateClientError, CertificateMaterial, ICertificateClient


class RateLimitedError(CertificateClientError):
    """Limite de l'autorité de certification atteinte."""

    pass


class ChallengeValidationError(CertificateClientError):
    """Challenge HTTP refusé par l'autorité."""

    pass


class CertificateNetworkError(CertificateClientError):
    """Autorité injoignable ou délai dépassé."""

    pass


RATE_LIMIT_PATTERNS = (
    r"too many (certificates|requests|failed authorizations)",
    r"rate ?limit",
    r"urn:ietf:params:acme:error:rateLimited",
)
CHALLENGE_PATTERNS = (
    r"urn:ietf:params:acme:error:(unauthorized|dns|incorrectResponse|caa|rejectedIdentifier)",
    r"challenge failed",
    r"invalid response from",
    r"some challenges have failed",
    r"DNS problem",
)
NETWORK_PATTERNS = (
    r"urn:ietf:params:acme:error:connection",
    r"connection (refused|reset|aborted)",
    r"timed out",
    r"network is unreachable",
    r"failed to establish a new connection",
    r"temporary failure in name resolution",
)


def classify_failure(output: str) -> CertificateClientError:
    """Erreur typée correspondant à la sortie de certbot."""
    summary = _last_meaningful_line(output)
    for patterns, error_class in (
        (RATE_LIMIT_PATTERNS, RateLimitedError),
        (CHALLENGE_PATTERNS, ChallengeValidationError),
        (NETWORK_PATTERNS, CertificateNetworkError),
    ):
        if any(re.search(p, output, re.IGNORECASE) for p in patterns):
            return error_class(summary, output=output)
    return CertificateClientError(summary or "certbot failed", output=output)


def _last_meaningful_line(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    for line in reversed(lines):
        if not line.startswith(("Ask for help", "See the logfile", "- - -")):
            return line
    return ""


class CertbotClient(ICertificateClient):
    """Client ACME adossé à certbot."""

    def __init__(
        self,
        webroot: Path,
        logger: StructuredLogger,
        runner: Optional[ICommandRunner] = None,
        binary: str = "certbot",
        letsencrypt_dir: Path = Path("/etc/letsencrypt"),
        timeout: float = 300.0,
    ):
        self._webroot = Path(webroot)
        self._log = logger.with_context(component="cutover")
        self._runner = runner or CommandRunner()
        self._binary = binary
        self._letsencrypt_dir = Path(letsencrypt_dir)
        self._timeout = timeout

    def live_paths(self, domains: Sequence[str]) -> Tuple[Path, Path]:
        live = self._letsencrypt_dir / "live" / self._primary(domains)
        return live / "fullchain.pem", live / "privkey.pem"

    async def existing_certificate(self, domains: Sequence[str]) -> Optional[CertificateMaterial]:
        fullchain, privkey = self.live_paths(domains)
        if not fullchain.is_file() or not privkey.is_file():
            return None
        return CertificateMaterial(
            primary_domain=self._primary(domains),
            fullchain_path=fullchain,
            privkey_path=privkey,
            fullchain_pem=self._read(fullchain),
        )

    def build_command(
        self,
        domains: Sequence[str],
        email: str,
        staging: bool = False,
        force: bool = False,
    ) -> List[str]:
        argv = [
            self._binary,
            "certonly",
            "--webroot",
            "--webroot-path",
            str(self._webroot),
            "--email",
            email,
            "--agree-tos",
            "--no-eff-email",
            "--non-interactive",
            "--cert-name",
            self._primary(domains),
        ]
        if staging:
            argv.append("--staging")
        if force:
            argv.append("--force-renewal")
        else:
            argv.append("--keep-until-expiring")
        for domain in domains:
            argv += ["-d", domain]
        return argv

    async def issue(
        self,
        domains: Sequence[str],
        email: str,
        staging: bool = False,
        force: bool = False,
    ) -> CertificateMaterial:
        """
        Lance certbot puis lit le certificat publié.

        Raises:
            RateLimitedError: Limite atteinte
            ChallengeValidationError: Challenge refusé
            CertificateNetworkError: Autorité injoignable ou timeout
            CertificateClientError: Autre échec, ou certificat absent après succès
        """
        argv = self.build_command(domains, email, staging=staging, force=force)
        self._log.info("Requesting certificate", domains=list(domains), staging=staging, force=force)

        try:
            result = await self._runner.run(argv, timeout=self._timeout)
        except CommandTimeoutError as e:
            raise CertificateNetworkError(str(e))
        except OSError as e:
            raise CertificateClientError(f"Cannot run {self._binary}: {e}")

        if not result.ok:
            error = classify_failure(result.output)
            self._log.error(
                "Certificate request failed",
                error_type=type(error).__name__,
                detail=str(error),
            )
            raise error

        material = await self.existing_certificate(domains)
        if material is None:
            raise CertificateClientError(
                f"certbot succeeded but no certificate found for {self._primary(domains)}"
            )
        return material

    @staticmethod
    def _read(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise CertificateClientError(f"Cannot read {path}: {e}")

    @staticmethod
    def _primary(domains: Sequence[str]) -> str:
        if not domains:
            raise ValueError("at least one domain is required")
        return domains[0]
