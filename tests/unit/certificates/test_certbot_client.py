"""
Tests unitaires pour CertbotClient

Construction de la commande certbot, classification des échecs, lecture
du certificat publié.
"""

import pytest

from conftest import ScriptedRunner, failed, make_certificate
from src.certificates.certbot_client import (
    CertbotClient,
    CertificateNetworkError,
    ChallengeValidationError,
    RateLimitedError,
    classify_failure,
)
from src.certificates.interfaces import CertificateClientError
from src.runtime.command_runner import CommandTimeoutError


@pytest.fixture
def client_factory(tmp_path, logger):
    def factory(runner=None) -> CertbotClient:
        return CertbotClient(
            webroot=tmp_path / "webroot",
            logger=logger,
            runner=runner or ScriptedRunner(),
            letsencrypt_dir=tmp_path / "letsencrypt",
        )

    return factory


def publish(tmp_path, domains) -> None:
    live = tmp_path / "letsencrypt" / "live" / domains[0]
    live.mkdir(parents=True)
    (live / "fullchain.pem").write_bytes(make_certificate(domains))
    (live / "privkey.pem").write_bytes(b"key")


class TestBuildCommand:
    """Commande certbot."""

    def test_default_command(self, client_factory, tmp_path, domains) -> None:
        argv = client_factory().build_command(domains, "ops@example.com")

        assert argv[:3] == ["certbot", "certonly", "--webroot"]
        assert argv[argv.index("--webroot-path") + 1] == str(tmp_path / "webroot")
        assert argv[argv.index("--cert-name") + 1] == "example.com"
        assert "--keep-until-expiring" in argv
        assert "--staging" not in argv
        assert argv[-4:] == ["-d", "example.com", "-d", "www.example.com"]

    def test_staging_and_force(self, client_factory, domains) -> None:
        argv = client_factory().build_command(domains, "ops@example.com", staging=True, force=True)

        assert "--staging" in argv
        assert "--force-renewal" in argv
        assert "--keep-until-expiring" not in argv

    def test_no_domain(self, client_factory) -> None:
        with pytest.raises(ValueError):
            client_factory().live_paths([])


class TestClassifyFailure:
    """Sortie certbot -> erreur typée."""

    @pytest.mark.parametrize(
        "output,error_class",
        [
            ("Error: too many certificates already issued for exact set of domains", RateLimitedError),
            ("urn:ietf:params:acme:error:rateLimited", RateLimitedError),
            ("Some challenges have failed.", ChallengeValidationError),
            ("Invalid response from http://example.com/.well-known/acme-challenge/x: 404", ChallengeValidationError),
            ("urn:ietf:params:acme:error:connection :: Connection refused", CertificateNetworkError),
            ("Temporary failure in name resolution", CertificateNetworkError),
            ("Something unexpected happened", CertificateClientError),
        ],
    )
    def test_classification(self, output, error_class) -> None:
        error = classify_failure(output)

        assert type(error) is error_class
        assert error.output == output

    def test_summary_skips_boilerplate(self) -> None:
        output = "Some challenges have failed.\nAsk for help or search for solutions at https://community.letsencrypt.org\n"

        assert str(classify_failure(output)) == "Some challenges have failed."

    def test_empty_output(self) -> None:
        assert str(classify_failure("")) == "certbot failed"


class TestIssue:
    """Émission."""

    @pytest.mark.asyncio
    async def test_issue_reads_published_certificate(self, client_factory, tmp_path, domains) -> None:
        publish(tmp_path, domains)
        runner = ScriptedRunner()

        material = await client_factory(runner).issue(domains, "ops@example.com")

        assert material.primary_domain == "example.com"
        assert material.fullchain_pem.startswith(b"-----BEGIN CERTIFICATE-----")
        assert runner.calls[0][1] == "certonly"

    @pytest.mark.asyncio
    async def test_rate_limited(self, client_factory, domains) -> None:
        runner = ScriptedRunner([failed("too many failed authorizations recently")])

        with pytest.raises(RateLimitedError):
            await client_factory(runner).issue(domains, "ops@example.com")

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self, client_factory, domains) -> None:
        runner = ScriptedRunner([CommandTimeoutError(["certbot"], 300)])

        with pytest.raises(CertificateNetworkError):
            await client_factory(runner).issue(domains, "ops@example.com")

    @pytest.mark.asyncio
    async def test_success_without_certificate(self, client_factory, domains) -> None:
        with pytest.raises(CertificateClientError, match="no certificate found"):
            await client_factory().issue(domains, "ops@example.com")

    @pytest.mark.asyncio
    async def test_binary_not_executable(self, tmp_path, logger, domains) -> None:
        binary = tmp_path / "certbot"
        binary.write_text("#!/bin/sh\nexit 0\n")
        binary.chmod(0o644)
        client = CertbotClient(webroot=tmp_path / "webroot", logger=logger, binary=str(binary))

        with pytest.raises(CertificateClientError, match="Cannot run"):
            await client.issue(domains, "ops@example.com")


class TestExistingCertificate:
    @pytest.mark.asyncio
    async def test_absent(self, client_factory, domains) -> None:
        assert await client_factory().existing_certificate(domains) is None

    @pytest.mark.asyncio
    async def test_present(self, client_factory, tmp_path, domains) -> None:
        publish(tmp_path, domains)

        material = await client_factory().existing_certificate(domains)

        assert material.fullchain_path == tmp_path / "letsencrypt" / "live" / "example.com" / "fullchain.pem"
        assert material.privkey_path.name == "privkey.pem"
