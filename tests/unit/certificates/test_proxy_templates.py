"""
Tests unitaires pour ProxyConfigRenderer
"""

from pathlib import Path

import pytest
from jinja2 import UndefinedError

from src.certificates.interfaces import ProxyMode
from src.certificates.proxy_templates import ProxyConfigRenderer


@pytest.fixture
def renderer(domains) -> ProxyConfigRenderer:
    return ProxyConfigRenderer(domains, challenge_root="/var/www/certbot", upstream="http://app:8080")


class TestChallenge:
    def test_serves_acme_challenge(self, renderer) -> None:
        config = renderer.challenge()

        assert config.mode == ProxyMode.CHALLENGE
        assert "server_name example.com www.example.com;" in config.content
        assert "location /.well-known/acme-challenge/" in config.content
        assert "root /var/www/certbot;" in config.content

    def test_no_certificate_reference(self, renderer) -> None:
        assert "ssl_certificate" not in renderer.challenge().content


class TestProduction:
    def test_references_live_certificate(self, renderer) -> None:
        config = renderer.production(Path("/le/fullchain.pem"), Path("/le/privkey.pem"))

        assert config.mode == ProxyMode.PRODUCTION
        assert "ssl_certificate /le/fullchain.pem;" in config.content
        assert "ssl_certificate_key /le/privkey.pem;" in config.content
        assert "proxy_pass http://app:8080;" in config.content

    def test_nginx_variables_untouched(self, renderer) -> None:
        content = renderer.production(Path("/a"), Path("/b")).content

        assert "return 301 https://$host$request_uri;" in content
        assert "$proxy_add_x_forwarded_for" in content

    def test_keeps_challenge_location_for_renewal(self, renderer) -> None:
        content = renderer.production(Path("/a"), Path("/b")).content

        assert "/.well-known/acme-challenge/" in content


class TestFingerprint:
    def test_deterministic(self, renderer) -> None:
        first = renderer.production(Path("/a"), Path("/b"))
        second = renderer.production(Path("/a"), Path("/b"))

        assert first.fingerprint == second.fingerprint
        assert len(first.fingerprint) == 96

    def test_modes_differ(self, renderer) -> None:
        assert renderer.challenge().fingerprint != renderer.production(Path("/a"), Path("/b")).fingerprint


def test_domains_required() -> None:
    with pytest.raises(ValueError):
        ProxyConfigRenderer([], challenge_root="/var/www/certbot")


def test_custom_template(domains) -> None:
    renderer = ProxyConfigRenderer(domains, "/srv", challenge_template="# {{ server_names }}\n")

    assert renderer.challenge().content == "# example.com www.example.com\n"


def test_default_templates_keep_trailing_newline(renderer) -> None:
    assert renderer.challenge().content.endswith("}\n")
    assert renderer.production(Path("/a"), Path("/b")).content.endswith("}\n")


def test_unknown_variable_in_custom_template_rejected(domains) -> None:
    renderer = ProxyConfigRenderer(domains, "/srv", challenge_template="server_name {{ server_name }};\n")

    with pytest.raises(UndefinedError):
        renderer.challenge()
