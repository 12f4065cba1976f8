"""
Tests unitaires pour CryptoProvider

Empreintes SHA-384 des configurations, lecture des bundles PEM.
"""

import hashlib

import pytest

from conftest import make_certificate
from src.core.crypto_provider import CryptoProvider
from src.core.interfaces import ICryptoProvider


class TestHashing:
    """Empreintes des configurations."""

    def test_hash_is_sha384_hex(self) -> None:
        digest = CryptoProvider().hash(b"server { listen 80; }")

        assert len(digest) == 96
        assert digest == hashlib.sha384(b"server { listen 80; }").hexdigest()

    def test_hash_text_matches_utf8_bytes(self) -> None:
        provider = CryptoProvider()

        assert provider.hash_text("café") == provider.hash("café".encode("utf-8"))

    def test_single_byte_change_changes_hash(self) -> None:
        provider = CryptoProvider()

        assert provider.hash_text("listen 443;") != provider.hash_text("listen 443; ")


class TestCertificates:
    """Lecture X.509."""

    def test_load_fullchain(self) -> None:
        pem = make_certificate(["example.com"]) + make_certificate(["intermediate.test"])

        certificates = CryptoProvider().load_certificates(pem)

        assert len(certificates) == 2

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValueError):
            CryptoProvider().load_certificates(b"not a certificate")

    def test_fingerprint_is_sha256_hex(self) -> None:
        provider = CryptoProvider()
        certificate = provider.load_certificates(make_certificate(["example.com"]))[0]

        assert len(provider.certificate_fingerprint(certificate)) == 64

    def test_implements_interface(self) -> None:
        assert isinstance(CryptoProvider(), ICryptoProvider)
