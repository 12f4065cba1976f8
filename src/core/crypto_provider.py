"""
STACKCTL - Crypto Provider Implementation
Empreintes SHA-384 des configurations et lecture des certificats X.509.
"""

import hashlib
from typing import List

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from .interfaces import ICryptoProvider


class CryptoProvider(ICryptoProvider):
    """Implémentation des opérations cryptographiques de l'orchestrateur."""

    def hash(self, data: bytes) -> str:
        """
        Calcule hash SHA-384.

        Returns:
            Hash hex string (96 caractères)
        """
        digest = hashlib.sha384(data).hexdigest()
        return digest

    def hash_text(self, text: str) -> str:
        return self.hash(text.encode("utf-8"))

    def load_certificates(self, pem_data: bytes) -> List[x509.Certificate]:
        """
        Charge la chaîne de certificats d'un bundle PEM.

        Args:
            pem_data: Contenu PEM (fullchain)

        Returns:
            Certificats dans l'ordre du fichier, feuille en premier

        Raises:
            ValueError: Si aucun certificat PEM valide n'est présent
        """
        return x509.load_pem_x509_certificates(pem_data)

    def certificate_fingerprint(self, certificate: x509.Certificate) -> str:
        """Empreinte SHA-256 hex d'un certificat."""
        return certificate.fingerprint(hashes.SHA256()).hex()
