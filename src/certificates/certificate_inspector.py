"""
STACKCTL - Certificates - Certificate Inspector

Vérifie un certificat émis: couverture des domaines (SAN, repli sur le CN),
fenêtre de validité, durée restante minimale.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from cryptography import x509
from cryptography.x509.oid import NameOID

from src.core.crypto_provider import CryptoProvider

from .interfaces import CertificateMaterial, CertificateReport, CutoverError


class CertificateVerificationError(CutoverError):
    """Certificat émis non conforme."""

    def __init__(self, message: str, report: Optional[CertificateReport] = None):
        self.report = report
        super().__init__(message)


def name_matches(pattern: str, domain: str) -> bool:
    """Correspondance exacte, ou wildcard sur un seul label (*.example.com)."""
    pattern = pattern.lower().rstrip(".")
    domain = domain.lower().rstrip(".")
    if pattern == domain:
        return True
    if pattern.startswith("*."):
        head, _, rest = domain.partition(".")
        return bool(head) and rest == pattern[2:]
    return False


class CertificateInspector:
    """Inspection X.509 via cryptography."""

    def __init__(self, crypto: Optional[CryptoProvider] = None, min_valid_days: float = 7):
        self._crypto = crypto or CryptoProvider()
        self._min_valid_days = min_valid_days

    def inspect(
        self,
        pem_data: bytes,
        domains: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> CertificateReport:
        """
        Lit le certificat feuille d'un bundle PEM.

        Raises:
            CertificateVerificationError: Si le PEM est illisible
        """
        try:
            certificates = self._crypto.load_certificates(pem_data)
        except ValueError as e:
            raise CertificateVerificationError(f"Unreadable certificate: {e}")
        if not certificates:
            raise CertificateVerificationError("No certificate in PEM data")

        leaf = certificates[0]
        names = self.subject_names(leaf)
        now = now or datetime.now(timezone.utc)
        not_after = leaf.not_valid_after_utc

        return CertificateReport(
            subject_names=names,
            not_before=leaf.not_valid_before_utc,
            not_after=not_after,
            days_remaining=(not_after - now).total_seconds() / 86400,
            fingerprint=self._crypto.certificate_fingerprint(leaf),
            missing_domains=[d for d in domains if not any(name_matches(n, d) for n in names)],
        )

    @staticmethod
    def subject_names(certificate: x509.Certificate) -> List[str]:
        """SAN DNS, ou CN si le certificat n'a pas d'extension SAN."""
        try:
            san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
            return list(san.value.get_values_for_type(x509.DNSName))
        except x509.ExtensionNotFound:
            return [
                str(attribute.value)
                for attribute in certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
            ]

    def verify(
        self,
        material: CertificateMaterial,
        domains: Sequence[str],
        min_valid_days: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> CertificateReport:
        """
        Vérifie couverture et validité.

        Args:
            material: Certificat à vérifier
            domains: Domaines demandés
            min_valid_days: Durée restante minimale (défaut: celle de l'inspecteur)
            now: Instant de référence (UTC)

        Returns:
            CertificateReport du certificat conforme

        Raises:
            CertificateVerificationError: Domaine manquant, certificat pas
                encore valide, expiré ou sous le seuil
        """
        now = now or datetime.now(timezone.utc)
        threshold = self._min_valid_days if min_valid_days is None else min_valid_days
        pem = material.fullchain_pem or material.fullchain_path.read_bytes()
        report = self.inspect(pem, domains, now=now)

        if report.missing_domains:
            raise CertificateVerificationError(
                f"Certificate does not cover: {', '.join(report.missing_domains)}", report
            )
        if now < report.not_before:
            raise CertificateVerificationError(
                f"Certificate not valid before {report.not_before.isoformat()}", report
            )
        if report.days_remaining <= 0:
            raise CertificateVerificationError(
                f"Certificate expired on {report.not_after.isoformat()}", report
            )
        if report.days_remaining < threshold:
            raise CertificateVerificationError(
                f"Certificate expires in {report.days_remaining:.1f} days, "
                f"minimum is {threshold}",
                report,
            )
        return report

    def is_current(
        self,
        material: CertificateMaterial,
        domains: Sequence[str],
        renew_before_days: float,
        now: Optional[datetime] = None,
    ) -> bool:
        """True si le certificat couvre les domaines et n'est pas à renouveler."""
        try:
            report = self.verify(material, domains, min_valid_days=renew_before_days, now=now)
        except (CertificateVerificationError, OSError):
            return False
        return report.days_remaining > renew_before_days
