"""
Security service: chain validation and the OU-based client authorization policy.
"""
import ipaddress
import logging
import os
import ssl
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError

from ..models.errors import ChainValidationError
from ..models.pki import ExtendedKeyUsagePurpose, ExtensionSet, KeyUsageFlag
from .models import (
    AuthenticationResult,
    CertificateBundle,
    CertificateInfo,
    CertificatePurpose,
    SecurityConfig,
)

MAX_CLIENT_CHAIN_DEPTH = 8


def _verification_subject(hostname: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(hostname))
    except ValueError:
        return x509.DNSName(hostname)


def _check_issued_by(certificate: x509.Certificate, issuer: x509.Certificate):
    try:
        certificate.verify_directly_issued_by(issuer)
    except (InvalidSignature, ValueError, TypeError) as e:
        raise ChainValidationError(
            f"{certificate.subject.rfc4514_string()!r} is not signed by "
            f"{issuer.subject.rfc4514_string()!r}: {e}"
        ) from e


def _check_ca_certificate(certificate: x509.Certificate):
    extensions = ExtensionSet.from_certificate(certificate)
    if not extensions.is_ca:
        raise ChainValidationError(f"issuer {certificate.subject.rfc4514_string()!r} is not a CA")
    if extensions.key_usage and KeyUsageFlag.KEY_CERT_SIGN not in extensions.key_usage:
        raise ChainValidationError(
            f"issuer {certificate.subject.rfc4514_string()!r} may not sign certificates"
        )


def _check_validity_window(certificate: x509.Certificate, now: datetime):
    if not certificate.not_valid_before_utc <= now <= certificate.not_valid_after_utc:
        raise ChainValidationError(
            f"{certificate.subject.rfc4514_string()!r} is outside its validity window "
            f"({certificate.not_valid_before_utc.isoformat()} to "
            f"{certificate.not_valid_after_utc.isoformat()})"
        )


def organizational_units(certificate: x509.Certificate) -> List[str]:
    """All OU values in the certificate subject, in order."""
    return [
        attribute.value
        for attribute in certificate.subject.get_attributes_for_oid(NameOID.ORGANIZATIONAL_UNIT_NAME)
    ]


class SecurityService:
    """Validates certificates against the generated roots and authorizes clients by OU."""

    def __init__(self, config: SecurityConfig):
        """Initialize the security service with configuration."""
        self.config = config
        self.logger = logging.getLogger(__name__)
        self._certificate_bundle: Optional[CertificateBundle] = None

    def load_certificates(self) -> CertificateBundle:
        """Load the server chain, server key and client CA from configured paths."""
        try:
            self._certificate_bundle = CertificateBundle(
                server_chain=self._load_certificate_file(self.config.server_cert_path),
                server_key=self._load_certificate_file(self.config.server_key_path),
                client_ca_cert=self._load_certificate_file(self.config.client_ca_path)
            )
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to load certificates: {e}")
            raise

        self.logger.info("Successfully loaded certificate bundle")
        return self._certificate_bundle

    def _load_certificate_file(self, file_path: str) -> str:
        """Load certificate content from file."""
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Certificate file not found: {file_path}")

        with open(file_path, 'r') as f:
            content = f.read()

        if not content.strip():
            raise ValueError(f"Certificate file is empty: {file_path}")

        return content

    def verify_chain(self, leaf: x509.Certificate, trust_root: x509.Certificate,
                     purpose: CertificatePurpose,
                     intermediates: Sequence[x509.Certificate] = (),
                     hostname: Optional[str] = None) -> List[x509.Certificate]:
        """
        Build and validate a path from leaf to trust_root.

        Args:
            leaf: End-entity certificate to validate
            trust_root: The only trusted anchor
            purpose: SERVER requires serverAuth and a SAN match, CLIENT requires clientAuth
            intermediates: Untrusted certificates that may complete the path
            hostname: Server identity to match; defaults to the leaf's common name

        Returns:
            The validated chain, leaf first

        Raises:
            ChainValidationError: If no valid path exists
        """
        if purpose is CertificatePurpose.CLIENT:
            return self._verify_client_chain(leaf, trust_root, intermediates)

        if hostname is None:
            common_names = leaf.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
            if not common_names:
                raise ChainValidationError("no hostname given and leaf has no common name")
            hostname = common_names[0].value

        builder = PolicyBuilder().store(Store([trust_root]))
        try:
            verifier = builder.build_server_verifier(_verification_subject(hostname))
            chain = verifier.verify(leaf, list(intermediates))
        except VerificationError as e:
            raise ChainValidationError(
                f"{purpose.value} certificate {leaf.subject.rfc4514_string()!r} does not chain to "
                f"{trust_root.subject.rfc4514_string()!r}: {e}"
            ) from e

        return list(chain)

    def _verify_client_chain(self, leaf: x509.Certificate, trust_root: x509.Certificate,
                             intermediates: Sequence[x509.Certificate]) -> List[x509.Certificate]:
        """
        Walk issuer links from a client leaf up to trust_root.

        Client leaves carry no SAN, so the path is checked directly: signature,
        validity window and CA constraints at every link, clientAuth on the leaf.
        """
        now = datetime.now(timezone.utc)
        subject = leaf.subject.rfc4514_string()

        leaf_extensions = ExtensionSet.from_certificate(leaf)
        if leaf_extensions.is_ca:
            raise ChainValidationError(f"client certificate {subject!r} is a CA certificate")
        if ExtendedKeyUsagePurpose.CLIENT_AUTH not in leaf_extensions.extended_key_usage:
            raise ChainValidationError(f"client certificate {subject!r} is not valid for clientAuth")

        _check_validity_window(leaf, now)
        _check_issued_by(trust_root, trust_root)

        chain = [leaf]
        candidates = list(intermediates)
        current = leaf
        while current != trust_root:
            if len(chain) > MAX_CLIENT_CHAIN_DEPTH:
                raise ChainValidationError(f"client chain for {subject!r} is too long")

            issuer = next(
                (c for c in [trust_root] + candidates if c.subject == current.issuer), None
            )
            if issuer is None:
                raise ChainValidationError(
                    f"client certificate {subject!r} does not chain to "
                    f"{trust_root.subject.rfc4514_string()!r}: issuer "
                    f"{current.issuer.rfc4514_string()!r} is not trusted"
                )

            _check_issued_by(current, issuer)
            _check_ca_certificate(issuer)
            _check_validity_window(issuer, now)

            if issuer is not trust_root:
                candidates.remove(issuer)
                chain.append(issuer)
            current = issuer

        chain.append(trust_root)
        return chain

    def is_authorized_client(self, certificate: x509.Certificate) -> bool:
        """True when any subject OU is in the allowed set (exact, case-sensitive)."""
        allowed = set(self.config.allowed_organizational_units)
        return any(unit in allowed for unit in organizational_units(certificate))

    def validate_client_certificate(self, cert_pem: str) -> AuthenticationResult:
        """Validate a client certificate against the client CA and the OU policy."""
        try:
            cert = x509.load_pem_x509_certificate(cert_pem.encode())
            client_ca = self._client_ca()

            self.verify_chain(cert, client_ca, CertificatePurpose.CLIENT)

            units = organizational_units(cert)
            unit = units[0] if units else None
            if not self.is_authorized_client(cert):
                self.logger.warning(f"Client OU {units} not in allowed set")
                return AuthenticationResult(
                    is_authenticated=False,
                    client_id=None,
                    error_message=f"Organizational unit {unit!r} is not authorized",
                    organizational_unit=unit
                )

            client_id = self._extract_client_id(cert)
            self.logger.info(f"Successfully authenticated client: {client_id}")
            return AuthenticationResult(
                is_authenticated=True,
                client_id=client_id,
                error_message=None,
                organizational_unit=unit
            )

        except (ChainValidationError, ValueError, OSError) as e:
            self.logger.error(f"Certificate validation failed: {e}")
            return AuthenticationResult(
                is_authenticated=False,
                client_id=None,
                error_message=f"Certificate validation error: {str(e)}"
            )

    def _client_ca(self) -> x509.Certificate:
        if not self._certificate_bundle:
            raise ValueError("Certificate bundle not loaded. Call load_certificates() first.")
        return x509.load_pem_x509_certificate(self._certificate_bundle.client_ca_cert.encode())

    def _extract_client_id(self, cert: x509.Certificate) -> str:
        """Extract client ID from certificate subject."""
        for attribute in cert.subject:
            if attribute.oid == NameOID.COMMON_NAME:
                return attribute.value

        # Fallback to serial number if CN not found
        return str(cert.serial_number)

    def get_certificate_info(self, cert_pem: str) -> CertificateInfo:
        """Get detailed information about a certificate."""
        cert = x509.load_pem_x509_certificate(cert_pem.encode())
        now = datetime.now(timezone.utc)
        extensions = ExtensionSet.from_certificate(cert)

        return CertificateInfo(
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            serial_number=format(cert.serial_number, 'x'),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            is_valid=cert.not_valid_before_utc <= now <= cert.not_valid_after_utc,
            is_ca=extensions.is_ca,
            fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
            subject_alt_names=[str(san) for san in extensions.subject_alt_names],
            organizational_units=organizational_units(cert)
        )

    def setup_mtls_context(self) -> ssl.SSLContext:
        """Create a server-side SSL context that requires client certificates."""
        if not self._certificate_bundle:
            raise ValueError("Certificate bundle not loaded. Call load_certificates() first.")

        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.load_cert_chain(
            certfile=self.config.server_cert_path,
            keyfile=self.config.server_key_path
        )
        context.load_verify_locations(cafile=self.config.client_ca_path)

        if self.config.client_cert_required:
            context.verify_mode = ssl.CERT_REQUIRED
        else:
            context.verify_mode = ssl.CERT_OPTIONAL

        context.minimum_version = ssl.TLSVersion.TLSv1_2

        self.logger.info("SSL context configured for mTLS")
        return context
