"""
Certificate authority: self-signs a root and signs leaf requests beneath it.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from ..models.config import MIN_RSA_KEY_BITS
from ..models.errors import (
    CryptoFailure,
    ExtensionConflict,
    InvalidValidityPeriod,
    SerialCollision,
)
from ..models.pki import (
    CertificateRequest,
    DistinguishedName,
    ExtensionSet,
    KeyPair,
    KeyUsageFlag,
)
from .key_service import EC_CURVES

MAX_SERIAL_ATTEMPTS = 3

HASH_ALGORITHMS = {
    "SHA256": hashes.SHA256,
    "SHA384": hashes.SHA384,
    "SHA512": hashes.SHA512,
}

CA_KEY_USAGE = frozenset({
    KeyUsageFlag.KEY_CERT_SIGN,
    KeyUsageFlag.CRL_SIGN,
    KeyUsageFlag.DIGITAL_SIGNATURE,
})

CA_ONLY_KEY_USAGE = frozenset({KeyUsageFlag.KEY_CERT_SIGN, KeyUsageFlag.CRL_SIGN})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _resolve_hash(signature_hash: str) -> hashes.HashAlgorithm:
    try:
        return HASH_ALGORITHMS[signature_hash.upper()]()
    except (KeyError, AttributeError):
        raise CryptoFailure(f"unsupported signature hash: {signature_hash!r}")


def _check_validity_days(validity_days) -> int:
    if isinstance(validity_days, bool) or not isinstance(validity_days, int) or validity_days < 1:
        raise InvalidValidityPeriod(f"validity must be at least one day, got {validity_days!r}")
    return validity_days


def _check_public_key(public_key):
    """Reject keys this engine would never issue for."""
    if isinstance(public_key, rsa.RSAPublicKey):
        if public_key.key_size < MIN_RSA_KEY_BITS:
            raise CryptoFailure(
                f"RSA public key of {public_key.key_size} bits is below the {MIN_RSA_KEY_BITS}-bit minimum"
            )
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        if public_key.curve.key_size not in EC_CURVES:
            raise CryptoFailure(f"unsupported EC curve: {public_key.curve.name}")
    else:
        raise CryptoFailure(f"unsupported public key type: {type(public_key).__name__}")


class CertificateAuthority:
    """A root CA owning its key pair, root certificate and serial registry."""

    def __init__(self, key_pair: KeyPair, certificate: x509.Certificate,
                 signature_hash: str = "SHA256",
                 serial_generator: Optional[Callable[[], int]] = None):
        self.key_pair = key_pair
        self.certificate = certificate
        self.signature_hash = signature_hash
        self._hash_algorithm = _resolve_hash(signature_hash)
        self._serial_generator = serial_generator or x509.random_serial_number
        self._issued_serials: Set[int] = {certificate.serial_number}
        self.logger = logging.getLogger(__name__)

    @classmethod
    def create_root(cls, distinguished_name: DistinguishedName, key_pair: KeyPair,
                    validity_days: int, signature_hash: str = "SHA256",
                    serial_generator: Optional[Callable[[], int]] = None) -> "CertificateAuthority":
        """
        Self-sign a root certificate and return the CA that owns it.

        The root carries BasicConstraints(ca=True) and keyCertSign/cRLSign key usage.

        Raises:
            InvalidValidityPeriod: If validity_days is below one
            CryptoFailure: If the key is unusable or signing fails
        """
        validity_days = _check_validity_days(validity_days)
        _check_public_key(key_pair.public_key)
        hash_algorithm = _resolve_hash(signature_hash)

        name = distinguished_name.to_x509_name()
        now = _utcnow()
        extensions = ExtensionSet(is_ca=True, key_usage=CA_KEY_USAGE)

        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key_pair.public_key)
            .serial_number((serial_generator or x509.random_serial_number)())
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=validity_days))
        )
        for extension, critical in extensions.to_x509_extensions():
            builder = builder.add_extension(extension, critical=critical)
        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key_pair.public_key),
            critical=False,
        ).add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(key_pair.public_key),
            critical=False,
        )

        certificate = _sign(builder, key_pair, hash_algorithm)
        authority = cls(key_pair, certificate, signature_hash, serial_generator)
        authority.logger.info(
            f"Created root CA {name.rfc4514_string()} (serial {certificate.serial_number:x}, "
            f"{validity_days} days)"
        )
        return authority

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject

    @property
    def issued_serials(self) -> frozenset:
        return frozenset(self._issued_serials)

    def sign(self, request: CertificateRequest, validity_days: int) -> x509.Certificate:
        """
        Issue a leaf certificate for a request.

        Args:
            request: CertificateRequest built for a leaf role
            validity_days: Days from now until the certificate expires

        Returns:
            Signed x509.Certificate

        Raises:
            CryptoFailure: If the request key is malformed or signing fails
            ExtensionConflict: If the request asks for CA rights
            InvalidValidityPeriod: If the window is empty or outlives this CA
            SerialCollision: If no unique serial could be assigned
        """
        _check_public_key(request.public_key)

        if request.extensions.is_ca:
            raise ExtensionConflict(
                f"request for {request.subject} asks for CA rights; leaves are never CAs"
            )

        signing_usages = request.extensions.key_usage & CA_ONLY_KEY_USAGE
        if signing_usages:
            flags = ", ".join(sorted(flag.value for flag in signing_usages))
            raise ExtensionConflict(
                f"request for {request.subject} asks for CA key usage ({flags}); leaves are never CAs"
            )

        validity_days = _check_validity_days(validity_days)
        now = _utcnow()
        not_after = now + timedelta(days=validity_days)
        if not_after > self.certificate.not_valid_after_utc:
            raise InvalidValidityPeriod(
                f"leaf validity of {validity_days} days ends after the issuing CA expires "
                f"({self.certificate.not_valid_after_utc.isoformat()})"
            )

        serial = self._next_serial()
        builder = (
            x509.CertificateBuilder()
            .subject_name(request.subject.to_x509_name())
            .issuer_name(self.certificate.subject)
            .public_key(request.public_key)
            .serial_number(serial)
            .not_valid_before(now)
            .not_valid_after(not_after)
        )
        for extension, critical in request.extensions.to_x509_extensions():
            builder = builder.add_extension(extension, critical=critical)
        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(request.public_key),
            critical=False,
        ).add_extension(
            self._authority_key_identifier(),
            critical=False,
        )

        certificate = _sign(builder, self.key_pair, self._hash_algorithm)
        self._issued_serials.add(serial)

        self.logger.info(
            f"Issued {request.subject} under {self.certificate.subject.rfc4514_string()} "
            f"(serial {serial:x}, {validity_days} days)"
        )
        return certificate

    def _next_serial(self) -> int:
        for attempt in range(1, MAX_SERIAL_ATTEMPTS + 1):
            serial = self._serial_generator()
            if serial not in self._issued_serials:
                return serial
            self.logger.warning(f"Serial collision on attempt {attempt}/{MAX_SERIAL_ATTEMPTS}, regenerating")

        raise SerialCollision(f"no unique serial number after {MAX_SERIAL_ATTEMPTS} attempts")

    def _authority_key_identifier(self) -> x509.AuthorityKeyIdentifier:
        try:
            ski = self.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
        except x509.ExtensionNotFound:
            return x509.AuthorityKeyIdentifier.from_issuer_public_key(self.key_pair.public_key)
        return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski.value)


def _sign(builder: x509.CertificateBuilder, key_pair: KeyPair,
          hash_algorithm: hashes.HashAlgorithm) -> x509.Certificate:
    try:
        return builder.sign(private_key=key_pair.private_key, algorithm=hash_algorithm)
    except (UnsupportedAlgorithm, ValueError, TypeError) as e:
        raise CryptoFailure(f"certificate signing failed: {e}") from e
