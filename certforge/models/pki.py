"""
PKI data models: key pairs, names, extensions, requests and trust chains.
"""
import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificateIssuerPublicKeyTypes,
)
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .errors import InternalInconsistency, InvalidDistinguishedName, InvalidSubjectAltName

# RFC 5280 upper bound for C/O/OU/CN
MAX_ATTRIBUTE_LENGTH = 64
MAX_DNS_NAME_LENGTH = 253

_DNS_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def certificate_to_pem(certificate: x509.Certificate) -> bytes:
    """Encode a certificate as PEM."""
    return certificate.public_bytes(serialization.Encoding.PEM)


@dataclass(frozen=True)
class KeyPair:
    """An asymmetric key pair owned by exactly one certificate holder."""
    private_key: CertificateIssuerPrivateKeyTypes
    public_key: CertificateIssuerPublicKeyTypes
    algorithm: str
    strength_bits: int

    def private_key_pem(self) -> bytes:
        """Unencrypted PKCS#8 PEM encoding of the private key."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )

    def public_key_pem(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )

    def __repr__(self) -> str:
        return f"KeyPair(algorithm={self.algorithm!r}, strength_bits={self.strength_bits})"


@dataclass(frozen=True)
class DistinguishedName:
    """Subject or issuer identity, encoded in C, O, OU, CN order."""
    country: Optional[str] = None
    organization: Optional[str] = None
    organizational_unit: Optional[str] = None
    common_name: str = ""

    def __post_init__(self):
        self._validate()

    def _validate(self):
        if not isinstance(self.common_name, str) or not self.common_name.strip():
            raise InvalidDistinguishedName("common_name is required")

        for field_name in ("country", "organization", "organizational_unit", "common_name"):
            value = getattr(self, field_name)
            if value is None:
                continue
            if not isinstance(value, str) or not value.strip():
                raise InvalidDistinguishedName(f"{field_name} must be a non-empty string")
            if len(value) > MAX_ATTRIBUTE_LENGTH:
                raise InvalidDistinguishedName(
                    f"{field_name} exceeds {MAX_ATTRIBUTE_LENGTH} characters"
                )

        if self.country is not None:
            if len(self.country) != 2 or not (self.country.isascii() and self.country.isalpha()):
                raise InvalidDistinguishedName(
                    f"country must be a two-letter code, got {self.country!r}"
                )

    def to_x509_name(self) -> x509.Name:
        attributes = []
        if self.country:
            attributes.append(x509.NameAttribute(NameOID.COUNTRY_NAME, self.country))
        if self.organization:
            attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization))
        if self.organizational_unit:
            attributes.append(
                x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit)
            )
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, self.common_name))
        return x509.Name(attributes)

    @classmethod
    def from_x509_name(cls, name: x509.Name) -> "DistinguishedName":
        def first(oid):
            values = name.get_attributes_for_oid(oid)
            return values[0].value if values else None

        return cls(
            country=first(NameOID.COUNTRY_NAME),
            organization=first(NameOID.ORGANIZATION_NAME),
            organizational_unit=first(NameOID.ORGANIZATIONAL_UNIT_NAME),
            common_name=first(NameOID.COMMON_NAME) or "",
        )

    def __str__(self):
        return self.to_x509_name().rfc4514_string()


class SubjectAltNameType(Enum):
    DNS = "DNS"
    IP = "IP"


@dataclass(frozen=True)
class SubjectAltName:
    """A single DNS or IP subject-alternative-name entry."""
    type: SubjectAltNameType
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value:
            raise InvalidSubjectAltName("subject alternative name value must be a non-empty string")

        if self.type is SubjectAltNameType.IP:
            try:
                address = ipaddress.ip_address(self.value)
            except ValueError as e:
                raise InvalidSubjectAltName(f"invalid IP address: {self.value!r}") from e
            object.__setattr__(self, "value", str(address))
        elif self.type is SubjectAltNameType.DNS:
            _validate_dns_name(self.value)
        else:
            raise InvalidSubjectAltName(f"unsupported subject alternative name type: {self.type!r}")

    @classmethod
    def dns(cls, value: str) -> "SubjectAltName":
        return cls(SubjectAltNameType.DNS, value)

    @classmethod
    def ip(cls, value: str) -> "SubjectAltName":
        return cls(SubjectAltNameType.IP, value)

    @classmethod
    def for_identity(cls, identity: str) -> "SubjectAltName":
        """IP literals become IP entries, anything else a DNS entry."""
        try:
            ipaddress.ip_address(identity)
        except ValueError:
            return cls.dns(identity)
        return cls.ip(identity)

    @classmethod
    def parse(cls, text: str) -> "SubjectAltName":
        """Parse the ``DNS:name`` / ``IP:address`` notation."""
        prefix, sep, value = text.partition(":")
        if not sep:
            raise InvalidSubjectAltName(f"expected DNS:<name> or IP:<address>, got {text!r}")
        try:
            san_type = SubjectAltNameType(prefix.strip().upper())
        except ValueError as e:
            raise InvalidSubjectAltName(f"unknown subject alternative name type: {prefix!r}") from e
        return cls(san_type, value.strip())

    def matches(self, identity: str) -> bool:
        other = SubjectAltName.for_identity(identity)
        if other.type is not self.type:
            return False
        if self.type is SubjectAltNameType.DNS:
            return self.value.lower() == other.value.lower()
        return self.value == other.value

    def to_general_name(self) -> x509.GeneralName:
        if self.type is SubjectAltNameType.IP:
            return x509.IPAddress(ipaddress.ip_address(self.value))
        return x509.DNSName(self.value)

    def __str__(self):
        return f"{self.type.value}:{self.value}"


def _validate_dns_name(value: str):
    if len(value) > MAX_DNS_NAME_LENGTH:
        raise InvalidSubjectAltName(f"DNS name too long: {value!r}")

    labels = value.split(".")
    if labels[0] == "*" and len(labels) > 1:
        labels = labels[1:]

    for label in labels:
        if not _DNS_LABEL.match(label):
            raise InvalidSubjectAltName(f"invalid DNS name: {value!r}")


class KeyUsageFlag(Enum):
    DIGITAL_SIGNATURE = "digital_signature"
    KEY_ENCIPHERMENT = "key_encipherment"
    KEY_CERT_SIGN = "key_cert_sign"
    CRL_SIGN = "crl_sign"


class ExtendedKeyUsagePurpose(Enum):
    SERVER_AUTH = "server_auth"
    CLIENT_AUTH = "client_auth"

    @property
    def oid(self) -> x509.ObjectIdentifier:
        if self is ExtendedKeyUsagePurpose.SERVER_AUTH:
            return ExtendedKeyUsageOID.SERVER_AUTH
        return ExtendedKeyUsageOID.CLIENT_AUTH


@dataclass(frozen=True)
class ExtensionSet:
    """Extensions that decide whether a certificate is a CA, a server or a client."""
    is_ca: bool = False
    key_usage: FrozenSet[KeyUsageFlag] = frozenset()
    extended_key_usage: FrozenSet[ExtendedKeyUsagePurpose] = frozenset()
    subject_alt_names: Tuple[SubjectAltName, ...] = ()

    def to_x509_extensions(self) -> List[Tuple[x509.ExtensionType, bool]]:
        """Return ``(extension, critical)`` pairs ready for a certificate builder."""
        extensions: List[Tuple[x509.ExtensionType, bool]] = [
            (x509.BasicConstraints(ca=self.is_ca, path_length=None), True),
        ]

        if self.key_usage:
            extensions.append((
                x509.KeyUsage(
                    digital_signature=KeyUsageFlag.DIGITAL_SIGNATURE in self.key_usage,
                    content_commitment=False,
                    key_encipherment=KeyUsageFlag.KEY_ENCIPHERMENT in self.key_usage,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=KeyUsageFlag.KEY_CERT_SIGN in self.key_usage,
                    crl_sign=KeyUsageFlag.CRL_SIGN in self.key_usage,
                    encipher_only=False,
                    decipher_only=False,
                ),
                True,
            ))

        if self.extended_key_usage:
            purposes = sorted(self.extended_key_usage, key=lambda p: p.value)
            extensions.append((x509.ExtendedKeyUsage([p.oid for p in purposes]), False))

        if self.subject_alt_names:
            extensions.append((
                x509.SubjectAlternativeName([san.to_general_name() for san in self.subject_alt_names]),
                False,
            ))

        return extensions

    @classmethod
    def from_certificate(cls, certificate: x509.Certificate) -> "ExtensionSet":
        """Read the role-defining extensions back out of an issued certificate."""
        extensions = certificate.extensions

        try:
            is_ca = extensions.get_extension_for_class(x509.BasicConstraints).value.ca
        except x509.ExtensionNotFound:
            is_ca = False

        key_usage = set()
        try:
            usage = extensions.get_extension_for_class(x509.KeyUsage).value
        except x509.ExtensionNotFound:
            usage = None
        if usage is not None:
            for flag in KeyUsageFlag:
                if getattr(usage, flag.value):
                    key_usage.add(flag)

        purposes = set()
        try:
            eku = extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        except x509.ExtensionNotFound:
            eku = []
        for purpose in ExtendedKeyUsagePurpose:
            if purpose.oid in eku:
                purposes.add(purpose)

        sans = []
        try:
            san_ext = extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        except x509.ExtensionNotFound:
            san_ext = None
        if san_ext is not None:
            sans.extend(SubjectAltName.dns(name) for name in san_ext.get_values_for_type(x509.DNSName))
            sans.extend(
                SubjectAltName.ip(str(address))
                for address in san_ext.get_values_for_type(x509.IPAddress)
            )

        return cls(
            is_ca=is_ca,
            key_usage=frozenset(key_usage),
            extended_key_usage=frozenset(purposes),
            subject_alt_names=tuple(sans),
        )


@dataclass(frozen=True)
class ServerLeaf:
    """Server role: SANs must include the identity clients connect to."""
    identity: str
    subject_alt_names: Tuple[SubjectAltName, ...] = ()


@dataclass(frozen=True)
class ClientLeaf:
    """Client role: the OU is the authorization tag checked by the relying server."""
    organizational_unit: str


LeafRole = Union[ServerLeaf, ClientLeaf]


@dataclass(frozen=True)
class CertificateRequest:
    """Unsigned request, consumed once by CertificateAuthority.sign()."""
    public_key: CertificateIssuerPublicKeyTypes
    subject: DistinguishedName
    extensions: ExtensionSet


@dataclass(frozen=True)
class TrustChain:
    """Certificates ordered leaf first, self-signed root last."""
    certificates: Tuple[x509.Certificate, ...]

    @property
    def leaf(self) -> x509.Certificate:
        return self.certificates[0]

    @property
    def root(self) -> x509.Certificate:
        return self.certificates[-1]

    @property
    def intermediates(self) -> Tuple[x509.Certificate, ...]:
        return self.certificates[1:-1]

    def validate(self) -> "TrustChain":
        """
        Check issuer linkage, signatures and the self-signed root.

        Raises:
            InternalInconsistency: If any link of the chain is broken
        """
        if len(self.certificates) < 2:
            raise InternalInconsistency("trust chain needs at least a leaf and a root")

        for position, (certificate, issuer) in enumerate(zip(self.certificates, self.certificates[1:])):
            if certificate.issuer != issuer.subject:
                raise InternalInconsistency(
                    f"chain[{position}] issuer {certificate.issuer.rfc4514_string()!r} "
                    f"does not match chain[{position + 1}] subject {issuer.subject.rfc4514_string()!r}"
                )
            _verify_issued_by(certificate, issuer, f"chain[{position}]")

        root = self.root
        if root.issuer != root.subject:
            raise InternalInconsistency("chain root is not self-signed")
        _verify_issued_by(root, root, "chain root")

        return self

    def to_pem(self) -> bytes:
        return b"".join(certificate_to_pem(certificate) for certificate in self.certificates)

    def __len__(self):
        return len(self.certificates)


def _verify_issued_by(certificate: x509.Certificate, issuer: x509.Certificate, label: str):
    try:
        certificate.verify_directly_issued_by(issuer)
    except (InvalidSignature, ValueError, TypeError) as e:
        raise InternalInconsistency(f"{label} signature does not verify against its issuer: {e}") from e


@dataclass(frozen=True)
class IssuanceResult:
    """Everything produced by a completed issuance run."""
    server_ca: x509.Certificate
    client_ca: x509.Certificate
    server_leaf: x509.Certificate
    server_chain: TrustChain
    client_leaf: x509.Certificate
    client_chain: TrustChain
    server_ca_key: KeyPair
    client_ca_key: KeyPair
    server_key: KeyPair
    client_key: KeyPair
