"""
Builds unsigned leaf certificate requests for the server and client roles.
"""
import logging
from typing import Iterable, Tuple

from ..models.errors import InvalidDistinguishedName, InvalidSubjectAltName
from ..models.pki import (
    CertificateRequest,
    ClientLeaf,
    DistinguishedName,
    ExtendedKeyUsagePurpose,
    ExtensionSet,
    KeyUsageFlag,
    LeafRole,
    ServerLeaf,
    SubjectAltName,
)

LEAF_KEY_USAGE = frozenset({KeyUsageFlag.DIGITAL_SIGNATURE, KeyUsageFlag.KEY_ENCIPHERMENT})


class CertificateRequestBuilder:
    """Turns a public key, subject and leaf role into a CertificateRequest."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def build(self, public_key, subject: DistinguishedName, role: LeafRole) -> CertificateRequest:
        """
        Build a request carrying the extensions for the given role.

        Raises:
            InvalidSubjectAltName: If a server role has no usable SAN entries
            InvalidDistinguishedName: If a client subject lacks the role's OU
        """
        if not isinstance(subject, DistinguishedName):
            raise InvalidDistinguishedName("subject must be a DistinguishedName")

        if isinstance(role, ServerLeaf):
            extensions = self._server_extensions(role)
        elif isinstance(role, ClientLeaf):
            extensions = self._client_extensions(subject, role)
        else:
            raise TypeError(f"unsupported leaf role: {type(role).__name__}")

        self.logger.debug(f"Built {type(role).__name__} request for {subject}")
        return CertificateRequest(public_key=public_key, subject=subject, extensions=extensions)

    def _server_extensions(self, role: ServerLeaf) -> ExtensionSet:
        sans = _dedupe(_coerce_sans(role.subject_alt_names))
        if not sans:
            raise InvalidSubjectAltName("server certificate requires at least one subject alternative name")

        if not role.identity or not any(san.matches(role.identity) for san in sans):
            raise InvalidSubjectAltName(
                f"subject alternative names {[str(s) for s in sans]} do not include "
                f"server identity {role.identity!r}"
            )

        return ExtensionSet(
            is_ca=False,
            key_usage=LEAF_KEY_USAGE,
            extended_key_usage=frozenset({ExtendedKeyUsagePurpose.SERVER_AUTH}),
            subject_alt_names=sans,
        )

    def _client_extensions(self, subject: DistinguishedName, role: ClientLeaf) -> ExtensionSet:
        if not role.organizational_unit:
            raise InvalidDistinguishedName("client certificate requires an organizational unit")
        if subject.organizational_unit != role.organizational_unit:
            raise InvalidDistinguishedName(
                f"client subject OU {subject.organizational_unit!r} does not equal "
                f"required OU {role.organizational_unit!r}"
            )

        return ExtensionSet(
            is_ca=False,
            key_usage=LEAF_KEY_USAGE,
            extended_key_usage=frozenset({ExtendedKeyUsagePurpose.CLIENT_AUTH}),
        )


def _coerce_sans(entries: Iterable) -> Tuple[SubjectAltName, ...]:
    coerced = []
    for entry in entries:
        if isinstance(entry, SubjectAltName):
            coerced.append(entry)
        elif isinstance(entry, str):
            coerced.append(SubjectAltName.parse(entry))
        else:
            raise InvalidSubjectAltName(f"unsupported subject alternative name entry: {entry!r}")
    return tuple(coerced)


def _dedupe(sans: Tuple[SubjectAltName, ...]) -> Tuple[SubjectAltName, ...]:
    seen = set()
    unique = []
    for san in sans:
        key = (san.type, san.value.lower())
        if key not in seen:
            seen.add(key)
            unique.append(san)
    return tuple(unique)
