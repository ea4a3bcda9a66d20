"""
Issuance engine: drives a full mTLS hierarchy from two root CAs down to both leaves.
"""
import logging
from enum import Enum
from typing import Callable, List, Optional, Tuple

from cryptography import x509

from ..models.config import MAX_LEAF_VALIDITY_DAYS, IssuanceConfig
from ..models.errors import InternalInconsistency, InvalidValidityPeriod
from ..models.pki import (
    ClientLeaf,
    DistinguishedName,
    ExtendedKeyUsagePurpose,
    ExtensionSet,
    IssuanceResult,
    KeyPair,
    LeafRole,
    ServerLeaf,
    SubjectAltName,
    TrustChain,
)
from .certificate_authority import CertificateAuthority
from .key_service import KeyGenerator
from .logging_service import PerformanceMonitor
from .request_builder import CertificateRequestBuilder

SERVER_CA_UNIT = "Server CA"
SERVER_CA_COMMON_NAME = "Server Root CA"
CLIENT_CA_UNIT = "Client CA"
CLIENT_CA_COMMON_NAME = "Client Root CA"
SERVER_LEAF_UNIT = "Infra"

LOOPBACK_SANS = (SubjectAltName.dns("localhost"), SubjectAltName.ip("127.0.0.1"))


class IssuanceState(Enum):
    START = "start"
    SERVER_CA_READY = "server_ca_ready"
    CLIENT_CA_READY = "client_ca_ready"
    SERVER_LEAF_ISSUED = "server_leaf_issued"
    SERVER_CHAIN_ASSEMBLED = "server_chain_assembled"
    CLIENT_LEAF_ISSUED = "client_leaf_issued"
    CLIENT_CHAIN_ASSEMBLED = "client_chain_assembled"
    DONE = "done"


_STATE_ORDER = list(IssuanceState)
_NEXT_STATE = dict(zip(_STATE_ORDER, _STATE_ORDER[1:]))


class IssuanceEngine:
    """
    Produces the server CA, client CA, both leaves and both chains in one run.

    The run is linear: any failure aborts it and the originating exception
    propagates unchanged. Nothing is returned until both chains validate.
    """

    def __init__(self, config: IssuanceConfig,
                 key_generator: Optional[KeyGenerator] = None,
                 request_builder: Optional[CertificateRequestBuilder] = None,
                 performance_monitor: Optional[PerformanceMonitor] = None,
                 serial_generator: Optional[Callable[[], int]] = None):
        self.config = config
        self.key_generator = key_generator or KeyGenerator()
        self.request_builder = request_builder or CertificateRequestBuilder()
        self.performance_monitor = performance_monitor or PerformanceMonitor()
        self.serial_generator = serial_generator
        self.state = IssuanceState.START
        self.history: List[IssuanceState] = [IssuanceState.START]
        self.logger = logging.getLogger(__name__)

    def run(self) -> IssuanceResult:
        """
        Execute every issuance step in order.

        Returns:
            IssuanceResult with both CAs, both leaves, both chains and leaf keys

        Raises:
            CertForgeError: Whatever the failing component raised
        """
        self.state = IssuanceState.START
        self.history = [IssuanceState.START]

        try:
            self._check_inputs()

            server_ca = self._create_authority(self._server_ca_name())
            self._advance(IssuanceState.SERVER_CA_READY)

            client_ca = self._create_authority(self._client_ca_name())
            self._advance(IssuanceState.CLIENT_CA_READY)

            server_role = ServerLeaf(
                identity=self.config.server_identity,
                subject_alt_names=self.server_subject_alt_names()
            )
            server_key, server_leaf = self._issue_leaf(server_ca, self._server_leaf_name(), server_role)
            self._advance(IssuanceState.SERVER_LEAF_ISSUED)

            server_chain = self._assemble_chain(server_leaf, server_ca, server_role)
            self._advance(IssuanceState.SERVER_CHAIN_ASSEMBLED)

            client_role = ClientLeaf(organizational_unit=self.config.client_organizational_unit)
            client_key, client_leaf = self._issue_leaf(client_ca, self._client_leaf_name(), client_role)
            self._advance(IssuanceState.CLIENT_LEAF_ISSUED)

            client_chain = self._assemble_chain(client_leaf, client_ca, client_role)
            self._advance(IssuanceState.CLIENT_CHAIN_ASSEMBLED)
        except Exception as e:
            self.logger.error(f"Issuance aborted after state {self.state.name}: {type(e).__name__}: {e}")
            raise

        result = IssuanceResult(
            server_ca=server_ca.certificate,
            client_ca=client_ca.certificate,
            server_leaf=server_leaf,
            server_chain=server_chain,
            client_leaf=client_leaf,
            client_chain=client_chain,
            server_ca_key=server_ca.key_pair,
            client_ca_key=client_ca.key_pair,
            server_key=server_key,
            client_key=client_key,
        )
        self._advance(IssuanceState.DONE)
        self.logger.info("Issuance complete: server and client chains validated")
        return result

    def server_subject_alt_names(self) -> Tuple[SubjectAltName, ...]:
        """Configured identity first, then loopback names, then any extras."""
        sans = [SubjectAltName.for_identity(self.config.server_identity)]
        sans.extend(LOOPBACK_SANS)
        sans.extend(SubjectAltName.parse(entry) for entry in self.config.extra_server_sans)
        return tuple(sans)

    def _check_inputs(self):
        leaf_days = self.config.leaf_validity_days
        if isinstance(leaf_days, bool) or not isinstance(leaf_days, int) or leaf_days < 1:
            raise InvalidValidityPeriod(f"leaf validity must be at least one day, got {leaf_days!r}")
        if leaf_days > MAX_LEAF_VALIDITY_DAYS:
            raise InvalidValidityPeriod(
                f"leaf validity of {leaf_days} days exceeds the {MAX_LEAF_VALIDITY_DAYS}-day maximum"
            )
        if leaf_days > self.config.ca_validity_days:
            raise InvalidValidityPeriod("leaf validity cannot exceed CA validity")

        self.server_subject_alt_names()

    def _advance(self, target: IssuanceState):
        expected = _NEXT_STATE.get(self.state)
        if target is not expected:
            raise InternalInconsistency(
                f"illegal issuance transition {self.state.name} -> {target.name}"
            )
        self.state = target
        self.history.append(target)
        self.logger.debug(f"Issuance state: {target.name}")

    def _create_authority(self, name: DistinguishedName) -> CertificateAuthority:
        with self.performance_monitor.measure_operation(
                "generate_ca_key", {'subject': str(name), 'bits': self.config.ca_key_bits}):
            key_pair = self.key_generator.generate(self.config.key_algorithm, self.config.ca_key_bits)

        with self.performance_monitor.measure_operation("create_root", {'subject': str(name)}):
            return CertificateAuthority.create_root(
                name,
                key_pair,
                self.config.ca_validity_days,
                signature_hash=self.config.signature_hash,
                serial_generator=self.serial_generator
            )

    def _issue_leaf(self, authority: CertificateAuthority, subject: DistinguishedName,
                    role: LeafRole) -> Tuple[KeyPair, x509.Certificate]:
        with self.performance_monitor.measure_operation(
                "generate_leaf_key", {'subject': str(subject), 'bits': self.config.leaf_key_bits}):
            key_pair = self.key_generator.generate(self.config.key_algorithm, self.config.leaf_key_bits)

        request = self.request_builder.build(key_pair.public_key, subject, role)

        with self.performance_monitor.measure_operation("sign_leaf", {'subject': str(subject)}):
            certificate = authority.sign(request, self.config.leaf_validity_days)

        return key_pair, certificate

    def _assemble_chain(self, leaf: x509.Certificate, authority: CertificateAuthority,
                        role: LeafRole) -> TrustChain:
        chain = TrustChain((leaf, authority.certificate)).validate()
        self._check_leaf(leaf, role)
        return chain

    def _check_leaf(self, leaf: x509.Certificate, role: LeafRole):
        """Re-read the issued leaf and confirm it still carries its role."""
        extensions = ExtensionSet.from_certificate(leaf)
        if extensions.is_ca:
            raise InternalInconsistency("issued leaf carries CA rights")

        if isinstance(role, ServerLeaf):
            if ExtendedKeyUsagePurpose.SERVER_AUTH not in extensions.extended_key_usage:
                raise InternalInconsistency("server leaf is missing serverAuth")
            if not any(san.matches(role.identity) for san in extensions.subject_alt_names):
                raise InternalInconsistency(f"server leaf SANs do not include {role.identity!r}")
        else:
            if ExtendedKeyUsagePurpose.CLIENT_AUTH not in extensions.extended_key_usage:
                raise InternalInconsistency("client leaf is missing clientAuth")
            subject = DistinguishedName.from_x509_name(leaf.subject)
            if subject.organizational_unit != role.organizational_unit:
                raise InternalInconsistency(
                    f"client leaf OU {subject.organizational_unit!r} != {role.organizational_unit!r}"
                )

    def _name(self, unit: str, common_name: str) -> DistinguishedName:
        return DistinguishedName(
            country=self.config.country or None,
            organization=self.config.organization or None,
            organizational_unit=unit,
            common_name=common_name
        )

    def _server_ca_name(self) -> DistinguishedName:
        return self._name(SERVER_CA_UNIT, SERVER_CA_COMMON_NAME)

    def _client_ca_name(self) -> DistinguishedName:
        return self._name(CLIENT_CA_UNIT, CLIENT_CA_COMMON_NAME)

    def _server_leaf_name(self) -> DistinguishedName:
        return self._name(SERVER_LEAF_UNIT, self.config.server_identity)

    def _client_leaf_name(self) -> DistinguishedName:
        return self._name(self.config.client_organizational_unit, self.config.client_common_name)
