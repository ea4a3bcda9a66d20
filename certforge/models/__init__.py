"""
Models package for certforge.
"""

from .config import IssuanceConfig, ConfigValidationError, ConfigValidationResult
from .errors import (
    CertForgeError,
    CryptoFailure,
    InvalidRequestError,
    InvalidSubjectAltName,
    InvalidDistinguishedName,
    InvalidValidityPeriod,
    InvalidExportOptions,
    ExtensionConflict,
    SerialCollision,
    InternalInconsistency,
    ChainValidationError,
)
from .pki import (
    KeyPair,
    DistinguishedName,
    SubjectAltName,
    SubjectAltNameType,
    KeyUsageFlag,
    ExtendedKeyUsagePurpose,
    ExtensionSet,
    ServerLeaf,
    ClientLeaf,
    CertificateRequest,
    TrustChain,
    IssuanceResult,
    certificate_to_pem,
)

__all__ = [
    'IssuanceConfig',
    'ConfigValidationError',
    'ConfigValidationResult',
    'CertForgeError',
    'CryptoFailure',
    'InvalidRequestError',
    'InvalidSubjectAltName',
    'InvalidDistinguishedName',
    'InvalidValidityPeriod',
    'InvalidExportOptions',
    'ExtensionConflict',
    'SerialCollision',
    'InternalInconsistency',
    'ChainValidationError',
    'KeyPair',
    'DistinguishedName',
    'SubjectAltName',
    'SubjectAltNameType',
    'KeyUsageFlag',
    'ExtendedKeyUsagePurpose',
    'ExtensionSet',
    'ServerLeaf',
    'ClientLeaf',
    'CertificateRequest',
    'TrustChain',
    'IssuanceResult',
    'certificate_to_pem',
]
