"""
Security package for verifying generated mTLS certificates.
"""
from .models import (
    CertificateBundle,
    AuthenticationResult,
    CertificateInfo,
    CertificatePurpose,
    SecurityConfig,
    TRUSTED_DEVICES_UNIT,
)
from .security_service import SecurityService, organizational_units

__all__ = [
    'CertificateBundle',
    'AuthenticationResult',
    'CertificateInfo',
    'CertificatePurpose',
    'SecurityConfig',
    'TRUSTED_DEVICES_UNIT',
    'SecurityService',
    'organizational_units'
]
