"""
Services package for certforge.
"""

from .config_service import ConfigService
from .key_service import KeyGenerator
from .request_builder import CertificateRequestBuilder
from .certificate_authority import CertificateAuthority
from .issuance_service import IssuanceEngine, IssuanceState
from .export_service import ExportBundler, ArtifactWriter

__all__ = [
    'ConfigService',
    'KeyGenerator',
    'CertificateRequestBuilder',
    'CertificateAuthority',
    'IssuanceEngine',
    'IssuanceState',
    'ExportBundler',
    'ArtifactWriter'
]
