"""
Security models for verifying the generated mTLS hierarchy.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
from datetime import datetime

TRUSTED_DEVICES_UNIT = "TrustedDevices"


class CertificatePurpose(Enum):
    SERVER = "server"
    CLIENT = "client"


@dataclass
class SecurityConfig:
    """Paths and policy used by a relying mTLS server."""
    server_cert_path: str = "cert.pem"
    server_key_path: str = "key.pem"
    client_ca_path: str = "client-ca.pem"
    allowed_organizational_units: Tuple[str, ...] = (TRUSTED_DEVICES_UNIT,)
    client_cert_required: bool = True

    @classmethod
    def from_output_dir(cls, output_dir: str, **kwargs) -> "SecurityConfig":
        """Point at the root-level files written by ArtifactWriter."""
        return cls(
            server_cert_path=os.path.join(output_dir, "cert.pem"),
            server_key_path=os.path.join(output_dir, "key.pem"),
            client_ca_path=os.path.join(output_dir, "client-ca.pem"),
            **kwargs
        )


@dataclass
class CertificateBundle:
    """Bundle containing the files a relying server loads for mTLS."""
    server_chain: str
    server_key: str
    client_ca_cert: str


@dataclass
class AuthenticationResult:
    """Result of client certificate authentication."""
    is_authenticated: bool
    client_id: Optional[str]
    error_message: Optional[str]
    organizational_unit: Optional[str] = None


@dataclass
class CertificateInfo:
    """Information about a certificate."""
    subject: str
    issuer: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    is_valid: bool
    is_ca: bool
    fingerprint: str
    subject_alt_names: List[str] = field(default_factory=list)
    organizational_units: List[str] = field(default_factory=list)
