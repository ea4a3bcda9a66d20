"""
Configuration data models for certificate hierarchy generation.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple

MAX_LEAF_VALIDITY_DAYS = 825
MIN_RSA_KEY_BITS = 2048

SUPPORTED_KEY_ALGORITHMS = ("RSA", "EC")
SUPPORTED_SIGNATURE_HASHES = ("SHA256", "SHA384", "SHA512")


@dataclass
class IssuanceConfig:
    """Main configuration class containing all issuance settings."""

    # Identity settings
    server_identity: str = "localhost"
    client_common_name: str = "client1"
    client_organizational_unit: str = "TrustedDevices"
    country: str = "US"
    organization: str = "Example Org"
    extra_server_sans: Tuple[str, ...] = field(default_factory=tuple)

    # Validity settings
    ca_validity_days: int = 3650
    leaf_validity_days: int = MAX_LEAF_VALIDITY_DAYS

    # Key settings
    key_algorithm: str = "RSA"
    ca_key_bits: int = 4096
    leaf_key_bits: int = 2048
    signature_hash: str = "SHA256"

    # Output settings
    output_dir: str = "."
    export_password: Optional[str] = None
    export_friendly_name: Optional[str] = None

    # Application settings
    log_level: str = "INFO"
    log_file_path: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.extra_server_sans = tuple(self.extra_server_sans)
        self._validate_types()

    def _validate_types(self):
        """Ensure all configuration values have correct types."""
        for name in ("server_identity", "client_common_name", "client_organizational_unit"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")

        if not isinstance(self.ca_validity_days, int) or self.ca_validity_days <= 0:
            raise ValueError("ca_validity_days must be a positive integer")

        if not isinstance(self.leaf_validity_days, int):
            raise ValueError("leaf_validity_days must be an integer")

        if self.key_algorithm not in SUPPORTED_KEY_ALGORITHMS:
            raise ValueError(f"key_algorithm must be one of: {', '.join(SUPPORTED_KEY_ALGORITHMS)}")

        if not isinstance(self.ca_key_bits, int) or self.ca_key_bits <= 0:
            raise ValueError("ca_key_bits must be a positive integer")

        if not isinstance(self.leaf_key_bits, int) or self.leaf_key_bits <= 0:
            raise ValueError("leaf_key_bits must be a positive integer")

        if self.signature_hash not in SUPPORTED_SIGNATURE_HASHES:
            raise ValueError(f"signature_hash must be one of: {', '.join(SUPPORTED_SIGNATURE_HASHES)}")

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")

    @property
    def friendly_name(self) -> str:
        """Name stored in the PKCS#12 bundle; defaults to the client CN."""
        return self.export_friendly_name or self.client_common_name


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    severity: str = "error"  # error, warning

    def __str__(self):
        return f"{self.severity.upper()}: {self.field} - {self.message}"


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: list[ConfigValidationError]
    warnings: list[ConfigValidationError]

    def __post_init__(self):
        """Separate errors and warnings."""
        all_issues = self.errors + self.warnings
        self.errors = [e for e in all_issues if e.severity == "error"]
        self.warnings = [e for e in all_issues if e.severity == "warning"]

    def has_errors(self) -> bool:
        """Check if there are any validation errors."""
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        """Check if there are any validation warnings."""
        return len(self.warnings) > 0

    def get_error_summary(self) -> str:
        """Get a formatted summary of all errors and warnings."""
        lines = []

        if self.errors:
            lines.append("Configuration Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        if self.warnings:
            lines.append("Configuration Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines) if lines else "Configuration is valid"
