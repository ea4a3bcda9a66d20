"""
Configuration service for loading and validating issuance settings.
"""
import os
import configparser
from dataclasses import replace
from typing import Optional, Dict, Any
import logging

from ..models.config import (
    IssuanceConfig,
    ConfigValidationError,
    ConfigValidationResult,
    MAX_LEAF_VALIDITY_DAYS,
    MIN_RSA_KEY_BITS,
)
from ..models.errors import InvalidRequestError
from ..models.pki import DistinguishedName, SubjectAltName
from .key_service import EC_CURVES

EXPORT_PASSWORD_ENV = "CERTFORGE_EXPORT_PASSWORD"
RECOMMENDED_CA_KEY_BITS = 4096


class ConfigService:
    """Service for loading and validating issuance configuration."""

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._config = None
        if config_path:
            self._config = self.load_config(config_path)

    def get_config(self) -> IssuanceConfig:
        """
        Get the loaded configuration.

        Raises:
            ValueError: If no configuration has been loaded
        """
        if self._config is None:
            raise ValueError("No configuration loaded. Call load_config() first.")
        return self._config

    def load_config(self, config_path: str) -> IssuanceConfig:
        """
        Load configuration from a property file.

        Args:
            config_path: Path to the configuration file

        Returns:
            IssuanceConfig with loaded settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid or has validation errors
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        config_data = self._load_config_file(config_path)
        config = self.apply_environment(self._create_config_from_data(config_data))

        validation_result = self.validate_config(config)

        if validation_result.has_errors():
            error_summary = validation_result.get_error_summary()
            raise ValueError(f"Configuration validation failed:\n{error_summary}")

        if validation_result.has_warnings():
            warning_summary = validation_result.get_error_summary()
            self.logger.warning(f"Configuration warnings:\n{warning_summary}")

        self._config = config
        return config

    def apply_environment(self, config: IssuanceConfig) -> IssuanceConfig:
        """Fill the export password from the environment when the file has none."""
        password = os.environ.get(EXPORT_PASSWORD_ENV)
        if password and not config.export_password:
            return replace(config, export_password=password)
        return config

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load configuration data from file."""
        # Interpolation off so passwords may contain '%'
        config_parser = configparser.ConfigParser(interpolation=None)

        try:
            config_parser.read(config_path)
        except configparser.Error as e:
            raise ValueError(f"Failed to parse configuration file: {e}")

        config_data = {}
        for section in config_parser.sections():
            for key, value in config_parser.items(section):
                config_key = f"{section}.{key}" if section != "DEFAULT" else key
                config_data[config_key] = value

        for key, value in config_parser.defaults().items():
            if key not in config_data:
                config_data[key] = value

        return config_data

    def _create_config_from_data(self, config_data: Dict[str, Any]) -> IssuanceConfig:
        """Create IssuanceConfig object from configuration data."""
        config_mapping = {
            # Server settings
            "server.identity": ("server_identity", str),
            "server_identity": ("server_identity", str),
            "server.extra_sans": ("extra_server_sans", tuple),
            "extra_server_sans": ("extra_server_sans", tuple),

            # Client settings
            "client.common_name": ("client_common_name", str),
            "client_common_name": ("client_common_name", str),
            "client.organizational_unit": ("client_organizational_unit", str),
            "client_organizational_unit": ("client_organizational_unit", str),

            # CA settings
            "ca.country": ("country", str),
            "country": ("country", str),
            "ca.organization": ("organization", str),
            "organization": ("organization", str),
            "ca.validity_days": ("ca_validity_days", int),
            "ca_validity_days": ("ca_validity_days", int),
            "ca.leaf_validity_days": ("leaf_validity_days", int),
            "leaf_validity_days": ("leaf_validity_days", int),
            "ca.signature_hash": ("signature_hash", str),
            "signature_hash": ("signature_hash", str),

            # Key settings
            "keys.algorithm": ("key_algorithm", str),
            "key_algorithm": ("key_algorithm", str),
            "keys.ca_bits": ("ca_key_bits", int),
            "ca_key_bits": ("ca_key_bits", int),
            "keys.leaf_bits": ("leaf_key_bits", int),
            "leaf_key_bits": ("leaf_key_bits", int),

            # Export settings
            "export.output_dir": ("output_dir", str),
            "output_dir": ("output_dir", str),
            "export.password": ("export_password", str),
            "export_password": ("export_password", str),
            "export.friendly_name": ("export_friendly_name", str),
            "export_friendly_name": ("export_friendly_name", str),

            # Application settings
            "app.log_level": ("log_level", str),
            "log_level": ("log_level", str),
            "app.log_file_path": ("log_file_path", str),
            "log_file_path": ("log_file_path", str),
        }

        config_kwargs = {}

        for config_key, raw_value in config_data.items():
            if config_key in config_mapping:
                field_name, field_type = config_mapping[config_key]
                try:
                    if field_type == int:
                        value = int(raw_value)
                    elif field_type == tuple:
                        value = tuple(item.strip() for item in raw_value.split(",") if item.strip())
                    elif field_type == str:
                        value = str(raw_value).strip() if raw_value is not None else None
                        if value == "" and field_name in ("export_password", "export_friendly_name",
                                                          "log_file_path"):
                            value = None
                    else:
                        value = raw_value

                    config_kwargs[field_name] = value
                except (ValueError, TypeError) as e:
                    raise ValueError(f"Invalid value for {config_key}: {raw_value} ({e})")

        if "key_algorithm" in config_kwargs:
            config_kwargs["key_algorithm"] = config_kwargs["key_algorithm"].upper()
        if "signature_hash" in config_kwargs:
            config_kwargs["signature_hash"] = config_kwargs["signature_hash"].upper()
        if "log_level" in config_kwargs:
            config_kwargs["log_level"] = config_kwargs["log_level"].upper()

        return IssuanceConfig(**config_kwargs)

    def validate_config(self, config: IssuanceConfig) -> ConfigValidationResult:
        """
        Validate configuration settings.

        Args:
            config: Configuration object to validate

        Returns:
            ConfigValidationResult with validation results
        """
        errors = []
        warnings = []

        # Validity windows
        if config.leaf_validity_days < 1:
            errors.append(ConfigValidationError(
                "leaf_validity_days",
                "Leaf validity must be at least one day"
            ))
        elif config.leaf_validity_days > MAX_LEAF_VALIDITY_DAYS:
            errors.append(ConfigValidationError(
                "leaf_validity_days",
                f"Leaf validity must not exceed {MAX_LEAF_VALIDITY_DAYS} days"
            ))
        elif config.leaf_validity_days > config.ca_validity_days:
            errors.append(ConfigValidationError(
                "leaf_validity_days",
                "Leaf validity cannot exceed CA validity"
            ))

        # Key strength
        for field_name in ("ca_key_bits", "leaf_key_bits"):
            bits = getattr(config, field_name)
            if config.key_algorithm == "RSA" and bits < MIN_RSA_KEY_BITS:
                errors.append(ConfigValidationError(
                    field_name,
                    f"RSA keys must be at least {MIN_RSA_KEY_BITS} bits"
                ))
            elif config.key_algorithm == "EC" and bits not in EC_CURVES:
                errors.append(ConfigValidationError(
                    field_name,
                    f"EC key size must be one of {sorted(EC_CURVES)}"
                ))

        if config.key_algorithm == "RSA" and MIN_RSA_KEY_BITS <= config.ca_key_bits < RECOMMENDED_CA_KEY_BITS:
            warnings.append(ConfigValidationError(
                "ca_key_bits",
                f"CA keys below {RECOMMENDED_CA_KEY_BITS} bits are not recommended",
                "warning"
            ))

        # Names
        try:
            DistinguishedName(
                country=config.country or None,
                organization=config.organization or None,
                organizational_unit=config.client_organizational_unit,
                common_name=config.client_common_name
            )
            DistinguishedName(
                country=config.country or None,
                organization=config.organization or None,
                common_name=config.server_identity
            )
        except InvalidRequestError as e:
            errors.append(ConfigValidationError("distinguished_name", str(e)))

        # Subject alternative names
        try:
            SubjectAltName.for_identity(config.server_identity)
        except InvalidRequestError as e:
            errors.append(ConfigValidationError("server_identity", str(e)))

        for entry in config.extra_server_sans:
            try:
                SubjectAltName.parse(entry)
            except InvalidRequestError as e:
                errors.append(ConfigValidationError("extra_server_sans", str(e)))

        # Export bundle
        if not config.export_password:
            warnings.append(ConfigValidationError(
                "export_password",
                f"No export password configured (set {EXPORT_PASSWORD_ENV}); client.p12 will be skipped",
                "warning"
            ))

        if config.output_dir and not os.path.isdir(config.output_dir):
            warnings.append(ConfigValidationError(
                "output_dir",
                f"Output directory does not exist and will be created: {config.output_dir}",
                "warning"
            ))

        all_issues = errors + warnings
        return ConfigValidationResult(
            is_valid=len(errors) == 0,
            errors=all_issues,
            warnings=[]
        )

    def create_default_config_file(self, config_path: str) -> None:
        """
        Create a default configuration file with example settings.

        Args:
            config_path: Path where to create the config file
        """
        config_content = """# certforge configuration file

[server]
identity = localhost
# comma-separated DNS:<name> / IP:<address> entries
extra_sans =

[client]
common_name = client1
organizational_unit = TrustedDevices

[ca]
country = US
organization = Example Org
validity_days = 3650
leaf_validity_days = 825
signature_hash = SHA256

[keys]
algorithm = RSA
ca_bits = 4096
leaf_bits = 2048

[export]
output_dir = .
# leave empty and set CERTFORGE_EXPORT_PASSWORD instead of storing it here
password =
friendly_name =

[app]
log_level = INFO
log_file_path =
"""

        config_dir = os.path.dirname(config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(config_path, 'w') as f:
            f.write(config_content)

        self.logger.info(f"Created default configuration file: {config_path}")
