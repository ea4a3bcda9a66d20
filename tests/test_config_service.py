"""
Unit tests for the configuration service and models.
"""
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from certforge.models.config import IssuanceConfig, ConfigValidationError, ConfigValidationResult
from certforge.services.config_service import ConfigService, EXPORT_PASSWORD_ENV


class TestIssuanceConfig(unittest.TestCase):
    """Test cases for IssuanceConfig data model."""

    def test_config_defaults(self):
        """Test that Config has correct default values."""
        config = IssuanceConfig()

        self.assertEqual(config.server_identity, "localhost")
        self.assertEqual(config.client_common_name, "client1")
        self.assertEqual(config.client_organizational_unit, "TrustedDevices")
        self.assertEqual(config.ca_validity_days, 3650)
        self.assertEqual(config.leaf_validity_days, 825)
        self.assertEqual(config.key_algorithm, "RSA")
        self.assertEqual(config.ca_key_bits, 4096)
        self.assertEqual(config.leaf_key_bits, 2048)
        self.assertEqual(config.signature_hash, "SHA256")
        self.assertIsNone(config.export_password)
        self.assertEqual(config.extra_server_sans, ())

    def test_config_type_validation(self):
        """Test that Config rejects values of the wrong shape."""
        invalid = [
            ({"server_identity": ""}, "server_identity must be a non-empty string"),
            ({"client_organizational_unit": "  "}, "client_organizational_unit must be a non-empty string"),
            ({"ca_validity_days": 0}, "ca_validity_days must be a positive integer"),
            ({"leaf_validity_days": "30"}, "leaf_validity_days must be an integer"),
            ({"key_algorithm": "DSA"}, "key_algorithm must be one of"),
            ({"ca_key_bits": -1}, "ca_key_bits must be a positive integer"),
            ({"signature_hash": "MD5"}, "signature_hash must be one of"),
            ({"log_level": "INVALID"}, "log_level must be one of"),
        ]

        for kwargs, message in invalid:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValueError) as cm:
                    IssuanceConfig(**kwargs)
                self.assertIn(message, str(cm.exception))

    def test_zero_leaf_validity_is_left_to_validation(self):
        config = IssuanceConfig(leaf_validity_days=0)
        self.assertEqual(config.leaf_validity_days, 0)

    def test_friendly_name_defaults_to_client_common_name(self):
        self.assertEqual(IssuanceConfig(client_common_name="sensor-7").friendly_name, "sensor-7")
        self.assertEqual(IssuanceConfig(export_friendly_name="Sensor").friendly_name, "Sensor")

    def test_extra_sans_become_a_tuple(self):
        config = IssuanceConfig(extra_server_sans=["DNS:api.local"])
        self.assertEqual(config.extra_server_sans, ("DNS:api.local",))


class TestConfigValidationResult(unittest.TestCase):
    """Test cases for ConfigValidationResult."""

    def test_validation_error_string_representation(self):
        error = ConfigValidationError("leaf_validity_days", "Too long")
        self.assertEqual(str(error), "ERROR: leaf_validity_days - Too long")

        warning = ConfigValidationError("ca_key_bits", "Weak", "warning")
        self.assertEqual(str(warning), "WARNING: ca_key_bits - Weak")

    def test_issues_are_separated_by_severity(self):
        issues = [
            ConfigValidationError("field1", "Error 1"),
            ConfigValidationError("field2", "Warning 1", "warning")
        ]

        result = ConfigValidationResult(is_valid=False, errors=issues, warnings=[])

        self.assertEqual(len(result.errors), 1)
        self.assertEqual(len(result.warnings), 1)
        summary = result.get_error_summary()
        self.assertIn("Configuration Errors:", summary)
        self.assertIn("Configuration Warnings:", summary)

    def test_valid_summary(self):
        result = ConfigValidationResult(is_valid=True, errors=[], warnings=[])
        self.assertEqual(result.get_error_summary(), "Configuration is valid")


class TestConfigService(unittest.TestCase):
    """Test cases for ConfigService."""

    def setUp(self):
        """Set up test fixtures."""
        self.config_service = ConfigService()
        self.temp_dir = tempfile.mkdtemp()
        env = patch.dict(os.environ, {}, clear=False)
        env.start()
        self.addCleanup(env.stop)
        os.environ.pop(EXPORT_PASSWORD_ENV, None)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, name, content):
        path = os.path.join(self.temp_dir, name)
        with open(path, 'w') as f:
            f.write(content)
        return path

    def test_get_config_before_load(self):
        with self.assertRaises(ValueError):
            self.config_service.get_config()

    def test_load_config_file_not_found(self):
        with self.assertRaises(FileNotFoundError) as cm:
            self.config_service.load_config(os.path.join(self.temp_dir, "missing.properties"))

        self.assertIn("Configuration file not found", str(cm.exception))

    def test_load_valid_config(self):
        config_path = self._write("certforge.properties", f"""[server]
identity = api.example.com
extra_sans = DNS:api.internal, IP:10.0.0.5

[client]
common_name = sensor-7
organizational_unit = Sensors

[ca]
country = DE
organization = Acme GmbH
validity_days = 1825
leaf_validity_days = 365
signature_hash = sha384

[keys]
algorithm = ec
ca_bits = 384
leaf_bits = 256

[export]
output_dir = {self.temp_dir}
password = p%ss
friendly_name =

[app]
log_level = debug
""")

        config = self.config_service.load_config(config_path)

        self.assertEqual(config.server_identity, "api.example.com")
        self.assertEqual(config.extra_server_sans, ("DNS:api.internal", "IP:10.0.0.5"))
        self.assertEqual(config.client_common_name, "sensor-7")
        self.assertEqual(config.client_organizational_unit, "Sensors")
        self.assertEqual(config.country, "DE")
        self.assertEqual(config.organization, "Acme GmbH")
        self.assertEqual(config.ca_validity_days, 1825)
        self.assertEqual(config.leaf_validity_days, 365)
        self.assertEqual(config.signature_hash, "SHA384")
        self.assertEqual(config.key_algorithm, "EC")
        self.assertEqual(config.ca_key_bits, 384)
        self.assertEqual(config.export_password, "p%ss")
        self.assertIsNone(config.export_friendly_name)
        self.assertEqual(config.log_level, "DEBUG")
        self.assertIs(self.config_service.get_config(), config)

    def test_flat_keys_in_default_section(self):
        config_path = self._write("flat.properties", """[DEFAULT]
server_identity = 192.168.1.10
leaf_validity_days = 90
""")

        config = self.config_service.load_config(config_path)

        self.assertEqual(config.server_identity, "192.168.1.10")
        self.assertEqual(config.leaf_validity_days, 90)

    def test_non_numeric_value(self):
        config_path = self._write("bad.properties", "[ca]\nvalidity_days = forever\n")

        with self.assertRaises(ValueError) as cm:
            self.config_service.load_config(config_path)
        self.assertIn("ca.validity_days", str(cm.exception))

    def test_load_config_with_validation_errors(self):
        config_path = self._write("invalid.properties", """[ca]
leaf_validity_days = 900

[server]
extra_sans = URI:https://example.com
""")

        with self.assertRaises(ValueError) as cm:
            self.config_service.load_config(config_path)

        message = str(cm.exception)
        self.assertIn("Configuration validation failed", message)
        self.assertIn("leaf_validity_days", message)
        self.assertIn("extra_server_sans", message)

    def test_password_from_environment(self):
        config_path = self._write("env.properties", "[export]\npassword =\n")

        with patch.dict(os.environ, {EXPORT_PASSWORD_ENV: "from-env"}):
            config = self.config_service.load_config(config_path)

        self.assertEqual(config.export_password, "from-env")

    def test_file_password_wins_over_environment(self):
        with patch.dict(os.environ, {EXPORT_PASSWORD_ENV: "from-env"}):
            config = self.config_service.apply_environment(IssuanceConfig(export_password="from-file"))

        self.assertEqual(config.export_password, "from-file")

    def test_validate_config_errors(self):
        cases = [
            (IssuanceConfig(leaf_validity_days=0), "leaf_validity_days"),
            (IssuanceConfig(ca_validity_days=100, leaf_validity_days=200), "leaf_validity_days"),
            (IssuanceConfig(ca_key_bits=1024), "ca_key_bits"),
            (IssuanceConfig(key_algorithm="EC", ca_key_bits=384, leaf_key_bits=2048), "leaf_key_bits"),
            (IssuanceConfig(country="USA"), "distinguished_name"),
            (IssuanceConfig(server_identity="not a host"), "server_identity"),
        ]

        for config, field in cases:
            with self.subTest(field=field, config=config):
                result = self.config_service.validate_config(config)
                self.assertFalse(result.is_valid)
                self.assertIn(field, [error.field for error in result.errors])

    def test_validate_config_warnings(self):
        config = IssuanceConfig(
            ca_key_bits=2048,
            output_dir=os.path.join(self.temp_dir, "not-yet"),
        )

        result = self.config_service.validate_config(config)

        self.assertTrue(result.is_valid)
        warning_fields = [warning.field for warning in result.warnings]
        self.assertIn("ca_key_bits", warning_fields)
        self.assertIn("export_password", warning_fields)
        self.assertIn("output_dir", warning_fields)

    def test_default_config_is_valid(self):
        result = self.config_service.validate_config(
            IssuanceConfig(export_password="secret", output_dir=self.temp_dir))

        self.assertTrue(result.is_valid)
        self.assertFalse(result.has_warnings())

    def test_create_default_config_file(self):
        config_path = os.path.join(self.temp_dir, "conf", "certforge.properties")

        self.config_service.create_default_config_file(config_path)

        with open(config_path, 'r') as f:
            content = f.read()
        for section in ("[server]", "[client]", "[ca]", "[keys]", "[export]", "[app]"):
            self.assertIn(section, content)

        config = self.config_service.load_config(config_path)
        self.assertEqual(config, IssuanceConfig())


if __name__ == '__main__':
    unittest.main()
