"""
Command-line entry point: generate the mTLS hierarchy and write it to disk.
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

from .models.config import IssuanceConfig
from .models.errors import CertForgeError
from .services.config_service import ConfigService, EXPORT_PASSWORD_ENV
from .services.export_service import ArtifactWriter, ExportBundler
from .services.issuance_service import IssuanceEngine
from .services.logging_service import LoggingService


class CertForgeApplication:
    """Wires configuration, logging, issuance and export for one CLI run."""

    def __init__(self, config: IssuanceConfig):
        self.config = config
        self.config_service = ConfigService()
        self.logging_service = None
        self.logger = logging.getLogger(__name__)

    def check_configuration(self) -> bool:
        """Validate the configuration, logging warnings and printing errors."""
        result = self.config_service.validate_config(self.config)
        if result.has_errors():
            print(result.get_error_summary(), file=sys.stderr)
            return False
        if result.has_warnings():
            self.logger.warning(f"Configuration warnings:\n{result.get_error_summary()}")
        return True

    def run(self, check_only: bool = False) -> int:
        """
        Run issuance and export.

        Returns:
            Process exit code (0 on success)
        """
        self.logging_service = LoggingService(self.config)

        try:
            if not self.check_configuration():
                return 1

            if check_only:
                print("Configuration check passed")
                return 0

            engine = IssuanceEngine(
                self.config,
                performance_monitor=self.logging_service.performance_monitor
            )
            result = engine.run()

            client_bundle = None
            if self.config.export_password:
                client_bundle = ExportBundler().bundle(
                    result.client_leaf,
                    result.client_key,
                    result.client_ca,
                    self.config.friendly_name,
                    self.config.export_password
                )
            else:
                self.logger.warning(
                    f"No export password configured; skipping client.p12 (set {EXPORT_PASSWORD_ENV})"
                )

            writer = ArtifactWriter(self.config.output_dir)
            written = writer.write(result, client_bundle)
            print(writer.summary(written))

            for operation, stats in sorted(self.logging_service.get_performance_stats().items()):
                self.logger.debug(f"{operation}: {stats}")
            return 0

        except CertForgeError as e:
            self.logger.error(f"Certificate generation failed: {type(e).__name__}: {e}")
            return 1
        except OSError as e:
            self.logger.error(f"Failed to write artifacts: {e}")
            return 1
        finally:
            self.logging_service.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='certforge',
        description='Generate server and client CAs, leaf certificates and chains for mutual TLS'
    )
    parser.add_argument('domain', nargs='?', help='Server identity (default: localhost)')
    parser.add_argument('client_cn', nargs='?', help='Client common name (default: client1)')
    parser.add_argument('client_ou', nargs='?', help='Client organizational unit (default: TrustedDevices)')
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--output-dir', '-o', help='Directory to write artifacts to')
    parser.add_argument('--ca-days', type=int, help='CA validity in days (default: 3650)')
    parser.add_argument('--leaf-days', type=int, help='Leaf validity in days (default: 825, max 825)')
    parser.add_argument('--ca-key-bits', type=int, help='CA key size (default: 4096)')
    parser.add_argument('--leaf-key-bits', type=int, help='Leaf key size (default: 2048)')
    parser.add_argument('--key-algorithm', choices=['RSA', 'EC'], help='Key algorithm (default: RSA)')
    parser.add_argument('--san', action='append', default=[],
                        help='Extra server SAN as DNS:<name> or IP:<address> (repeatable)')
    parser.add_argument('--p12-password', help=f'PKCS#12 export password (or set {EXPORT_PASSWORD_ENV})')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument('--check-config', action='store_true', help='Check configuration and exit')
    return parser


def config_from_args(args: argparse.Namespace) -> IssuanceConfig:
    """Start from the config file (or defaults) and apply command-line overrides."""
    config_service = ConfigService()
    config = config_service.load_config(args.config) if args.config else IssuanceConfig()

    overrides = {
        'server_identity': args.domain,
        'client_common_name': args.client_cn,
        'client_organizational_unit': args.client_ou,
        'output_dir': args.output_dir,
        'ca_validity_days': args.ca_days,
        'leaf_validity_days': args.leaf_days,
        'ca_key_bits': args.ca_key_bits,
        'leaf_key_bits': args.leaf_key_bits,
        'key_algorithm': args.key_algorithm,
        'export_password': args.p12_password,
        'log_level': args.log_level,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if args.san:
        overrides['extra_server_sans'] = tuple(config.extra_server_sans) + tuple(args.san)

    return config_service.apply_environment(replace(config, **overrides))


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    app = CertForgeApplication(config)
    sys.exit(app.run(check_only=args.check_config))


if __name__ == '__main__':
    main()
