"""
Command line interface for inspecting and migrating stored settings files.

Exit codes:
    0  success
    1  invalid input (unreadable file, bad engine settings, violations found)
    2  migration aborted
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from confchain import LoggingConfigError, initialize_production_logging
from confchain.exceptions import ConfigError, MigrationError, StoreError
from confchain.migration import MigrationRunner, describe_chain, read_document_version
from confchain.service import ConfigService
from confchain.settings import EngineSettings, load_settings
from confchain.store import FileConfigStore

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_MIGRATION_FAILED = 2


def _print_report(report, as_json: bool) -> None:
    data = report.to_dict()
    if as_json:
        print(json.dumps(data, indent=2, default=str))
        return

    print(f"Migration path: {data['migration_path']}")
    print(f"Final state:    {data['final_state']}")
    for name in data["applied_migrations"]:
        print(f"  applied {name}")
    for warning in data["warnings"]:
        print(f"  warning: {warning}")
    for error in data["errors"]:
        print(f"  error: {error}")


def _cmd_migrate(args: argparse.Namespace, settings: EngineSettings) -> int:
    store = FileConfigStore(args.path, args.key or settings.storage_key)
    runner = MigrationRunner()

    if args.dry_run:
        document, stored_version = store.read()
        if document is None:
            print(f"No settings stored under '{store.storage_key}'; defaults would be written")
            return EXIT_OK
        outcome = runner.run(document, stored_version)
        _print_report(outcome.report, args.json)
        if outcome.failed:
            return EXIT_MIGRATION_FAILED
        print("Dry run: nothing written")
        return EXIT_OK

    service = ConfigService(store, runner)
    try:
        asyncio.run(service.get_migrated_config())
    except MigrationError as e:
        if service.outcome is not None and service.outcome.report is not None:
            _print_report(service.outcome.report, args.json)
        print(f"Migration aborted: {e}", file=sys.stderr)
        return EXIT_MIGRATION_FAILED

    _print_report(service.outcome.report, args.json)
    return EXIT_OK


def _cmd_validate(args: argparse.Namespace, settings: EngineSettings) -> int:
    store = FileConfigStore(args.path, args.key or settings.storage_key)
    document, _ = store.read()
    if document is None:
        print(f"No settings stored under '{store.storage_key}'", file=sys.stderr)
        return EXIT_INVALID

    runner = MigrationRunner()
    version = args.version
    if version is None:
        version = read_document_version(document)
    if version is None:
        version = runner.latest_version

    result = runner.validator.validate(document, version)
    if result.ok:
        print(f"Settings are valid for version {version}")
        return EXIT_OK

    print(f"{len(result.violations)} violation(s) against version {version}:")
    for violation in result.violations:
        print(f"  {violation}")
    return EXIT_INVALID


def _cmd_versions(args: argparse.Namespace, settings: EngineSettings) -> int:
    registry = MigrationRunner().registry
    print(f"Lowest supported version: {registry.lowest_version}")
    print(f"Latest version:           {registry.latest_version}")
    for entry in describe_chain(registry):
        print(f"  {entry['from_version']} -> {entry['to_version']}  {entry['name']}: {entry['description']}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="confchain",
        description="Versioned settings migration engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview the upgrade of a stored settings file
  confchain migrate settings.json --dry-run

  # Upgrade in place
  confchain migrate settings.yaml --key config

  # Check a file against a specific schema version
  confchain validate settings.json --version 38
        """
    )
    parser.add_argument(
        '--settings',
        type=Path,
        help='Engine settings YAML (CONFCHAIN_* environment variables override it)'
    )
    parser.add_argument(
        '--log-level',
        help='Console log level (enables confchain console logging)'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    migrate = subparsers.add_parser('migrate', help='Upgrade a stored settings file to the latest version')
    migrate.add_argument('path', type=Path, help='JSON or YAML file holding the settings')
    migrate.add_argument('--key', help='Storage key inside the file')
    migrate.add_argument('--dry-run', action='store_true', help='Report without writing')
    migrate.add_argument('--json', action='store_true', help='Print the full report as JSON')
    migrate.set_defaults(handler=_cmd_migrate)

    validate = subparsers.add_parser('validate', help='Check a stored settings file against a schema version')
    validate.add_argument('path', type=Path, help='JSON or YAML file holding the settings')
    validate.add_argument('--key', help='Storage key inside the file')
    validate.add_argument('--version', type=int, help="Schema version (default: the document's own)")
    validate.set_defaults(handler=_cmd_validate)

    versions = subparsers.add_parser('versions', help='List the supported schema versions and steps')
    versions.set_defaults(handler=_cmd_versions)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``confchain`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.settings)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID

    if args.log_level or args.settings:
        try:
            initialize_production_logging(
                console_level=args.log_level or settings.log_level,
                log_dir=settings.log_dir if settings.file_logging else None,
            )
        except LoggingConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_INVALID

    try:
        return args.handler(args, settings)
    except StoreError as e:
        logger.error(f"Settings file error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
