"""Command-line interface for cloudlink.

Provides argument parsing and the main entry point for issuing requests
against a configured provider from the command line.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from rich.logging import RichHandler

from cloudlink.config import ConfigError, load_providers
from cloudlink.errors import CloudError, NotModified, RequestError
from cloudlink.httpdate import format_http_date, parse_http_date
from cloudlink.models import ProviderConfig, ResponseEnvelope
from cloudlink.reporters import ConsoleReporter, JsonReporter, Reporter
from cloudlink.services import build_service

logger = logging.getLogger(__name__)

# Provider kind each subcommand talks to
COMMAND_KINDS = {
    "head": "storage",
    "get": "storage",
    "ls": "storage",
    "zones": "dns",
    "records": "dns",
    "images": "compute",
}


class CompositeReporter(Reporter):
    """Reporter that delegates to multiple reporters.

    Allows using both ConsoleReporter and JsonReporter simultaneously.
    """

    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_response(self, title: str, response: ResponseEnvelope) -> None:
        for reporter in self._reporters:
            reporter.on_response(title, response)

    def on_listing(self, title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        for reporter in self._reporters:
            reporter.on_listing(title, columns, rows)

    def on_note(self, message: str) -> None:
        for reporter in self._reporters:
            reporter.on_note(message)

    def on_error(self, message: str) -> None:
        for reporter in self._reporters:
            reporter.on_error(message)

    def on_complete(self) -> None:
        for reporter in self._reporters:
            reporter.on_complete()


def http_date(value: str) -> datetime:
    """argparse type for dates given as ISO 8601 or HTTP wire format."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        parsed = parse_http_date(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"Not a date: {value!r}")
    return parsed


def _add_conditions(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--if-match", metavar="ETAG", help="Only if the ETag matches")
    parser.add_argument("--if-none-match", metavar="ETAG", help="Only if the ETag differs")
    parser.add_argument(
        "--if-modified-since",
        metavar="DATE",
        type=http_date,
        help="Only if modified after DATE (ISO 8601 or HTTP date)",
    )
    parser.add_argument(
        "--if-unmodified-since",
        metavar="DATE",
        type=http_date,
        help="Only if not modified after DATE (ISO 8601 or HTTP date)",
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="cloudlink",
        description="Issue requests against storage, DNS and compute providers",
    )

    parser.add_argument(
        "-c", "--config",
        default="config.json",
        help="Path to configuration file (default: config.json)",
    )

    parser.add_argument(
        "-p", "--provider",
        metavar="KEY",
        help="Provider key to use (default: first provider of the needed kind)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log requests and responses",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress notes, show only results and errors",
    )

    parser.add_argument(
        "-j", "--json-output",
        metavar="PATH",
        help="Write JSON results to file",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    head = commands.add_parser("head", help="Show an object's metadata")
    head.add_argument("bucket")
    head.add_argument("key")
    _add_conditions(head)

    get = commands.add_parser("get", help="Download an object")
    get.add_argument("bucket")
    get.add_argument("key")
    get.add_argument("-o", "--output", metavar="FILE", help="Write the body to FILE")
    _add_conditions(get)

    ls = commands.add_parser("ls", help="List buckets, or the objects of a bucket")
    ls.add_argument("bucket", nargs="?")

    commands.add_parser("zones", help="List DNS zones")

    records = commands.add_parser("records", help="List the records of a DNS zone")
    records.add_argument("zone_id", type=int)

    commands.add_parser("images", help="List machine images")

    return parser.parse_args(argv)


def create_reporters(args: argparse.Namespace) -> list[Reporter]:
    """Create reporters based on command-line arguments."""
    reporters: list[Reporter] = [ConsoleReporter(quiet=args.quiet)]
    if args.json_output:
        reporters.append(JsonReporter(output_path=args.json_output))
    return reporters


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
    )


def select_provider(
    providers: dict[str, ProviderConfig],
    kind: str,
    key: Optional[str] = None,
) -> ProviderConfig:
    """Pick the provider a command runs against.

    Args:
        providers: All configured providers
        kind: Provider kind the command needs
        key: Explicit provider key, if one was requested

    Returns:
        The selected provider configuration

    Raises:
        ConfigError: If no matching provider exists
    """
    if key is not None:
        config = providers.get(key)
        if config is None:
            raise ConfigError(f"Unknown provider: {key}")
        if config.kind != kind:
            raise ConfigError(f"Provider '{key}' is a {config.kind} provider, not {kind}")
        return config

    for config in providers.values():
        if config.kind == kind:
            return config
    raise ConfigError(f"No {kind} provider configured")


def _conditions(args: argparse.Namespace) -> dict:
    return {
        "if_match": args.if_match,
        "if_none_match": args.if_none_match,
        "if_modified_since": args.if_modified_since,
        "if_unmodified_since": args.if_unmodified_since,
    }


def _date(value: Optional[datetime]) -> str:
    return format_http_date(value) if value is not None else ""


def run_command(args: argparse.Namespace, service, reporter: Reporter) -> None:
    """Run one subcommand against a service, reporting what it returns."""
    if args.command == "head":
        response = service.head_object(args.bucket, args.key, **_conditions(args))
        reporter.on_response(f"{args.bucket}/{args.key}", response)

    elif args.command == "get":
        response = service.get_object(args.bucket, args.key, **_conditions(args))
        reporter.on_response(f"{args.bucket}/{args.key}", response)
        if args.output:
            Path(args.output).write_bytes(response.body or b"")
            reporter.on_note(f"Wrote {len(response.body or b'')} bytes to {args.output}")

    elif args.command == "ls" and args.bucket is None:
        rows = [
            (directory.key, _date(directory.creation_date))
            for directory in service.directories.all()
        ]
        reporter.on_listing("Buckets", ("Name", "Created"), rows)

    elif args.command == "ls":
        directory = service.directories.get(args.bucket)
        if directory is None:
            raise ConfigError(f"No such bucket: {args.bucket}")
        rows = [
            (file.key, file.size, file.etag or "", _date(file.last_modified))
            for file in directory.files.all()
        ]
        reporter.on_listing(args.bucket, ("Key", "Size", "ETag", "Last-Modified"), rows)

    elif args.command == "zones":
        rows = [(zone.id, zone.domain, zone.type, zone.ttl) for zone in service.zones.all()]
        reporter.on_listing("Zones", ("ID", "Domain", "Type", "TTL"), rows)

    elif args.command == "records":
        zone = service.zones.get(args.zone_id)
        if zone is None:
            raise ConfigError(f"No such zone: {args.zone_id}")
        rows = [
            (record.id, record.name, record.type, record.value, record.ttl)
            for record in zone.records.all()
        ]
        reporter.on_listing(zone.domain or str(zone.id), ("ID", "Name", "Type", "Value", "TTL"), rows)

    elif args.command == "images":
        rows = [
            (image.id, image.name or "", image.arch or "", image.status or "")
            for image in service.images.all()
        ]
        reporter.on_listing("Images", ("ID", "Name", "Arch", "Status"), rows)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for request errors, 2 for configuration errors
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        providers = load_providers(args.config)
        config = select_provider(providers, COMMAND_KINDS[args.command], args.provider)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    reporters = create_reporters(args)
    if len(reporters) == 1:
        reporter = reporters[0]
    else:
        reporter = CompositeReporter(reporters)

    exit_code = 0
    try:
        with build_service(config) as service:
            run_command(args, service, reporter)
    except NotModified:
        reporter.on_note("Not modified (304)")
    except RequestError as e:
        reporter.on_error(f"{e} (HTTP {e.status})")
        exit_code = 1
    except ConfigError as e:
        reporter.on_error(str(e))
        exit_code = 1
    except CloudError as e:
        logger.debug("Request failed", exc_info=True)
        reporter.on_error(str(e))
        exit_code = 1
    finally:
        reporter.on_complete()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
