"""CLI entry point for artifactory-cli.

Handles argument parsing, resolves the target server from flags and config
profiles, and dispatches to the administrative commands.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from artifactory_cli import commands
from artifactory_cli.commands import CommandContext, build_api_url
from artifactory_cli.config_loader import ConfigError, load_runtime_config, select_server
from artifactory_cli.executor import RemoteCommandError
from artifactory_cli.models import Credentials, NoResponse, ServerConfig


LOG_FORMAT = "%(levelname)s: %(message)s"


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


@dataclass
class CommandArgs:
    """Parsed arguments for any subcommand."""

    command: str
    url: str | None = None
    host: str | None = None
    ssl: bool = False
    username: str | None = None
    password: str | None = None
    timeout: float | None = None
    config: Path | None = None
    server: str | None = None
    verbose: bool = False
    # configuration / security
    set_file: Path | None = None
    out: Path | None = None
    # export / import
    path: str | None = None
    include_metadata: bool = True
    create_archive: bool = False
    bypass_filtering: bool = False
    fail_on_error: bool = False
    fail_if_empty: bool = False


def _connection_parent() -> argparse.ArgumentParser:
    """Options shared by every subcommand."""
    parent = argparse.ArgumentParser(add_help=False)
    group = parent.add_argument_group("connection")
    group.add_argument(
        "--url",
        type=str,
        default=None,
        help="Base API URL, e.g. http://myhost:8081/artifactory/api/",
    )
    group.add_argument(
        "--host",
        type=str,
        default=None,
        metavar="HOST:PORT",
        help="Server host and port (ignored when --url is given, default localhost:8081)",
    )
    group.add_argument(
        "--ssl",
        action="store_true",
        default=None,
        help="Use https when building the URL from --host",
    )
    group.add_argument("--username", type=str, default=None, help="Username for basic authentication")
    group.add_argument("--password", type=str, default=None, help="Password for basic authentication")
    group.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        metavar="SECONDS",
        help="Socket read timeout (default: 60)",
    )
    group.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to runtime configuration file (YAML) with server profiles",
    )
    group.add_argument(
        "--server",
        type=str,
        default=None,
        help="Server profile name from --config",
    )
    parent.add_argument("-v", "--verbose", action="store_true", help="Log progress messages")
    return parent


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per administrative command."""
    parser = argparse.ArgumentParser(
        prog="artifactory-cli",
        description="Administrative command-line client for the Artifactory REST API.",
    )
    parent = _connection_parent()
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    subparsers.add_parser(
        "compress",
        parents=[parent],
        help="Compress the storage tables (Derby only)",
    )
    subparsers.add_parser(
        "info",
        parents=[parent],
        help="Print system information",
    )

    for name, what in (("configuration", "central configuration"), ("security", "security descriptor")):
        sub = subparsers.add_parser(name, parents=[parent], help=f"Show or replace the {what}")
        sub.add_argument(
            "--set",
            type=Path,
            default=None,
            dest="set_file",
            metavar="FILE",
            help=f"Upload FILE as the new {what} (XML)",
        )
        sub.add_argument(
            "--out",
            type=Path,
            default=None,
            metavar="FILE",
            help=f"Save the current {what} to FILE instead of printing it",
        )

    export_parser = subparsers.add_parser(
        "export",
        parents=[parent],
        help="Export the whole system to a directory on the server",
    )
    export_parser.add_argument("path", metavar="DEST", help="Export directory on the server host")
    export_parser.add_argument(
        "--create-archive",
        action="store_true",
        dest="create_archive",
        help="Zip the export",
    )
    export_parser.add_argument(
        "--bypass-filtering",
        action="store_true",
        dest="bypass_filtering",
        help="Export raw descriptors, bypassing any filtering",
    )

    import_parser = subparsers.add_parser(
        "import",
        parents=[parent],
        help="Import a full system export from a directory on the server",
    )
    import_parser.add_argument("path", metavar="SOURCE", help="Import directory on the server host")

    for sub in (export_parser, import_parser):
        sub.add_argument(
            "--no-metadata",
            action="store_false",
            dest="include_metadata",
            help="Skip artifact metadata",
        )
        sub.add_argument(
            "--fail-on-error",
            action="store_true",
            dest="fail_on_error",
            help="Abort on the first error",
        )
        sub.add_argument(
            "--fail-if-empty",
            action="store_true",
            dest="fail_if_empty",
            help="Fail when a repository is empty",
        )

    return parser


def parse_args(args: list[str] | None = None) -> CommandArgs:
    """Parse command-line arguments and return a CommandArgs dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    namespace = build_parser().parse_args(args)
    return CommandArgs(
        command=namespace.command,
        url=namespace.url,
        host=namespace.host,
        ssl=bool(namespace.ssl),
        username=namespace.username,
        password=namespace.password,
        timeout=namespace.timeout,
        config=namespace.config,
        server=namespace.server,
        verbose=namespace.verbose,
        set_file=getattr(namespace, "set_file", None),
        out=getattr(namespace, "out", None),
        path=getattr(namespace, "path", None),
        include_metadata=getattr(namespace, "include_metadata", True),
        create_archive=getattr(namespace, "create_archive", False),
        bypass_filtering=getattr(namespace, "bypass_filtering", False),
        fail_on_error=getattr(namespace, "fail_on_error", False),
        fail_if_empty=getattr(namespace, "fail_if_empty", False),
    )


def build_context(args: CommandArgs) -> CommandContext:
    """Resolve URL, credentials and timeout. Flags override the config profile.

    Raises:
        ConfigError: If the config file or profile cannot be loaded.
    """
    profile = ServerConfig()
    if args.config is not None:
        profile = select_server(load_runtime_config(args.config), args.server)
    elif args.server is not None:
        raise ConfigError("--server requires --config")

    url = args.url or (None if args.host else profile.url)
    host = args.host or profile.host
    ssl = args.ssl or profile.ssl
    username = args.username if args.username is not None else profile.username
    password = args.password if args.password is not None else profile.password

    timeout_ms = -1
    if args.timeout is not None:
        timeout_ms = int(args.timeout * 1000)
    elif profile.timeout_ms is not None:
        timeout_ms = profile.timeout_ms

    return CommandContext(
        api_url=build_api_url(host=host, url=url, ssl=ssl),
        credentials=Credentials.from_pair(username, password),
        timeout_ms=timeout_ms,
    )


def configure_logging(verbose: bool) -> None:
    """Send package log records to the current stderr.

    Replaces any handler installed by an earlier call, so repeated in-process
    runs always log to the stderr of the current run.
    """
    package_logger = logging.getLogger("artifactory_cli")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO if verbose else logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        args = parse_args(argv)
        configure_logging(args.verbose)
        ctx = build_context(args)
        return run_command(args, ctx)
    except (RemoteCommandError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_command(args: CommandArgs, ctx: CommandContext) -> int:
    """Dispatch to the command handler for args.command."""
    handlers: dict[str, Callable[[CommandArgs, CommandContext], int]] = {
        "compress": run_compress,
        "info": run_info,
        "configuration": run_configuration,
        "security": run_security,
        "export": run_export,
        "import": run_import,
    }
    return handlers[args.command](args, ctx)


def run_compress(args: CommandArgs, ctx: CommandContext) -> int:
    commands.compress(ctx)
    return 0


def run_info(args: CommandArgs, ctx: CommandContext) -> int:
    commands.info(ctx)
    return 0


def _run_descriptor_command(
    args: CommandArgs,
    ctx: CommandContext,
    label: str,
    fetch: Callable[..., bytes | NoResponse],
    upload: Callable[[CommandContext, Path], bytes | NoResponse],
) -> int:
    """Shared flow of the configuration and security commands."""
    if args.set_file is not None:
        if not args.set_file.is_file():
            print(f"Error: {label} file not found: {args.set_file}", file=sys.stderr)
            return 1
        upload(ctx, args.set_file)
        return 0

    if args.out is None:
        fetch(ctx, echo=True)
        return 0

    result = fetch(ctx, echo=False)
    if isinstance(result, NoResponse):
        print(f"Warning: no {label} received, {args.out} was not written", file=sys.stderr)
        return 0
    args.out.write_bytes(result)
    print(f"{label.capitalize()} saved to {args.out}")
    return 0


def run_configuration(args: CommandArgs, ctx: CommandContext) -> int:
    return _run_descriptor_command(
        args, ctx, "configuration", commands.get_configuration, commands.set_configuration
    )


def run_security(args: CommandArgs, ctx: CommandContext) -> int:
    return _run_descriptor_command(
        args, ctx, "security", commands.get_security, commands.set_security
    )


def run_export(args: CommandArgs, ctx: CommandContext) -> int:
    commands.export_system(
        ctx,
        args.path,
        include_metadata=args.include_metadata,
        create_archive=args.create_archive,
        bypass_filtering=args.bypass_filtering,
        verbose=args.verbose,
        fail_on_error=args.fail_on_error,
        fail_if_empty=args.fail_if_empty,
    )
    return 0


def run_import(args: CommandArgs, ctx: CommandContext) -> int:
    commands.import_system(
        ctx,
        args.path,
        include_metadata=args.include_metadata,
        verbose=args.verbose,
        fail_on_error=args.fail_on_error,
        fail_if_empty=args.fail_if_empty,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
