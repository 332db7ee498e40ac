"""CLI dispatcher with default command detection.

Running ``timevault`` with options only (as cron does) is the same as
``timevault run``.
"""

import argparse
import sys
from typing import Callable

from .common import add_config_arg, add_verbosity_args

# Known subcommands
SUBCOMMANDS = frozenset(
    {
        "run",
        "order",
        "init",
        "config",
    }
)

DEFAULT_COMMAND = "run"

# Options whose value is the next argument
_VALUE_OPTIONS = frozenset({"-c", "--config", "--job"})


def needs_default_command(argv: list[str]) -> bool:
    """Detect if the arguments name no subcommand and ``run`` is meant.

    Args:
        argv: Command line arguments (without program name)

    Returns:
        True if the default command should be prepended
    """
    skip_next = False
    for arg in argv:
        if skip_next:
            skip_next = False
            continue
        # Everything after --rsync belongs to rsync
        if arg == "--rsync":
            return True
        if arg in SUBCOMMANDS:
            return False
        if arg in {"-h", "--help", "-V", "--version"}:
            return False
        if arg in _VALUE_OPTIONS:
            skip_next = True
    return True


def _add_common(parser: argparse.ArgumentParser) -> None:
    add_verbosity_args(parser, suppress=True)
    add_config_arg(parser, suppress=True)


def create_subcommand_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="timevault",
        description="Mount, mirror and rotate dated backups of configured jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    add_verbosity_args(parser)
    add_config_arg(parser)

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands (use 'command --help' for details)",
    )

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run backup jobs (default command)",
        description="Mount, rotate, mirror and unmount each selected job in dependency order",
    )
    _add_common(run_parser)
    run_parser.add_argument(
        "--job",
        metavar="NAME",
        action="append",
        help="Run only the named job(s) and their dependencies (default: all auto jobs)",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without writing data",
    )
    run_parser.add_argument(
        "--safe",
        action="store_true",
        help="Never delete anything (no rsync --delete, no pruning)",
    )
    run_parser.add_argument(
        "--print-order",
        action="store_true",
        help="Print the resolved job order and exit",
    )
    run_parser.add_argument(
        "--rsync",
        metavar="ARGS",
        nargs=argparse.REMAINDER,
        default=[],
        help="Pass all remaining arguments to rsync",
    )

    # order command
    order_parser = subparsers.add_parser(
        "order",
        help="Show the resolved job order",
        description="Resolve dependencies and print jobs in the order they would run",
    )
    _add_common(order_parser)
    order_parser.add_argument(
        "--job",
        metavar="NAME",
        action="append",
        help="Resolve only the named job(s) (default: all auto jobs)",
    )

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialise a backup device",
        description="Mount an empty fstab device and write the timevault marker",
    )
    _add_common(init_parser)
    init_parser.add_argument(
        "mount",
        metavar="MOUNT",
        help="Mount point of the device (must be listed in /etc/fstab)",
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Initialise even if the device is not empty",
    )
    init_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Check the device without writing the marker",
    )

    # config command with subcommands
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Validate or initialize configuration",
    )
    _add_common(config_parser)
    config_subs = config_parser.add_subparsers(dest="config_action")

    config_subs.add_parser(
        "validate",
        help="Validate configuration file",
    )

    config_init_parser = config_subs.add_parser(
        "init",
        help="Generate example configuration",
    )
    config_init_parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        help="Output file (default: stdout)",
    )

    return parser


def run_subcommand(args: argparse.Namespace) -> int:
    """Run the specified subcommand.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    from .. import __version__

    if args.version:
        print(f"timevault {__version__}")
        return 0

    if not args.command:
        print("No command specified. Use --help for usage information.")
        return 2

    # Route to appropriate command handler
    handlers: dict[str, Callable] = {
        "run": cmd_run,
        "order": cmd_order,
        "init": cmd_init,
        "config": cmd_config,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args)
    else:
        print(f"Unknown command: {args.command}")
        return 2


def cmd_run(args: argparse.Namespace) -> int:
    """Execute run command."""
    from .run import execute_run

    return execute_run(args)


def cmd_order(args: argparse.Namespace) -> int:
    """Execute order command."""
    from .order_cmd import execute_order

    return execute_order(args)


def cmd_init(args: argparse.Namespace) -> int:
    """Execute init command."""
    from .init_cmd import execute_init

    return execute_init(args)


def cmd_config(args: argparse.Namespace) -> int:
    """Execute config command."""
    from .config_cmd import execute_config

    return execute_config(args)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for timevault CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    if needs_default_command(argv):
        argv = [DEFAULT_COMMAND] + list(argv)

    parser = create_subcommand_parser()
    args = parser.parse_args(argv)

    return run_subcommand(args)
