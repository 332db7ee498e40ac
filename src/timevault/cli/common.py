"""Shared CLI utilities and argument parsers."""

import argparse
import logging

from ..config import Config, ConfigError, find_config_file, load_config

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_ERROR = 2
EXIT_ALREADY_RUNNING = 3


def add_verbosity_args(parser: argparse.ArgumentParser, suppress: bool = False) -> None:
    """Add verbosity-related arguments to a parser.

    With ``suppress`` the options leave the namespace untouched unless given,
    so a subcommand parser does not reset values set before the subcommand.
    """
    default = argparse.SUPPRESS if suppress else False
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=default,
        help="Enable verbose output and echo external commands",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=default,
        help="Suppress non-essential output",
    )
    group.add_argument(
        "--debug",
        action="store_true",
        default=default,
        help="Enable debug output",
    )


def add_config_arg(parser: argparse.ArgumentParser, suppress: bool = False) -> None:
    """Add the configuration file option to a parser."""
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        default=argparse.SUPPRESS if suppress else None,
        help="Path to configuration file",
    )


def get_log_level(args: argparse.Namespace) -> str:
    """Determine log level from parsed arguments.

    Args:
        args: Parsed command line arguments

    Returns:
        Log level string (DEBUG, INFO, WARNING, ERROR)
    """
    if getattr(args, "debug", False):
        return "DEBUG"
    elif getattr(args, "quiet", False):
        return "WARNING"
    else:
        return "INFO"


def load_cli_config(args: argparse.Namespace, required: bool = True) -> Config | None:
    """Find and load the configuration named on the command line.

    Args:
        args: Parsed command line arguments
        required: Raise when no configuration file exists

    Returns:
        The configuration, or None when none exists and it is not required

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    config_path = find_config_file(getattr(args, "config", None))
    if config_path is None:
        if required:
            raise ConfigError(
                "No configuration file found. Create one with: timevault config init"
            )
        return None

    logger.info("Loading configuration from: %s", config_path)
    config, warnings = load_config(config_path)

    for warning in warnings:
        logger.warning("Config: %s", warning)

    return config
