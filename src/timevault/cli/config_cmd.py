"""Config command: Configuration management."""

import argparse
import logging

from ..__logger__ import create_logger
from ..config import ConfigError, RunPolicy, find_config_file, load_config
from ..config.loader import CONFIG_ENV, CONFIG_PATHS, generate_example_config
from .common import EXIT_ERROR, EXIT_OK, get_log_level

logger = logging.getLogger(__name__)


def execute_config(args: argparse.Namespace) -> int:
    """Execute the config command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    log_level = get_log_level(args)
    create_logger(level=log_level)

    action = getattr(args, "config_action", None)

    if action == "validate":
        return _validate_config(args)
    elif action == "init":
        return _init_config(args)
    else:
        print("Usage: timevault config <validate|init>")
        return EXIT_ERROR


def _validate_config(args: argparse.Namespace) -> int:
    """Validate configuration file."""
    try:
        config_path = find_config_file(getattr(args, "config", None))
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return EXIT_ERROR
    if config_path is None:
        print("No configuration file found.")
        print("Searched locations:")
        print(f"  ${CONFIG_ENV}")
        for path in CONFIG_PATHS:
            print(f"  {path}")
        return EXIT_ERROR

    print(f"Validating: {config_path}")
    try:
        config, warnings = load_config(config_path)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return EXIT_ERROR

    if warnings:
        print("")
        print("Warnings:")
        for warning in warnings:
            print(f"  - {warning}")

    print("")
    print("Configuration is valid.")
    print(f"  Jobs: {len(config.jobs)}")
    for policy in RunPolicy:
        count = sum(1 for j in config.jobs if j.run_policy is policy)
        print(f"  {policy.value.capitalize()}: {count}")

    return EXIT_OK


def _init_config(args: argparse.Namespace) -> int:
    """Generate example configuration."""
    content = generate_example_config()

    output = getattr(args, "output", None)
    if output:
        try:
            with open(output, "w") as f:
                f.write(content)
            print(f"Example configuration written to: {output}")
        except OSError as e:
            print(f"Error writing file: {e}")
            return EXIT_ERROR
    else:
        print(content)

    return EXIT_OK
