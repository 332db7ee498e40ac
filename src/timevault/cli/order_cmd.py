"""Order command: Show the resolved job order."""

import argparse
import logging

from rich.console import Console
from rich.table import Table

from ..__logger__ import create_logger
from ..config import Config, ConfigError, Job
from ..core.graph import GraphError, JobDisabled, JobNotFound, default_roots, plan
from .common import EXIT_ERROR, EXIT_OK, get_log_level, load_cli_config

logger = logging.getLogger(__name__)


def resolve_plan(config: Config, names: list[str] | None) -> list[Job]:
    """Resolve the requested jobs (or the auto jobs) into run order.

    Raises:
        GraphError: If a job is unknown or disabled, or the graph has a cycle
    """
    return plan(config, names or default_roots(config))


def report_graph_error(e: GraphError) -> None:
    """Log why the job graph could not be resolved."""
    logger.error("%s", e)
    if isinstance(e, JobNotFound):
        logger.error("no such job(s) found; aborting")
    elif isinstance(e, JobDisabled):
        logger.error("requested job(s) are disabled; aborting")


def print_plan(jobs: list[Job], console: Console | None = None) -> None:
    """Print jobs in run order as a table."""
    console = console or Console()
    table = Table(title="Job order")
    table.add_column("#", justify="right")
    table.add_column("Job", style="bold")
    table.add_column("Run")
    table.add_column("Source")
    table.add_column("Destination")
    table.add_column("Copies", justify="right")
    table.add_column("Depends on")

    for position, job in enumerate(jobs, 1):
        table.add_row(
            str(position),
            job.name,
            job.run_policy.value,
            job.source,
            job.dest,
            str(job.copies),
            ", ".join(job.depends_on) or "-",
        )

    console.print(table)


def execute_order(args: argparse.Namespace) -> int:
    """Execute the order command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    log_level = get_log_level(args)
    create_logger(level=log_level)

    try:
        config = load_cli_config(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_ERROR

    try:
        jobs = resolve_plan(config, getattr(args, "job", None))
    except GraphError as e:
        report_graph_error(e)
        return EXIT_ERROR

    if not jobs:
        logger.warning("No jobs selected (no auto jobs configured)")
        return EXIT_OK

    print_plan(jobs)
    return EXIT_OK
