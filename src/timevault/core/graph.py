"""Job dependency resolution and scheduling.

``resolve`` expands the requested root jobs into the transitive closure of
their dependencies, ``order`` turns that set into a run order in which every
job follows the jobs it depends on. Ties are broken by configuration order,
so the same config and roots always give the same sequence.
"""

import logging
from typing import Iterable, Optional

from ..__util__ import TimevaultError
from ..config.schema import Config, Job, RunPolicy

logger = logging.getLogger(__name__)


class GraphError(TimevaultError):
    """The requested execution plan is invalid."""

    pass


class JobNotFound(GraphError):
    """A requested job is not configured."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"job not found: {name}")


class JobDisabled(GraphError):
    """A job with run policy off was requested or required."""

    def __init__(self, name: str, required_by: Optional[str] = None) -> None:
        self.name = name
        self.required_by = required_by
        if required_by:
            msg = f"job disabled (off): {name} (required by {required_by})"
        else:
            msg = f"job disabled (off): {name}"
        super().__init__(msg)


class DependencyNotFound(GraphError):
    """A ``depends_on`` entry names a job that is not available."""

    def __init__(self, dependency: str, owner: str) -> None:
        self.dependency = dependency
        self.owner = owner
        super().__init__(f"dependency {dependency} not found for job {owner}")


class CyclicDependency(GraphError):
    """The dependency graph of the selected jobs contains a cycle."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = list(names)
        super().__init__(
            "job dependencies contain a cycle: " + ", ".join(self.names)
        )


def _index(config: Config) -> dict[str, int]:
    return {job.name: i for i, job in enumerate(config.jobs)}


def default_roots(config: Config) -> list[str]:
    """Names of the jobs run when nothing is selected explicitly."""
    roots = []
    for job in config.jobs:
        if job.run_policy is RunPolicy.AUTO:
            roots.append(job.name)
    return roots


def resolve(config: Config, roots: Optional[Iterable[str]] = None) -> list[bool]:
    """Select the requested jobs and everything they depend on.

    Args:
        config: Loaded configuration
        roots: Requested job names; None or empty selects every auto job

    Returns:
        Inclusion flags aligned with ``config.jobs``

    Raises:
        JobNotFound: A root name is not configured
        JobDisabled: An off job was requested or is required by one
        DependencyNotFound: A dependency names an unknown job
    """
    index = _index(config)
    names = list(roots) if roots else default_roots(config)

    # (job index, index of the job that pulled it in)
    stack: list[tuple[int, Optional[int]]] = []
    seen = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        if name not in index:
            raise JobNotFound(name)
        stack.append((index[name], None))

    included = [False] * len(config.jobs)
    while stack:
        idx, parent = stack.pop()
        if included[idx]:
            continue
        job = config.jobs[idx]
        if job.run_policy is RunPolicy.OFF:
            required_by = config.jobs[parent].name if parent is not None else None
            raise JobDisabled(job.name, required_by)
        included[idx] = True
        for dep in job.depends_on:
            if dep not in index:
                raise DependencyNotFound(dep, job.name)
            stack.append((index[dep], idx))

    logger.debug(
        "Resolved %s to %s",
        names,
        [j.name for j, inc in zip(config.jobs, included) if inc],
    )
    return included


def order(config: Config, included: list[bool]) -> list[Job]:
    """Order the included jobs so dependencies run first.

    Each pass takes every remaining job whose dependencies have all been
    scheduled, in configuration order.

    Raises:
        DependencyNotFound: An included job depends on a job outside the set
        CyclicDependency: No progress is possible
    """
    index = _index(config)
    indegree = [0] * len(config.jobs)
    for i, job in enumerate(config.jobs):
        if not included[i]:
            continue
        for dep in dict.fromkeys(job.depends_on):
            if dep not in index or not included[index[dep]]:
                raise DependencyNotFound(dep, job.name)
            indegree[i] += 1

    pending = {i for i, inc in enumerate(included) if inc}
    ordered: list[Job] = []
    while pending:
        ready = [i for i in sorted(pending) if indegree[i] == 0]
        if not ready:
            raise CyclicDependency(config.jobs[i].name for i in sorted(pending))
        for i in ready:
            pending.discard(i)
            ordered.append(config.jobs[i])
        for j in pending:
            for i in ready:
                if config.jobs[i].name in config.jobs[j].depends_on:
                    indegree[j] -= 1

    return ordered


def plan(config: Config, roots: Optional[Iterable[str]] = None) -> list[Job]:
    """Resolve and order in one step."""
    return order(config, resolve(config, roots))


def validate_graph(config: Config) -> None:
    """Check the whole configured graph: known dependencies and no cycles."""
    if config.jobs:
        order(config, [True] * len(config.jobs))
