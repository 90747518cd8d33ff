"""
ETA Estimator

Derives a human-facing "time to target" from the project timer and the
increment history.

This is a coarse heuristic, not a forecast: the average time per increment
is the whole project's elapsed time divided by the number of increments in
the chosen series, so it drifts with how densely a counter has been used
and ignores idle stretches the timer counted.
"""

import math

from stitch.engine import history as ledger
from stitch.engine.timer import elapsed_at
from stitch.persistence.models import Counter, Project

MS_PER_MINUTE = 60_000


def estimate(counter: Counter, project: Project, now: int | None = None) -> str | None:
    """
    Estimate time remaining until ``counter`` reaches its target.

    The counter's own increments are preferred; when it has none, the whole
    project's increments are used instead.

    Args:
        counter: Counter to estimate for
        project: Project owning the counter, timer and history
        now: When given and the timer is running, include time not yet sampled

    Returns:
        Formatted estimate, or None when there is no open target or no data
    """
    if counter.target is None or counter.target <= counter.value:
        return None

    samples = ledger.series(project.increment_history, counter.id)
    if not samples:
        samples = ledger.series(project.increment_history)
    if not samples:
        return None

    total_ms = elapsed_at(project.timer, now)
    if total_ms <= 0:
        return None

    avg_ms_per_increment = total_ms / len(samples)
    remaining = counter.target - counter.value
    return format_eta(remaining * avg_ms_per_increment)


def format_eta(eta_ms: float) -> str:
    """
    Round up to whole minutes and format.

    0 minutes -> "less than 1 minute", under an hour -> "~N min",
    otherwise "~Hh Mm".
    """
    minutes = math.ceil(eta_ms / MS_PER_MINUTE) if eta_ms > 0 else 0
    if minutes < 1:
        return "less than 1 minute"
    if minutes < 60:
        return f"~{minutes} min"
    hours, rem_minutes = divmod(minutes, 60)
    return f"~{hours}h {rem_minutes}m"
