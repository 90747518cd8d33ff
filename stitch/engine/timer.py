"""
Timer Accrual

Turns periodic wall-clock samples into accumulated elapsed time.
Pure functions of (timer, now); the caller owns the tick cadence.
"""

import logging

from stitch.persistence.models import Timer

logger = logging.getLogger(__name__)


def tick(timer: Timer, now: int) -> int:
    """
    Accrue time since the last sample.

    No-op while paused. A missing last sample, or a clock that moved
    backwards, counts as zero elapsed for this sample and resamples
    ``last_tick``, so accrual is never negative.

    Args:
        timer: Timer to update in place
        now: Current wall-clock time in epoch ms

    Returns:
        Milliseconds added to ``total_elapsed_ms``
    """
    if timer.is_paused:
        return 0

    if timer.last_tick is None or now < timer.last_tick:
        if timer.last_tick is not None:
            logger.debug(f"Clock moved backwards by {timer.last_tick - now}ms, resampling")
        timer.last_tick = now
        return 0

    accrued = now - timer.last_tick
    timer.total_elapsed_ms += accrued
    timer.last_tick = now
    return accrued


def toggle_pause(timer: Timer, now: int) -> bool:
    """
    Flip the paused state.

    Resuming resamples ``last_tick`` so the paused span is never counted.
    Pausing accrues up to ``now`` first.

    Returns:
        The new ``is_paused`` value
    """
    if timer.is_paused:
        timer.is_paused = False
        timer.last_tick = now
    else:
        tick(timer, now)
        timer.is_paused = True
    return timer.is_paused


def resample(timer: Timer, now: int) -> None:
    """Restart sampling at ``now`` without accruing (used when a project becomes active)."""
    if timer.is_running:
        timer.last_tick = now


def elapsed_at(timer: Timer, now: int | None = None) -> int:
    """Total elapsed including the not-yet-sampled span up to ``now``, without mutating."""
    total = timer.total_elapsed_ms
    if now is not None and timer.is_running and timer.last_tick is not None and now > timer.last_tick:
        total += now - timer.last_tick
    return total


def format_elapsed(ms: int) -> str:
    """Format milliseconds as HH:MM:SS."""
    total_seconds = max(0, ms) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
