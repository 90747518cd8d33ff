"""
Stitch - Knitting and crochet row counter.

Tracks a main row counter plus optional sub-counters, a pausable project
timer and an increment history used to estimate time to each target.
Projects start in memory and are kept in a local SQLite store once saved.
"""

__version__ = "0.1.0"

from stitch.exceptions import (
    ConfigError,
    NotFoundError,
    StateTransitionError,
    StitchError,
    StoreError,
    ValidationError,
)

__all__ = [
    "__version__",
    "StitchError",
    "ValidationError",
    "StoreError",
    "NotFoundError",
    "ConfigError",
    "StateTransitionError",
]
