"""CLI command implementations for ciwarden.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .checks import checks
from .fix import fix
from .init import init
from .wait import wait

__all__ = [
    "checks",
    "fix",
    "init",
    "wait",
]
