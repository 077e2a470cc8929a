"""Throwaway PostgreSQL instances for test commands.

``with-tmp-db <command> [args...]`` initializes a private cluster in a
temporary directory, listens only on a Unix socket inside it, loads the
fixtures, runs the command with ``PG*`` and ``TMPDB_TEST_*`` variables set,
then stops the server and removes the directory.
"""

from .config import Settings
from .errors import HarnessError, Interrupted, ReadinessTimeout, SetupError, UsageError
from .harness import build_environment, run

__all__: list[str] = [
    "HarnessError",
    "Interrupted",
    "ReadinessTimeout",
    "Settings",
    "SetupError",
    "UsageError",
    "build_environment",
    "run",
]
__version__ = "0.1.0"
