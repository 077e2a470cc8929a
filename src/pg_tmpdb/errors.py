# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Exception taxonomy for the temporary database harness."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class HarnessError(Exception):
    """Base class for failures the CLI turns into an exit code."""

    exit_code = 1


class UsageError(HarnessError):
    """Raised before any resource is created when the invocation is unusable."""


class ConfigError(UsageError):
    """Malformed harness configuration (bad number, missing env file, ...)."""


class SetupError(HarnessError):
    """initdb, server start, readiness or fixture loading failed.

    ``returncode`` is the failing tool's own exit status when it reported one;
    it doubles as the harness exit code so callers see the same status the
    tool produced.
    """

    def __init__(
        self,
        step: str,
        message: str,
        returncode: Optional[int] = None,
        log_path: Optional[Path] = None,
    ) -> None:
        super().__init__(f"{step}: {message}")
        self.step = step
        self.returncode = returncode
        self.log_path = log_path
        if returncode is not None and returncode > 0:
            self.exit_code = returncode


class ReadinessTimeout(SetupError):
    def __init__(self, timeout: float, attempts: int, log_path: Optional[Path] = None) -> None:
        super().__init__(
            "ready",
            f"server not accepting connections after {timeout:g}s ({attempts} probes)",
            log_path=log_path,
        )
        self.timeout = timeout
        self.attempts = attempts


class Interrupted(HarnessError):
    """SIGINT/SIGTERM arrived while the harness was running."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"interrupted by signal {signum}")
        self.signum = signum
        self.exit_code = 128 + signum
