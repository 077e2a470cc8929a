# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Fixed connection defaults and environment overrides for the harness.

The role, database, schema and anonymous-role names are part of the contract
with the command under test, so they are constants rather than anything
discovered at runtime. Only harness behaviour (preserve mode, fixture file,
readiness bound, binary location) is read from the calling environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

from .errors import ConfigError

DEFAULT_ROLE = "tmpdb_test_authenticator"
DEFAULT_DATABASE = "postgres"
DEFAULT_SCHEMA = "test"
DEFAULT_ANON_ROLE = "tmpdb_test_anonymous"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_ENCODING = "UTF8"
DEFAULT_FIXTURE_FILE = Path("fixtures") / "load.sql"
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_JWT_SECRET = "reallyreallyreallyreallyverysafe"  # pragma: allowlist secret

WORKSPACE_PREFIX = "pg_tmpdb."

PRESERVE_VAR = "TMPDB_PRESERVE"
FIXTURE_VAR = "TMPDB_FIXTURE_FILE"
READY_TIMEOUT_VAR = "TMPDB_READY_TIMEOUT"
POLL_INTERVAL_VAR = "TMPDB_POLL_INTERVAL"
BINDIR_VAR = "TMPDB_PG_BINDIR"
ENV_FILE_VAR = "TMPDB_ENV_FILE"

TRUTHY = {"1", "true", "yes", "on"}


def load_env(path: Path) -> Dict[str, str]:
    env: Dict[str, str] = {}
    if not path.exists():
        raise ConfigError(f"env file not found: {path}")
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        env[key.strip()] = value.strip().strip("'\"")
    return env


def is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUTHY


def _positive_float(name: str, raw: Optional[str]) -> Optional[float]:
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be greater than zero, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    role: str = DEFAULT_ROLE
    database: str = DEFAULT_DATABASE
    schema: str = DEFAULT_SCHEMA
    anon_role: str = DEFAULT_ANON_ROLE
    timezone: str = DEFAULT_TIMEZONE
    encoding: str = DEFAULT_ENCODING
    fixture_file: Path = DEFAULT_FIXTURE_FILE
    database_settings: Dict[str, str] = field(
        default_factory=lambda: {"app.settings.jwt_secret": DEFAULT_JWT_SECRET}
    )
    preserve: bool = False
    poll_interval: float = DEFAULT_POLL_INTERVAL
    # None keeps polling until the server answers.
    ready_timeout: Optional[float] = None
    bindir: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        source: Dict[str, str] = dict(os.environ if environ is None else environ)
        env_file = source.get(ENV_FILE_VAR)
        if env_file:
            merged = load_env(Path(env_file))
            merged.update(source)
            source = merged

        bindir = source.get(BINDIR_VAR)
        poll_interval = _positive_float(POLL_INTERVAL_VAR, source.get(POLL_INTERVAL_VAR))
        return cls(
            fixture_file=Path(source.get(FIXTURE_VAR) or DEFAULT_FIXTURE_FILE),
            preserve=is_truthy(source.get(PRESERVE_VAR)),
            poll_interval=poll_interval if poll_interval is not None else DEFAULT_POLL_INTERVAL,
            ready_timeout=_positive_float(READY_TIMEOUT_VAR, source.get(READY_TIMEOUT_VAR)),
            bindir=Path(bindir) if bindir else None,
        )

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    def tool(self, name: str) -> str:
        """Return the executable to run for a PostgreSQL client/server tool."""
        if self.bindir is not None:
            return str(self.bindir / name)
        return name
