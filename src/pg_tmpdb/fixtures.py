# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Render and apply the fixture batch through psql."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from .config import Settings
from .errors import SetupError
from .server import PostgresServer

logger = logging.getLogger(__name__)


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@dataclass
class FixtureScript:
    database: str
    role: str
    schema: str
    database_settings: Dict[str, str]
    include: Path

    @classmethod
    def from_settings(cls, settings: Settings) -> "FixtureScript":
        return cls(
            database=settings.database,
            role=settings.role,
            schema=settings.schema,
            database_settings=dict(settings.database_settings),
            include=settings.fixture_file.resolve(),
        )

    def statements(self) -> List[str]:
        lines = ["CREATE EXTENSION IF NOT EXISTS pgcrypto;"]
        for name, value in self.database_settings.items():
            lines.append(f"ALTER DATABASE {quote_ident(self.database)} SET {name} = {quote_literal(value)};")
        lines.append(
            f"ALTER ROLE {quote_ident(self.role)} SET search_path = {quote_ident(self.schema)}, public;"
        )
        # psql meta-command; the path is single-quoted for psql, not SQL
        lines.append(f"\\i {quote_literal(str(self.include))}")
        return lines

    def render(self) -> str:
        return "\n".join(self.statements()) + "\n"


def psql_command(server: PostgresServer, script: Path) -> List[str]:
    settings = server.settings
    return [
        settings.tool("psql"),
        "--no-psqlrc",
        "--quiet",
        "--set",
        "ON_ERROR_STOP=1",
        "--host",
        str(server.workspace.socket_dir),
        "--username",
        settings.role,
        "--dbname",
        settings.database,
        "--file",
        str(script),
    ]


def load_fixtures(server: PostgresServer, script: FixtureScript) -> None:
    if not script.include.is_file():
        raise SetupError(
            "fixtures",
            f"fixture file not found: {script.include}",
            log_path=server.workspace.setup_log,
        )
    path = server.workspace.fixture_script
    path.write_text(script.render())
    logger.info("loading fixtures from %s", script.include)
    server.run_tool("fixtures", psql_command(server, path))
