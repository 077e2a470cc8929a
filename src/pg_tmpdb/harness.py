# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Run a command against a throwaway PostgreSQL instance.

allocate workspace -> initdb -> start -> poll pg_isready -> load fixtures ->
run command -> stop server -> delete workspace
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Dict, Mapping, Optional, Sequence
from urllib.parse import quote, urlencode

from .config import Settings
from .errors import SetupError, UsageError
from .fixtures import FixtureScript, load_fixtures
from .log import attach_setup_log, detach_handler
from .server import PostgresServer
from .teardown import Teardown, blocked_signals, install_signal_handlers
from .workspace import Workspace

logger = logging.getLogger(__name__)


def connection_uri(settings: Settings, workspace: Workspace) -> str:
    query = urlencode({"host": str(workspace.socket_dir), "user": settings.role})
    return f"postgresql:///{quote(settings.database, safe='')}?{query}"


def build_environment(
    settings: Settings, workspace: Workspace, base: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    env = dict(os.environ if base is None else base)
    env.update(
        {
            "PGDATA": str(workspace.data_dir),
            "PGHOST": str(workspace.socket_dir),
            "PGUSER": settings.role,
            "PGDATABASE": settings.database,
            "TMPDB_TEST_CONNECTION": connection_uri(settings, workspace),
            "TMPDB_TEST_SCHEMA": settings.schema,
            "TMPDB_TEST_ANON_ROLE": settings.anon_role,
            "TMPDB_WORKSPACE": str(workspace.root),
        }
    )
    return env


def exit_status(returncode: int) -> int:
    # subprocess reports death by signal N as -N; shells report 128 + N
    if returncode < 0:
        return 128 - returncode
    return returncode


def run(command: Sequence[str], settings: Optional[Settings] = None) -> int:
    """Provision a database, run ``command`` against it and clean up.

    Returns the command's exit status. Raises :class:`UsageError` when
    ``command`` is empty, :class:`SetupError` when provisioning fails and
    :class:`Interrupted` on SIGINT/SIGTERM; teardown has already run by the
    time any of them propagates.
    """
    if not command:
        raise UsageError("no command given")
    settings = settings or Settings.from_env()

    workspace: Optional[Workspace] = None
    server: Optional[PostgresServer] = None
    log_handler: Optional[logging.Handler] = None

    def stop_server() -> None:
        if server is not None:
            server.stop()

    def remove_workspace() -> None:
        try:
            if workspace is not None:
                workspace.remove(preserve=settings.preserve)
        finally:
            if log_handler is not None:
                detach_handler(log_handler)

    teardown = Teardown(stop_server, remove_workspace)
    with install_signal_handlers(teardown):
        try:
            # no signal between mkdtemp and the assignment
            with blocked_signals():
                workspace = Workspace.create()
                log_handler = attach_setup_log(workspace.setup_log)
            server = PostgresServer(settings, workspace)
            env = build_environment(settings, workspace)

            server.initdb()
            server.start()
            server.wait_ready()
            load_fixtures(server, FixtureScript.from_settings(settings))

            logger.info("running %s", " ".join(command))
            try:
                result = subprocess.run(list(command), env=env, check=False)
            except OSError as exc:
                logger.error("could not run %s: %s", command[0], exc)
                return 127 if isinstance(exc, FileNotFoundError) else 126
            status = exit_status(result.returncode)
            logger.debug("command exited with status %d", status)
            return status
        except SetupError as exc:
            if settings.preserve:
                logger.error("setup failed during %s; see %s", exc.step, exc.log_path or workspace.root)
            else:
                logger.error("setup failed during %s; set TMPDB_PRESERVE=1 to keep the logs", exc.step)
            raise
        finally:
            teardown()
