# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Drive a private PostgreSQL instance with initdb, pg_ctl and pg_isready."""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional

from packaging.version import InvalidVersion, Version

from .config import Settings
from .errors import ReadinessTimeout, SetupError
from .workspace import Workspace

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(r"\(PostgreSQL\)\s+(\d+(?:\.\d+)*)")

# initdb learned --no-sync in 10 (older releases only spell it --nosync)
# and --no-instructions in 14.
NO_SYNC_SINCE = Version("10")
NO_INSTRUCTIONS_SINCE = Version("14")


def parse_version(output: str) -> Optional[Version]:
    match = VERSION_RE.search(output)
    if not match:
        return None
    try:
        return Version(match.group(1))
    except InvalidVersion:
        return None


class PostgresServer:
    def __init__(self, settings: Settings, workspace: Workspace) -> None:
        self.settings = settings
        self.workspace = workspace
        self.started = False
        self.stopped = False
        self._version: Optional[Version] = None
        self._version_probed = False

    def run_tool(self, step: str, cmd: List[str], env: Optional[Dict[str, str]] = None) -> None:
        logger.debug("%s: %s", step, shlex.join(cmd))
        log_path = self.workspace.setup_log
        try:
            with log_path.open("ab") as log_fh:
                result = subprocess.run(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=log_fh,
                    stderr=subprocess.STDOUT,
                    env=env,
                    check=False,
                )
        except FileNotFoundError:
            raise SetupError(step, f"{cmd[0]} not found", returncode=127, log_path=log_path) from None
        if result.returncode != 0:
            raise SetupError(
                step,
                f"{Path(cmd[0]).name} exited with status {result.returncode}",
                returncode=result.returncode,
                log_path=log_path,
            )

    def version(self) -> Optional[Version]:
        if self._version_probed:
            return self._version
        self._version_probed = True
        try:
            result = subprocess.run(
                [self.settings.tool("pg_ctl"), "--version"],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return None
        self._version = parse_version(result.stdout)
        return self._version

    def initdb_command(self) -> List[str]:
        version = self.version()
        cmd = [
            self.settings.tool("initdb"),
            "--pgdata",
            str(self.workspace.data_dir),
            "--no-locale",
            f"--encoding={self.settings.encoding}",
            f"--username={self.settings.role}",
            "--auth=trust",
        ]
        if version is not None and version < NO_SYNC_SINCE:
            cmd.append("--nosync")
        else:
            cmd.append("--no-sync")
        if version is None or version >= NO_INSTRUCTIONS_SINCE:
            cmd.append("--no-instructions")
        return cmd

    def initdb(self) -> None:
        env = os.environ.copy()
        # initdb writes TZ into postgresql.conf as the server timezone
        env["TZ"] = self.settings.timezone
        logger.info("initializing %s (PostgreSQL %s)", self.workspace.data_dir, self.version() or "unknown")
        self.run_tool("initdb", self.initdb_command(), env=env)

    def start_command(self) -> List[str]:
        server_options = f"-F -c listen_addresses='' -k {shlex.quote(str(self.workspace.socket_dir))}"
        return [
            self.settings.tool("pg_ctl"),
            "-D",
            str(self.workspace.data_dir),
            "-l",
            str(self.workspace.server_log),
            "-W",
            "-o",
            server_options,
            "start",
        ]

    def start(self) -> None:
        logger.info("starting server on %s", self.workspace.socket_dir)
        self.run_tool("start", self.start_command())
        self.started = True

    def is_ready(self) -> bool:
        cmd = [
            self.settings.tool("pg_isready"),
            "--quiet",
            "--host",
            str(self.workspace.socket_dir),
            "--username",
            self.settings.role,
            "--dbname",
            self.settings.database,
        ]
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except FileNotFoundError:
            raise SetupError("ready", f"{cmd[0]} not found", returncode=127) from None
        return result.returncode == 0

    def wait_ready(self, interval: Optional[float] = None, timeout: Optional[float] = None) -> int:
        """Probe pg_isready until it succeeds and return the number of probes.

        Without ``timeout`` this never gives up, matching the behaviour of
        ``pg_ctl`` releases that cannot confirm startup themselves.
        """
        interval = self.settings.poll_interval if interval is None else interval
        timeout = self.settings.ready_timeout if timeout is None else timeout
        deadline = None if timeout is None else time.monotonic() + timeout
        attempts = 0
        while True:
            attempts += 1
            if self.is_ready():
                logger.info("server ready after %d probe(s)", attempts)
                return attempts
            if deadline is not None and time.monotonic() >= deadline:
                raise ReadinessTimeout(timeout, attempts, log_path=self.workspace.server_log)
            time.sleep(interval)

    def stop(self) -> bool:
        """Request an immediate shutdown. Never raises."""
        if not self.started or self.stopped:
            return False
        self.stopped = True
        cmd = [self.settings.tool("pg_ctl"), "-D", str(self.workspace.data_dir), "stop", "-m", "immediate"]
        logger.debug("stop: %s", shlex.join(cmd))
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as exc:
            logger.warning("could not stop server: %s", exc)
            return False
        if result.returncode != 0:
            logger.warning("pg_ctl stop exited with status %d", result.returncode)
        return True
