# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

import os
import stat
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

FAKE_INITDB = r"""#!/usr/bin/env bash
echo "initdb TZ=${TZ:-} $*" >> "$FAKE_PG_CALLS"
while [ $# -gt 0 ]; do
  case "$1" in
    --pgdata) mkdir -p "$2"; echo 16 > "$2/PG_VERSION"; shift ;;
  esac
  shift
done
exit "${FAKE_INITDB_STATUS:-0}"
"""

FAKE_PG_CTL = r"""#!/usr/bin/env bash
echo "pg_ctl $*" >> "$FAKE_PG_CALLS"
case " $* " in
  *" --version "*) echo "pg_ctl (PostgreSQL) ${FAKE_PG_VERSION:-16.2}"; exit 0 ;;
  *" start "*) exit "${FAKE_PG_START_STATUS:-0}" ;;
esac
exit 0
"""

FAKE_PG_ISREADY = r"""#!/usr/bin/env bash
echo "pg_isready $*" >> "$FAKE_PG_CALLS"
count_file="$FAKE_PG_CALLS.ready"
n=$(cat "$count_file" 2>/dev/null || echo 0)
n=$((n + 1))
echo "$n" > "$count_file"
if [ "$n" -gt "${FAKE_READY_AFTER:-0}" ]; then
  exit 0
fi
exit 2
"""

FAKE_PSQL = r"""#!/usr/bin/env bash
echo "psql $*" >> "$FAKE_PG_CALLS"
script=""
while [ $# -gt 0 ]; do
  case "$1" in
    --file) script="$2"; shift ;;
  esac
  shift
done
include=$(grep '^\\i ' "$script" | head -n 1 | cut -d"'" -f2)
if grep -q "SYNTAX ERROR" "$include"; then
  echo "psql:$include:1: ERROR:  syntax error" >&2
  exit 3
fi
exit 0
"""

FAKE_TOOLS = {
    "initdb": FAKE_INITDB,
    "pg_ctl": FAKE_PG_CTL,
    "pg_isready": FAKE_PG_ISREADY,
    "psql": FAKE_PSQL,
}


class FakePostgres:
    """Fake PostgreSQL binaries on PATH that record every invocation."""

    def __init__(self, tmp_path: Path):
        self.bin_dir = tmp_path / "bin"
        self.tmp_dir = tmp_path / "tmp"
        self.calls_file = tmp_path / "calls.log"
        self.fixture = tmp_path / "load.sql"
        self.marker = tmp_path / "child-ran"
        self.bin_dir.mkdir()
        self.tmp_dir.mkdir()
        for name, body in FAKE_TOOLS.items():
            tool = self.bin_dir / name
            tool.write_text(body)
            tool.chmod(stat.S_IRWXU)
        self.fixture.write_text("CREATE SCHEMA test;\n")

        self.env = {
            key: value for key, value in os.environ.items() if not key.startswith(("TMPDB_", "FAKE_"))
        }
        self.env.update(
            {
                "PATH": f"{self.bin_dir}:{os.environ['PATH']}",
                "TMPDIR": str(self.tmp_dir),
                "FAKE_PG_CALLS": str(self.calls_file),
                "TMPDB_FIXTURE_FILE": str(self.fixture),
                "TMPDB_POLL_INTERVAL": "0.01",
                "MARKER": str(self.marker),
                "PYTHONPATH": os.pathsep.join(filter(None, [str(ROOT / "src"), os.environ.get("PYTHONPATH")])),
            }
        )

    def calls(self, tool=None):
        if not self.calls_file.exists():
            return []
        lines = self.calls_file.read_text().splitlines()
        if tool is None:
            return lines
        return [line for line in lines if line.split(" ", 1)[0] == tool]

    def stop_calls(self):
        return [line for line in self.calls("pg_ctl") if line.endswith(" stop -m immediate")]

    def workspaces(self):
        return sorted(self.tmp_dir.iterdir())

    def command(self, *args):
        return [sys.executable, "-m", "pg_tmpdb", *args]

    def run(self, *args, **env):
        run_env = dict(self.env)
        run_env.update(env)
        return subprocess.run(
            self.command(*args),
            cwd=ROOT,
            env=run_env,
            capture_output=True,
            text=True,
            timeout=60,
        )

    def popen(self, *args, **env):
        run_env = dict(self.env)
        run_env.update(env)
        return subprocess.Popen(
            self.command(*args),
            cwd=ROOT,
            env=run_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )


@pytest.fixture
def fake_pg(tmp_path):
    return FakePostgres(tmp_path)
