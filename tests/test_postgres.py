# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""End-to-end runs against a real PostgreSQL installation.

Skipped unless initdb is reachable through TMPDB_PG_BINDIR or PATH. initdb
refuses to run as root, so these are skipped there as well.
"""

import os
import shutil
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
BINDIR = os.environ.get("TMPDB_PG_BINDIR")
INITDB = str(Path(BINDIR) / "initdb") if BINDIR else shutil.which("initdb")

pytestmark = [
    pytest.mark.skipif(not INITDB or not os.path.exists(INITDB), reason="PostgreSQL binaries not available"),
    pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="initdb cannot run as root"),
]

CHECK_DATABASE = textwrap.dedent(
    """
    import os
    import sys

    import psycopg

    with psycopg.connect(os.environ["TMPDB_TEST_CONNECTION"], autocommit=True) as conn:
        with conn.cursor() as cur:
            cur.execute("SHOW TimeZone")
            assert cur.fetchone()[0] == "UTC"
            cur.execute("SHOW server_encoding")
            assert cur.fetchone()[0] == "UTF8"
            cur.execute("SHOW listen_addresses")
            assert cur.fetchone()[0] == ""
            cur.execute("SELECT current_setting('app.settings.jwt_secret')")
            assert cur.fetchone()[0]
            cur.execute("SELECT extname FROM pg_extension WHERE extname = 'pgcrypto'")
            assert cur.fetchone() is not None
            cur.execute("SELECT current_schemas(false)")
            assert cur.fetchone()[0][0] == os.environ["TMPDB_TEST_SCHEMA"]
            cur.execute("SELECT count(*) FROM items")
            assert cur.fetchone()[0] == 3
            cur.execute("SELECT 1 FROM pg_roles WHERE rolname = %s", (os.environ["TMPDB_TEST_ANON_ROLE"],))
            assert cur.fetchone() is not None
    sys.exit(int(sys.argv[1]))
    """
)


def run_harness(tmp_path, *command, **extra_env):
    env = {key: value for key, value in os.environ.items() if not key.startswith("TMPDB_")}
    if BINDIR:
        env["TMPDB_PG_BINDIR"] = BINDIR
    env["TMPDIR"] = str(tmp_path)
    env["PYTHONPATH"] = str(ROOT / "src")
    env["TMPDB_READY_TIMEOUT"] = "60"
    env.update(extra_env)
    return subprocess.run(
        [sys.executable, "-m", "pg_tmpdb", *command],
        cwd=ROOT,
        env=env,
        capture_output=True,
        text=True,
        timeout=180,
    )


@pytest.mark.parametrize("status", [0, 7])
def test_fixtures_visible_to_command(tmp_path, status):
    result = run_harness(tmp_path, sys.executable, "-c", CHECK_DATABASE, str(status))
    assert result.returncode == status, result.stderr
    assert list(tmp_path.iterdir()) == []


def test_broken_fixture_aborts(tmp_path):
    fixture = tmp_path / "broken.sql"
    fixture.write_text("CREATE TABLE ok (id int);\nTHIS IS NOT SQL;\nCREATE TABLE never (id int);\n")
    marker = tmp_path / "ran"
    result = run_harness(
        tmp_path,
        "sh",
        "-c",
        f'touch "{marker}"',
        TMPDB_FIXTURE_FILE=str(fixture),
        TMPDB_PRESERVE="1",
    )
    assert result.returncode != 0
    assert not marker.exists()
    (workspace,) = [path for path in tmp_path.iterdir() if path.name.startswith("pg_tmpdb.")]
    assert "syntax error" in (workspace / "setup.log").read_text()
    assert (workspace / "db.log").exists()
