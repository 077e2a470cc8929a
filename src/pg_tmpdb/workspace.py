# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Private temporary directory holding one harness run."""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import WORKSPACE_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    root: Path

    @classmethod
    def create(cls, prefix: str = WORKSPACE_PREFIX, parent: Optional[Path] = None) -> "Workspace":
        root = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
        workspace = cls(root)
        # postgres refuses socket directories other users can write to
        workspace.socket_dir.mkdir(mode=0o700)
        logger.debug("created workspace %s", root)
        return workspace

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def socket_dir(self) -> Path:
        return self.root / "socket"

    @property
    def server_log(self) -> Path:
        return self.root / "db.log"

    @property
    def setup_log(self) -> Path:
        return self.root / "setup.log"

    @property
    def fixture_script(self) -> Path:
        return self.root / "fixtures.sql"

    def remove(self, preserve: bool = False) -> bool:
        """Delete the workspace, or keep it and say where it is.

        Returns True when the directory was removed.
        """
        if preserve:
            logger.warning("preserved workspace: %s", self.root)
            return False
        if not self.root.exists():
            return False
        shutil.rmtree(self.root)
        return True
