"""Pytest fixtures for CLI tests.

CLI commands run in a subprocess, exactly as a user would invoke them.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Optional

import pytest

from tests.helpers import REPO_ROOT, RunCli


@pytest.fixture
def run_cli(test_config_dir: Path) -> RunCli:
    """Run `habitforge -d <test config dir> cli <args>`.

    Returns:
        Function taking CLI arguments (and optional stdin text) and
        returning the CompletedProcess
    """
    def run(*args: str, stdin: Optional[str] = None) -> subprocess.CompletedProcess:
        return subprocess.run(
            [sys.executable, "-m", "habitforge.main", "-d", str(test_config_dir), "cli", *args],
            input=stdin,
            capture_output=True,
            text=True,
            cwd=REPO_ROOT,
        )

    return run
