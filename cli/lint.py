"""Code quality commands."""

import subprocess
import sys

SOURCES = ["proof_rewards/", "cli/", "tests/"]


def _ruff(*args: str) -> int:
    return subprocess.run([sys.executable, "-m", "ruff", *args, *SOURCES], check=False).returncode


def main() -> None:
    """Run ruff linter."""
    sys.exit(_ruff("check"))


def format_code() -> None:
    """Run ruff formatter."""
    sys.exit(_ruff("format"))
