"""Test runner commands."""

import subprocess
import sys


def _pytest(*args: str) -> int:
    return subprocess.run([sys.executable, "-m", "pytest", *args], check=False).returncode


def main() -> None:
    """Run unit tests."""
    sys.exit(_pytest("tests/unit", "-v", "--tb=short"))


def test_smoke() -> None:
    """Run HTTP smoke tests against the app factory."""
    sys.exit(_pytest("tests/smoke", "-v", "--tb=short"))


def test_all() -> None:
    """Run every suite."""
    sys.exit(_pytest("tests/", "-v", "--tb=short"))
