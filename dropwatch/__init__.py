"""dropwatch - Monitor and snapshot DigitalOcean droplets."""

import subprocess
from pathlib import Path

BASE_VERSION = "0.1.0"

# Written by hatch_build.py when building a wheel or sdist
VERSION_FILE = Path(__file__).parent / "_version.txt"


def _git_commit(cwd: Path) -> str | None:
    """Short commit hash of the checkout containing ``cwd``, if any."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short=7", "HEAD"],
            capture_output=True,
            text=True,
            timeout=1,
            cwd=cwd,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def _get_version() -> str:
    """
    Get version string.

    Returns:
        - "dev" when running from a git checkout
        - "0.1.0+git.<commit>" when a commit was embedded at build time
        - "0.1.0" when neither is available
    """
    if (Path(__file__).parent.parent / ".git").exists():
        return "dev"

    try:
        commit = VERSION_FILE.read_text().strip()
    except OSError:
        commit = _git_commit(Path(__file__).parent)

    if commit:
        return f"{BASE_VERSION}+git.{commit}"
    return BASE_VERSION


__version__ = _get_version()
