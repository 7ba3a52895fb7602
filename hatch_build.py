"""Hatchling build hook that embeds the git commit in dropwatch/_version.txt."""

import subprocess
from pathlib import Path

from hatchling.builders.hooks.plugin.interface import BuildHookInterface


class CustomBuildHook(BuildHookInterface):
    """Record the short commit hash so installed copies can report it."""

    def initialize(self, version, build_data):
        """Run before the build starts."""
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--short=7", "HEAD"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            print(f"Warning: Could not capture git commit: {e}")
            return

        commit = result.stdout.strip() if result.returncode == 0 else ""
        if not commit:
            return

        (Path(self.root) / "dropwatch" / "_version.txt").write_text(commit)
        print(f"Embedded git commit: {commit}")
