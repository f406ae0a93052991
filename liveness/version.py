"""
liveness.version

The package version comes from the installed distribution metadata, so
`pyproject.toml` is the single place to bump it. A source checkout that was
never installed reports `FALLBACK_VERSION`.

`git_describe()` adds the VCS position of the checkout to `liveness --version`.
"""

from __future__ import annotations

import os
import subprocess
from functools import lru_cache
from importlib import metadata
from pathlib import Path

DIST_NAME = "safe-liveness"
FALLBACK_VERSION = "1.0.0"
GIT_DESCRIBE_ENV = "LIVENESS_GIT_DESCRIBE"

_SOURCE_DIR = Path(__file__).resolve().parent


def _installed_version() -> str:
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return FALLBACK_VERSION


__version__ = _installed_version()


@lru_cache(maxsize=1)
def git_describe() -> str:
    """
    Describe the checkout this package was imported from.

    `LIVENESS_GIT_DESCRIBE` wins when set (release builds pin it). Otherwise
    git is asked from the package directory; outside a repository, or
    without a git binary, the result is ``<version>+local``.
    """
    pinned = os.environ.get(GIT_DESCRIBE_ENV, "").strip()
    if pinned:
        return pinned

    try:
        proc = subprocess.run(
            ["git", "describe", "--tags", "--dirty", "--always"],
            cwd=_SOURCE_DIR,
            capture_output=True,
            text=True,
            timeout=1.2,
            check=False,
        )
    except (OSError, subprocess.SubprocessError):
        proc = None
    if proc is not None and proc.returncode == 0 and proc.stdout.strip():
        return proc.stdout.strip()
    return f"{__version__}+local"


__all__ = ["__version__", "git_describe", "DIST_NAME"]
