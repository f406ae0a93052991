"""
liveness.cli
------------
Command-line entrypoints for the liveness protocol:

- threshold : required threshold table
- plan      : removable owners and predecessor hints for a scenario
- simulate  : run a removal batch against a scenario
- config    : show the environment configuration

Usage:
  python -m liveness.cli             # runs the app
  python -m liveness.cli plan -h     # help for a subcommand
"""

from __future__ import annotations

from ..version import __version__  # re-exported

__all__ = ["__version__"]
