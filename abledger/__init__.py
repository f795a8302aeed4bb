"""
ABLedger
========

A differential-testing state store that records the execution state produced
by replaying the same chain under several contract runtimes, and detects
divergences between them after the fact.
"""

VERSION = (0, 1, 0, "dev", 1)

from abledger.units.version import get_version  # noqa: E402


__version__ = get_version(VERSION)

__all__ = ["VERSION", "__version__"]
