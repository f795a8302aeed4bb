"""
Version utility functions for ABLedger.

This module provides functions for turning the package VERSION tuple into
a version string.
"""

from typing import Tuple, Optional


def _default_version() -> Tuple[int, int, int, str, int]:
    from abledger import VERSION
    return VERSION


def get_version(version: Optional[Tuple[int, int, int, str, int]] = None) -> str:
    """
    Return a PEP 440-compliant version number from VERSION.

    Args:
        version: Version tuple (major, minor, micro, releaselevel, serial)
                If not provided, uses the package VERSION tuple

    Returns:
        PEP 440-compliant version string
    """
    major, minor, micro, releaselevel, serial = version or _default_version()

    version_str = f"{major}.{minor}"
    if micro is not None:
        version_str += f".{micro}"

    # Add release level if not final
    if releaselevel != "final":
        if releaselevel == "dev":
            version_str += ".dev"
        else:
            version_str += f"{releaselevel[0] if releaselevel in ('alpha', 'beta') else releaselevel}"
        if serial > 0:
            version_str += str(serial)

    return version_str

