"""
Pytest configuration for ABLedger.

Ensures the project root is on sys.path and provides a store backed by a
temporary SQLite database for every test.
"""

import os
import sys
import pytest

# Compute project root (parent of this tests directory)
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from abledger.store import DifferentialStore  # noqa: E402


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'abledger.db'}"


@pytest.fixture
def store(database_url):
    """A fresh store on its own database file"""
    ledger = DifferentialStore(database_url)
    yield ledger
    ledger.close()


@pytest.fixture
def environments(store):
    """Two environments replaying the same chain: interpreter and wasm"""
    interp = store.create_environment("interp", "interpreter", "/tmp/abl/interp")
    wasm = store.create_environment("wasm", "wasm", "/tmp/abl/wasm")
    return interp, wasm


def block_hash(height: int, salt: int = 0) -> bytes:
    """Deterministic 32-byte index hash for a height"""
    return height.to_bytes(8, "big") + bytes([salt]) * 24


@pytest.fixture
def make_hash():
    return block_hash
