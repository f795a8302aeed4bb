"""
Unit tests for the State Entry Store
"""

import pytest

from abledger.core.types import EntryDiff
from abledger.error_mitigation.errors import ConflictError, NotFoundError, UnknownReferenceError


@pytest.fixture
def blocks(store, environments, make_hash):
    interp, wasm = environments
    return (
        store.record_block(interp, 1, make_hash(1), b"\xaa"),
        store.record_block(wasm, 1, make_hash(1), b"\xbb"),
    )


def test_put_and_get_entry(store, blocks):
    block_a, _ = blocks
    store.put_entry(block_a, b"\x01", b"value")
    assert store.get_entry(block_a, b"\x01") == b"value"
    assert store.get_entry(block_a, b"\x02") is None


def test_second_write_to_same_key_conflicts(store, blocks):
    block_a, _ = blocks
    store.put_entry(block_a, b"\x01", b"first")
    with pytest.raises(ConflictError):
        store.put_entry(block_a, b"\x01", b"second")
    with pytest.raises(ConflictError):
        store.put_entry(block_a, b"\x01", b"first")
    assert store.get_entry(block_a, b"\x01") == b"first"


def test_same_key_in_different_blocks(store, blocks):
    block_a, block_b = blocks
    store.put_entry(block_a, b"\x01", b"a")
    store.put_entry(block_b, b"\x01", b"b")
    assert store.get_entry(block_a, b"\x01") == b"a"
    assert store.get_entry(block_b, b"\x01") == b"b"


def test_empty_value_is_stored(store, blocks):
    block_a, _ = blocks
    store.put_entry(block_a, b"\x01", b"")
    assert store.get_entry(block_a, b"\x01") == b""


def test_put_entry_unknown_block(store):
    with pytest.raises(UnknownReferenceError):
        store.put_entry(12345, b"\x01", b"x")


def test_diff_entries(store, blocks):
    block_a, block_b = blocks
    store.put_entry(block_a, b"\x01", b"same")
    store.put_entry(block_b, b"\x01", b"same")
    store.put_entry(block_a, b"\x02", b"left")
    store.put_entry(block_b, b"\x02", b"right")
    store.put_entry(block_a, b"\x03", b"only-a")
    store.put_entry(block_b, b"\x04", b"only-b")

    assert store.diff_entries(block_a, block_b) == {
        EntryDiff(b"\x02", b"left", b"right"),
        EntryDiff(b"\x03", b"only-a", None),
        EntryDiff(b"\x04", None, b"only-b"),
    }


def test_diff_entries_is_repeatable(store, blocks):
    block_a, block_b = blocks
    store.put_entry(block_a, b"\x01", b"x")
    first = store.diff_entries(block_a, block_b)
    assert store.diff_entries(block_a, block_b) == first
    assert store.diff_entries(block_b, block_a) == {EntryDiff(b"\x01", None, b"x")}


def test_diff_entries_identical_blocks(store, blocks):
    block_a, block_b = blocks
    for key in (b"\x01", b"\x02"):
        store.put_entry(block_a, key, b"v")
        store.put_entry(block_b, key, b"v")
    assert store.diff_entries(block_a, block_b) == set()


def test_diff_entries_missing_block(store, blocks):
    block_a, _ = blocks
    with pytest.raises(NotFoundError):
        store.diff_entries(block_a, 999)


def test_list_entries(store, blocks):
    block_a, _ = blocks
    store.put_entry(block_a, b"\x01", b"one")
    store.put_entry(block_a, b"\x02", b"two")
    assert store.entries.list_entries(block_a) == {b"\x01": b"one", b"\x02": b"two"}
