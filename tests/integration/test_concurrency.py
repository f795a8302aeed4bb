"""
Integration tests for concurrent writers and comparisons
"""

import threading

import pytest

from abledger.error_mitigation.errors import MissingBlockError
from abledger.storage.models import EnvironmentModel
from abledger.store import DifferentialStore

HEIGHTS = range(1, 21)


def _replay(store, environment_id, make_hash, errors):
    try:
        for height in HEIGHTS:
            with store.writing(environment_id):
                block_id = store.record_block(environment_id, height, make_hash(height), b"\xaa" * 32)
                store.put_entry(block_id, b"\x01", height.to_bytes(4, "big"))
                store.put_entry(block_id, b"\x02", b"constant")
    except Exception as e:  # surfaced by the test thread
        errors.append(e)


def test_environments_replay_in_parallel(store, environments, make_hash):
    errors = []
    threads = [
        threading.Thread(target=_replay, args=(store, environment_id, make_hash, errors))
        for environment_id in environments
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    for environment_id in environments:
        assert store.latest_height(environment_id) == HEIGHTS[-1]
        assert len(store.blocks.list_blocks(environment_id)) == len(HEIGHTS)

    for height in HEIGHTS:
        assert store.compare_heights(list(environments), height).is_agreement


def test_comparisons_never_see_partial_blocks(store, environments, make_hash):
    interp, wasm = environments
    for height in HEIGHTS:
        block_id = store.record_block(wasm, height, make_hash(height), b"\xaa" * 32)
        store.put_entry(block_id, b"\x01", height.to_bytes(4, "big"))
        store.put_entry(block_id, b"\x02", b"constant")

    errors = []
    verdicts = []
    writer = threading.Thread(target=_replay, args=(store, interp, make_hash, errors))

    def compare():
        for _ in range(40):
            latest = store.latest_height(interp)
            if latest is None:
                continue
            try:
                verdicts.append(store.compare_heights([interp, wasm], latest).is_agreement)
            except MissingBlockError as e:
                errors.append(e)

    comparer = threading.Thread(target=compare)
    writer.start()
    comparer.start()
    writer.join(timeout=60)
    comparer.join(timeout=60)

    assert errors == []
    assert all(verdicts)


def test_single_writer_per_environment(store, environments, make_hash):
    interp, _ = environments
    results = []

    def write(salt):
        try:
            results.append(store.record_block(interp, 1, make_hash(1, salt=salt), b"\x01"))
        except Exception as e:
            results.append(e)

    threads = [threading.Thread(target=write, args=(salt,)) for salt in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    recorded = [r for r in results if isinstance(r, int)]
    assert len(recorded) == 1
    assert store.latest_height(interp) == 1


@pytest.fixture
def memory_store():
    ledger = DifferentialStore("sqlite://")
    yield ledger
    ledger.close()


def test_parallel_writers_on_in_memory_database(memory_store, make_hash):
    environment_ids = [
        memory_store.create_environment(f"env-{i}", "interpreter", f"/tmp/abl/{i}") for i in range(4)
    ]
    errors = []
    threads = [
        threading.Thread(target=_replay, args=(memory_store, environment_id, make_hash, errors))
        for environment_id in environment_ids
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    for environment_id in environment_ids:
        assert memory_store.latest_height(environment_id) == HEIGHTS[-1]
    assert memory_store.compare_heights(environment_ids, HEIGHTS[-1]).is_agreement


def test_reads_run_beside_an_open_write_transaction(store, environments):
    started = threading.Event()
    release = threading.Event()
    errors = []

    def hold_write_transaction():
        try:
            with store.backend.session_scope(write=True) as session:
                session.add(EnvironmentModel(name="pending", runtime_id=1, path="/tmp/abl/pending"))
                session.flush()
                started.set()
                release.wait(timeout=30)
        except Exception as e:
            errors.append(e)
        finally:
            started.set()

    writer = threading.Thread(target=hold_write_transaction)
    writer.start()
    try:
        assert started.wait(timeout=30)
        # Uncommitted rows are invisible and the read does not wait for the writer
        assert [env.name for env in store.list_environments()] == ["interp", "wasm"]
    finally:
        release.set()
        writer.join(timeout=60)

    assert errors == []
    assert [env.name for env in store.list_environments()] == ["interp", "wasm", "pending"]
