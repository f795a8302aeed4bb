"""
End-to-end: two runtimes replay the same chain and diverge at one height
"""

from abledger.comparison import Verdict
from abledger.store import DifferentialStore

ROOT_AGREE = b"\x11" * 32


def _block(environment, height, root, value):
    return {
        "environment": environment,
        "height": height,
        "index_hash": "0x%064x" % height,
        "trie_root_hash": root.hex(),
        "entries": [
            {"key_hash": "0x01", "value": value},
            {"key_hash": "0x02", "value": "0x00"},
        ],
    }


def test_divergence_is_isolated_to_one_key(database_url):
    with DifferentialStore(database_url) as store:
        store.create_environment("interp", "interpreter", "/chain/interp")
        store.create_environment("wasm", "wasm", "/chain/wasm")

        for height in range(1, 10):
            for environment in ("interp", "wasm"):
                store.apply_block(_block(environment, height, ROOT_AGREE, "0x%02x" % height))

        store.apply_block(_block("interp", 10, b"\xaa" * 32, "0x05"))
        store.apply_block(_block("wasm", 10, b"\xbb" * 32, "0x06"))

        assert store.compare_heights(["interp", "wasm"], 9).verdict is Verdict.AGREEMENT

        report = store.compare_heights(["interp", "wasm"], 10)
        assert report.verdict is Verdict.DISAGREEMENT
        assert report.diverging_keys == {b"\x01"}
        assert {d.value for d in report.entry_divergences} == {b"\x05", b"\x06"}


def test_state_survives_reopening(database_url):
    with DifferentialStore(database_url) as store:
        interp = store.create_environment("interp", "interpreter", "/chain/interp")
        store.apply_block(_block("interp", 3, ROOT_AGREE, "0x03"))

    with DifferentialStore(database_url) as store:
        assert store.latest_height(interp) == 3
        block = store.get_block(interp, 3)
        assert store.get_entry(block.id, b"\x01") == b"\x03"
