"""
Integration tests for the abl command line
"""

import json

import pytest
from click.testing import CliRunner

from abledger.cli import abl


@pytest.fixture
def run(database_url):
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(abl, ["--database", database_url, *args], **kwargs)
    return invoke


@pytest.fixture
def payload_file(tmp_path):
    lines = []
    for environment, root, value in (("interp", "aa", "05"), ("wasm", "bb", "06")):
        for height in (1, 2):
            lines.append(json.dumps({
                "environment": environment,
                "height": height,
                "index_hash": "0x%02x" % height,
                "trie_root_hash": "0x" + (root if height == 2 else "11") * 32,
                "entries": [{"key_hash": "0x01", "value": "0x" + (value if height == 2 else "00")}],
            }))
    path = tmp_path / "blocks.jsonl"
    path.write_text("\n".join(lines) + "\n")
    return str(path)


@pytest.fixture
def seeded(run, payload_file):
    assert run("env", "create", "interp", "--runtime", "interpreter", "--path", "/chain/interp").exit_code == 0
    assert run("env", "create", "wasm", "--runtime", "wasm", "--path", "/chain/wasm").exit_code == 0
    result = run("ingest", payload_file)
    assert result.exit_code == 0, result.output
    assert "Ingested 4 block(s)" in result.output


def test_init(run):
    result = run("init")
    assert result.exit_code == 0
    assert "Database ready" in result.output


def test_env_list_and_show(run, seeded):
    result = run("env", "list")
    assert result.exit_code == 0
    assert "interp" in result.output
    assert "Wasm" in result.output

    result = run("env", "show", "wasm")
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["runtime"] == "wasm"
    assert data["max_height"] == 2


def test_duplicate_environment_is_fatal(run):
    run("env", "create", "interp", "--runtime", "interpreter", "--path", "/a")
    result = run("env", "create", "interp", "--runtime", "wasm", "--path", "/b")
    assert result.exit_code == 2


def test_blocks(run, seeded):
    result = run("blocks", "interp", "--start", "2")
    assert result.exit_code == 0
    assert result.output.count("root=") == 1


def test_compare_agreement(run, seeded):
    result = run("compare", "interp", "wasm", "--height", "1")
    assert result.exit_code == 0
    assert "AGREEMENT" in result.output


def test_compare_disagreement(run, seeded):
    result = run("compare", "interp", "wasm", "--height", "2", "--json")
    assert result.exit_code == 1
    report = json.loads(result.output)
    assert report["verdict"] == "disagreement"
    assert {d["key_hash"] for d in report["entry_divergences"]} == {"0x01"}


def test_compare_missing_height_is_recoverable(run, seeded):
    result = run("compare", "interp", "wasm", "--height", "3")
    assert result.exit_code == 3


def test_compare_needs_two_environments(run, seeded):
    result = run("compare", "interp", "--height", "1")
    assert result.exit_code == 2
    assert "at least two" in result.output


def test_ingest_invalid_json(run, tmp_path):
    path = tmp_path / "bad.jsonl"
    path.write_text("{not json\n")
    result = run("ingest", str(path))
    assert result.exit_code == 1
    assert "Line 1" in result.output


def test_ingest_out_of_order_is_fatal(run, seeded, payload_file):
    result = run("ingest", payload_file)
    assert result.exit_code == 2


def test_env_drop(run, seeded):
    result = run("env", "drop", "interp", input="n\n")
    assert result.exit_code == 1
    result = run("env", "drop", "interp", "--yes")
    assert result.exit_code == 0
    assert "Dropped environment 'interp'" in result.output
    assert run("env", "show", "interp").exit_code == 3
