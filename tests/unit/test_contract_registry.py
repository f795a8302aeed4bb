"""
Unit tests for the Contract Registry & Execution Log
"""

import pytest

from abledger.error_mitigation.errors import (
    DuplicateContractError,
    DuplicateExecutionError,
    NotFoundError,
    UnknownReferenceError,
    ValidationError,
)

SOURCE = b"(define-data-var count int 0)"


@pytest.fixture
def blocks(store, environments, make_hash):
    interp, wasm = environments
    return (
        store.record_block(interp, 1, make_hash(1), b"\xaa"),
        store.record_block(wasm, 1, make_hash(1), b"\xaa"),
    )


def test_register_and_get_contract(store, environments, blocks):
    interp, _ = environments
    contract_id = store.register_contract(blocks[0], "SP000.counter", SOURCE)

    contract = store.get_contract("SP000.counter", interp)
    assert contract.id == contract_id
    assert contract.block_id == blocks[0]
    assert contract.environment_id == interp
    assert contract.source == SOURCE
    assert store.contracts.get_contract_by_id(contract_id) == contract


def test_same_contract_in_every_environment(store, environments, blocks):
    interp, wasm = environments
    a = store.register_contract(blocks[0], "SP000.counter", SOURCE)
    b = store.register_contract(blocks[1], "SP000.counter", SOURCE)
    assert a != b
    assert store.get_contract("SP000.counter", wasm).id == b
    assert [c.id for c in store.contracts.list_contracts(interp)] == [a]


def test_duplicate_contract_in_environment(store, environments, make_hash, blocks):
    interp, _ = environments
    store.register_contract(blocks[0], "SP000.counter", SOURCE)
    later = store.record_block(interp, 2, make_hash(2), b"\xbb")
    with pytest.raises(DuplicateContractError):
        store.register_contract(later, "SP000.counter", b"other")


def test_register_contract_unknown_block(store):
    with pytest.raises(UnknownReferenceError):
        store.register_contract(999, "SP000.counter", SOURCE)


def test_register_contract_needs_a_name(store, blocks):
    with pytest.raises(ValidationError):
        store.register_contract(blocks[0], "  ", SOURCE)


def test_get_contract_not_found(store, environments):
    interp, _ = environments
    with pytest.raises(NotFoundError):
        store.get_contract("SP000.missing", interp)
    with pytest.raises(NotFoundError):
        store.contracts.get_contract_by_id(42)


def test_record_and_list_executions(store, blocks):
    contract_id = store.register_contract(blocks[0], "SP000.counter", SOURCE)
    first = store.record_execution(blocks[0], contract_id, b"\x01")
    second = store.record_execution(blocks[0], contract_id, b"\x02")

    executions = store.list_executions(blocks[0])
    assert [e.id for e in executions] == [first, second]
    assert [e.transaction_id for e in executions] == [b"\x01", b"\x02"]
    assert all(e.contract_id == contract_id for e in executions)


def test_duplicate_execution(store, blocks):
    contract_id = store.register_contract(blocks[0], "SP000.counter", SOURCE)
    store.record_execution(blocks[0], contract_id, b"\x01")
    with pytest.raises(DuplicateExecutionError):
        store.record_execution(blocks[0], contract_id, b"\x01")
    assert len(store.list_executions(blocks[0])) == 1


def test_execution_of_contract_from_other_environment(store, blocks):
    contract_id = store.register_contract(blocks[0], "SP000.counter", SOURCE)
    with pytest.raises(UnknownReferenceError):
        store.record_execution(blocks[1], contract_id, b"\x01")


def test_execution_of_unknown_contract(store, blocks):
    with pytest.raises(UnknownReferenceError):
        store.record_execution(blocks[0], 999, b"\x01")


def test_list_executions_missing_block(store):
    with pytest.raises(NotFoundError):
        store.list_executions(999)
