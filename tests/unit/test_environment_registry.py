"""
Unit tests for the Environment Registry
"""

import pytest

from abledger.core.types import RuntimeKind
from abledger.error_mitigation.errors import DuplicateNameError, InvalidRuntimeKind, NotFoundError


def test_create_and_get_environment(store):
    environment_id = store.create_environment("interp", RuntimeKind.INTERPRETER, "/data/interp")

    environment = store.get_environment(environment_id)
    assert environment.name == "interp"
    assert environment.runtime is RuntimeKind.INTERPRETER
    assert environment.path == "/data/interp"
    assert environment.max_height is None


@pytest.mark.parametrize("kind, expected", [
    (0, RuntimeKind.NONE),
    (2, RuntimeKind.WASM),
    ("interpreter", RuntimeKind.INTERPRETER),
    ("WASM", RuntimeKind.WASM),
    ("read-only", RuntimeKind.NONE),
    (RuntimeKind.WASM, RuntimeKind.WASM),
])
def test_runtime_kind_inputs(store, kind, expected):
    environment_id = store.create_environment(f"env-{expected.name}-{kind}", kind, "/tmp")
    assert store.get_environment(environment_id).runtime is expected


@pytest.mark.parametrize("kind", [3, -1, "jit", None, True])
def test_invalid_runtime_kind(store, kind):
    with pytest.raises(InvalidRuntimeKind):
        store.create_environment("bad", kind, "/tmp")
    assert store.list_environments() == []


def test_duplicate_name(store):
    store.create_environment("interp", "interpreter", "/a")
    with pytest.raises(DuplicateNameError):
        store.create_environment("interp", "wasm", "/b")


def test_list_environments_in_creation_order(store):
    first = store.create_environment("interp", "interpreter", "/a")
    second = store.create_environment("wasm", "wasm", "/b")
    third = store.create_environment("baseline", "none", "/c")

    assert [environment.id for environment in store.list_environments()] == [first, second, third]


def test_resolve_by_name_or_id(store):
    environment_id = store.create_environment("wasm", "wasm", "/b")
    assert store.environments.resolve("wasm").id == environment_id
    assert store.environments.resolve(environment_id).name == "wasm"

    with pytest.raises(NotFoundError):
        store.environments.resolve("missing")


def test_get_missing_environment(store):
    with pytest.raises(NotFoundError):
        store.get_environment(42)


def test_environment_to_dict(store):
    environment_id = store.create_environment("wasm", "wasm", "/b")
    assert store.get_environment(environment_id).to_dict() == {
        "id": environment_id,
        "name": "wasm",
        "runtime": "wasm",
        "path": "/b",
        "max_height": None,
    }
