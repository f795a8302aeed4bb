"""
Value types returned by the store.

Rows are converted to these frozen dataclasses before they leave a session,
so callers never hold on to live ORM objects.
"""

from enum import IntEnum
from dataclasses import dataclass, asdict
from typing import Any, NamedTuple, Optional

from abledger.error_mitigation.errors import InvalidRuntimeKind


class RuntimeKind(IntEnum):
    """Closed enumeration of execution runtimes, persisted by value"""
    NONE = 0         # read-only, no execution
    INTERPRETER = 1
    WASM = 2         # compiled bytecode backend

    @property
    def label(self) -> str:
        return RUNTIME_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> "RuntimeKind":
        """Accept a member, its integer value, or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise InvalidRuntimeKind(value) from None
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            if key in ("READ_ONLY", "READONLY"):
                key = "NONE"
            elif key in ("COMPILED", "COMPILED_BYTECODE"):
                key = "WASM"
            if key in cls.__members__:
                return cls[key]
        raise InvalidRuntimeKind(value)


RUNTIME_LABELS = {
    RuntimeKind.NONE: "None (Read-Only)",
    RuntimeKind.INTERPRETER: "Interpreter",
    RuntimeKind.WASM: "Wasm",
}


class _Record:
    def to_dict(self) -> dict[str, Any]:
        """Dictionary form with binary fields rendered as 0x-prefixed hex"""
        result = {}
        for key, value in asdict(self).items():
            if isinstance(value, bytes):
                value = "0x" + value.hex()
            elif isinstance(value, RuntimeKind):
                value = value.name.lower()
            result[key] = value
        return result


@dataclass(frozen=True)
class Environment(_Record):
    id: int
    name: str
    runtime: RuntimeKind
    path: str
    max_height: Optional[int]


@dataclass(frozen=True)
class Block(_Record):
    id: int
    environment_id: int
    height: int
    index_hash: bytes
    trie_root_hash: bytes


@dataclass(frozen=True)
class StateEntry(_Record):
    id: int
    block_id: int
    key_hash: bytes
    value: bytes


@dataclass(frozen=True)
class Contract(_Record):
    id: int
    environment_id: int
    block_id: int
    qualified_id: str
    source: bytes


@dataclass(frozen=True)
class ContractExecution(_Record):
    id: int
    block_id: int
    contract_id: int
    transaction_id: bytes


@dataclass(frozen=True)
class ContractVariable(_Record):
    id: int
    contract_id: int
    key: str


@dataclass(frozen=True)
class VariableInstance(_Record):
    id: int
    variable_id: int
    block_id: int
    height: int
    execution_id: int
    value: bytes


@dataclass(frozen=True)
class ContractMap(_Record):
    id: int
    contract_id: int
    name: str


@dataclass(frozen=True)
class MapEntry(_Record):
    id: int
    map_id: int
    block_id: int
    height: int
    key_hash: bytes
    value: bytes


class EntryDiff(NamedTuple):
    """One key whose value differs between two blocks; a missing side is None"""
    key_hash: bytes
    value_a: Optional[bytes]
    value_b: Optional[bytes]
