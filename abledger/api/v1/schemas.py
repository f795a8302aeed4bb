"""
Pydantic schemas for block ingestion

This module defines the payload a replay driver hands to the store after it
has executed one block in one environment: the block identity, the trie
leaves it wrote, the contracts it deployed, the executions it ran and the
contract variables and map entries those executions wrote.

Binary fields accept raw bytes or hex strings (with or without 0x).
"""

from typing import Annotated, Any, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from abledger.error_mitigation.validator import parse_hex


def _coerce_hex(value: Any) -> Any:
    if isinstance(value, str):
        return parse_hex(value)
    return value


def _coerce_source(value: Any) -> Any:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


HexBytes = Annotated[bytes, BeforeValidator(_coerce_hex)]
SourceBytes = Annotated[bytes, BeforeValidator(_coerce_source)]


class StateWrite(BaseModel):
    """One trie leaf written by the block"""
    key_hash: HexBytes = Field(..., description="Hash of the trie key")
    value: HexBytes = Field(..., description="Value of the key as of this block")


class ContractDeploy(BaseModel):
    """A contract deployed by the block"""
    qualified_id: str = Field(..., min_length=1, description="Qualified contract identifier (issuer.name)")
    source: SourceBytes = Field(..., description="Contract source; text is stored UTF-8 encoded")


class ExecutionRecord(BaseModel):
    """A transaction that invoked a contract"""
    contract: str = Field(..., min_length=1, description="Qualified identifier of the invoked contract")
    tx_id: HexBytes = Field(..., description="Transaction identifier")


class VariableWrite(BaseModel):
    """A persistent variable written by an execution"""
    contract: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1, description="Variable name")
    tx_id: HexBytes = Field(..., description="Transaction whose execution wrote the value")
    value: HexBytes


class MapWrite(BaseModel):
    """A map entry written by the block"""
    contract: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, description="Map name")
    key_hash: HexBytes
    value: HexBytes


class BlockPayload(BaseModel):
    """Everything one environment recorded for one block"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "environment": "interp",
                "height": 10,
                "index_hash": "0x0a0b",
                "trie_root_hash": "0xaaaa",
                "entries": [{"key_hash": "0x01", "value": "0x05"}],
                "contracts": [{"qualified_id": "SP000.counter", "source": "(define-data-var count int 0)"}],
                "executions": [{"contract": "SP000.counter", "tx_id": "0xfeed"}],
                "variables": [{"contract": "SP000.counter", "key": "count", "tx_id": "0xfeed", "value": "0x05"}],
                "maps": []
            }
        }
    )

    environment: Union[int, str] = Field(..., description="Environment id or name")
    height: int = Field(..., ge=0)
    index_hash: HexBytes
    trie_root_hash: HexBytes
    entries: list[StateWrite] = Field(default_factory=list)
    contracts: list[ContractDeploy] = Field(default_factory=list)
    executions: list[ExecutionRecord] = Field(default_factory=list)
    variables: list[VariableWrite] = Field(default_factory=list)
    maps: list[MapWrite] = Field(default_factory=list)
