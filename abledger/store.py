"""
Differential State Store

Single entry point wiring the registry, block index, entry store, contract
stores and comparator over one database. The replay driver talks to this
object: it records blocks and their state as each environment advances and
asks the comparator whether the environments agree.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional, Union

from abledger.api.v1.schemas import BlockPayload
from abledger.comparison.comparator import ComparisonReport, DivergenceComparator
from abledger.contracts.instances import ContractDataStore
from abledger.contracts.registry import ContractRegistry
from abledger.core.locks import EnvironmentLocks
from abledger.core.types import (
    Block,
    Contract,
    ContractExecution,
    EntryDiff,
    Environment,
    MapEntry,
    VariableInstance,
)
from abledger.error_mitigation.errors import NotFoundError, UnknownReferenceError
from abledger.ledger.blocks import BlockIndex
from abledger.ledger.state_entries import StateEntryStore
from abledger.registry.environments import EnvironmentRegistry
from abledger.storage.sql_backend import SqlStorageBackend

logger = logging.getLogger(__name__)


class DifferentialStore:
    """
    Differential-testing state store.

    Environments advance independently and may be written from different
    threads; each environment has a single writer at a time. A driver that
    records one block through several calls should wrap them in
    writing(environment_id) so a comparison never sees the block half written,
    or hand the whole block to apply_block.
    """

    def __init__(self, database_url: Optional[str] = None, backend: Optional[SqlStorageBackend] = None):
        self.backend = backend or SqlStorageBackend(database_url)
        self.locks = EnvironmentLocks()

        self.environments = EnvironmentRegistry(self.backend, self.locks)
        self.blocks = BlockIndex(self.backend, self.locks)
        self.entries = StateEntryStore(self.backend, self.locks)
        self.contracts = ContractRegistry(self.backend, self.locks)
        self.contract_data = ContractDataStore(self.backend, self.locks)
        self.comparator = DivergenceComparator(
            self.environments, self.blocks, self.entries, self.contract_data, self.locks
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.backend.close()

    @contextmanager
    def writing(self, environment_id: int) -> Iterator[None]:
        """Hold an environment's writer lock across several store calls."""
        with self.locks.hold(environment_id):
            yield

    # Environment Registry

    def create_environment(self, name: str, runtime_kind, storage_path: str) -> int:
        return self.environments.create_environment(name, runtime_kind, storage_path)

    def get_environment(self, environment_id: int) -> Environment:
        return self.environments.get_environment(environment_id)

    def list_environments(self) -> list[Environment]:
        return self.environments.list_environments()

    def drop_environment(self, environment_id: int) -> dict[str, int]:
        return self.environments.drop_environment(environment_id)

    # Block Index

    def record_block(self, environment_id: int, height: int, index_hash: bytes, trie_root_hash: bytes) -> int:
        return self.blocks.record_block(environment_id, height, index_hash, trie_root_hash)

    def get_block(self, environment_id: int, height: int) -> Block:
        return self.blocks.get_block(environment_id, height)

    def get_block_by_hash(self, environment_id: int, index_hash: bytes) -> Block:
        return self.blocks.get_block_by_hash(environment_id, index_hash)

    def latest_height(self, environment_id: int) -> Optional[int]:
        return self.blocks.latest_height(environment_id)

    # State Entry Store

    def put_entry(self, block_id: int, key_hash: bytes, value: bytes) -> int:
        return self.entries.put_entry(block_id, key_hash, value)

    def get_entry(self, block_id: int, key_hash: bytes) -> Optional[bytes]:
        return self.entries.get_entry(block_id, key_hash)

    def diff_entries(self, block_id_a: int, block_id_b: int) -> set[EntryDiff]:
        return self.entries.diff_entries(block_id_a, block_id_b)

    # Contract Registry & Execution Log

    def register_contract(self, block_id: int, qualified_id: str, source: bytes) -> int:
        return self.contracts.register_contract(block_id, qualified_id, source)

    def record_execution(self, block_id: int, contract_id: int, tx_id: bytes) -> int:
        return self.contracts.record_execution(block_id, contract_id, tx_id)

    def get_contract(self, qualified_id: str, environment_id: int) -> Contract:
        return self.contracts.get_contract(qualified_id, environment_id)

    def list_executions(self, block_id: int) -> list[ContractExecution]:
        return self.contracts.list_executions(block_id)

    # Contract Variable & Map Instance Store

    def declare_variable(self, contract_id: int, key: str) -> int:
        return self.contract_data.declare_variable(contract_id, key)

    def record_variable_instance(self, variable_id: int, block_id: int, execution_id: int, value: bytes) -> int:
        return self.contract_data.record_variable_instance(variable_id, block_id, execution_id, value)

    def latest_variable_value(self, variable_id: int, as_of_height: int) -> Optional[VariableInstance]:
        return self.contract_data.latest_variable_value(variable_id, as_of_height)

    def declare_map(self, contract_id: int, name: str) -> int:
        return self.contract_data.declare_map(contract_id, name)

    def put_map_entry(self, map_id: int, block_id: int, key_hash: bytes, value: bytes) -> int:
        return self.contract_data.put_map_entry(map_id, block_id, key_hash, value)

    def latest_map_entry(self, map_id: int, key_hash: bytes, as_of_height: int) -> Optional[MapEntry]:
        return self.contract_data.latest_map_entry(map_id, key_hash, as_of_height)

    # Divergence Comparator

    def compare_heights(self, environment_ids: Iterable[Union[int, str]], height: int) -> ComparisonReport:
        return self.comparator.compare_heights(environment_ids, height)

    # Ingestion

    def apply_block(self, payload: Union[BlockPayload, dict[str, Any]]) -> int:
        """
        Record one block and everything the driver observed while producing it.

        The block, its entries, deployments, executions, variable instances and
        map entries are written in one transaction under the environment's
        writer lock; if any part is rejected nothing of the block is kept.

        Returns:
            int: The new block id
        """
        if not isinstance(payload, BlockPayload):
            payload = BlockPayload.model_validate(payload)
        env = self.environments.resolve(payload.environment)

        with self.locks.hold(env.id), self.backend.session_scope(write=True):
            block_id = self.blocks.record_block(env.id, payload.height, payload.index_hash, payload.trie_root_hash)

            for write in payload.entries:
                self.entries.put_entry(block_id, write.key_hash, write.value)

            contract_ids = {}
            for deploy in payload.contracts:
                contract_ids[deploy.qualified_id] = self.contracts.register_contract(
                    block_id, deploy.qualified_id, deploy.source
                )

            def contract_id_of(qualified_id: str) -> int:
                if qualified_id not in contract_ids:
                    try:
                        contract_ids[qualified_id] = self.contracts.get_contract(qualified_id, env.id).id
                    except NotFoundError:
                        raise UnknownReferenceError(
                            f"Contract '{qualified_id}' is not deployed in environment '{env.name}'"
                        ) from None
                return contract_ids[qualified_id]

            execution_ids = {}
            for execution in payload.executions:
                contract_id = contract_id_of(execution.contract)
                execution_ids[(execution.contract, execution.tx_id)] = self.contracts.record_execution(
                    block_id, contract_id, execution.tx_id
                )

            for write in payload.variables:
                execution_id = execution_ids.get((write.contract, write.tx_id))
                if execution_id is None:
                    raise UnknownReferenceError(
                        f"Variable '{write.key}' of '{write.contract}' was written by "
                        f"transaction {write.tx_id.hex()}, which is not among the block's executions"
                    )
                contract_id = contract_id_of(write.contract)
                variable_id = self.contract_data.find_variable(contract_id, write.key)
                if variable_id is None:
                    variable_id = self.contract_data.declare_variable(contract_id, write.key)
                self.contract_data.record_variable_instance(variable_id, block_id, execution_id, write.value)

            for write in payload.maps:
                contract_id = contract_id_of(write.contract)
                map_id = self.contract_data.find_map(contract_id, write.name)
                if map_id is None:
                    map_id = self.contract_data.declare_map(contract_id, write.name)
                self.contract_data.put_map_entry(map_id, block_id, write.key_hash, write.value)

        logger.info(
            f"[{env.name}] applied block {payload.height}: {len(payload.entries)} entries, "
            f"{len(payload.contracts)} deployments, {len(payload.executions)} executions"
        )
        return block_id
