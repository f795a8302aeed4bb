"""
Contract Variable & Map Instance Store

Versioned snapshots of persistent contract variables and map entries. History
is append-only: a new value is a new row tagged with the block (and, for
variables, the execution) that produced it. Point-in-time reads walk the
(id, height) index backwards and stop at the first row at or below the
requested height.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from abledger.core.component import StoreComponent
from abledger.core.types import ContractVariable, ContractMap, VariableInstance, MapEntry
from abledger.error_mitigation.errors import (
    ConflictError,
    DuplicateMapError,
    DuplicateVariableError,
    IntegrityViolation,
    NotFoundError,
    UnknownReferenceError,
)
from abledger.error_mitigation.validator import ensure_bytes, ensure_height, ensure_name
from abledger.storage.models import (
    BlockModel,
    ContractModel,
    ContractExecutionModel,
    ContractVarModel,
    ContractVarInstanceModel,
    ContractMapModel,
    ContractMapEntryModel,
)

logger = logging.getLogger(__name__)


def _to_instance(model: ContractVarInstanceModel) -> VariableInstance:
    return VariableInstance(
        id=model.id,
        variable_id=model.contract_var_id,
        block_id=model.block_id,
        height=model.block_height,
        execution_id=model.contract_execution_id,
        value=model.value,
    )


def _to_map_entry(model: ContractMapEntryModel) -> MapEntry:
    return MapEntry(
        id=model.id,
        map_id=model.contract_map_id,
        block_id=model.block_id,
        height=model.block_height,
        key_hash=model.key_hash,
        value=model.value,
    )


class ContractDataStore(StoreComponent):
    """Declared variables and maps of contracts, and their value history"""

    # Variables

    def declare_variable(self, contract_id: int, key: str) -> int:
        """
        Declare a persistent variable of a contract.

        Declaring is not idempotent; use find_variable to check first.

        Raises:
            DuplicateVariableError: If the contract already declares key
            UnknownReferenceError: If the contract does not exist
        """
        ensure_name("key", key)
        environment_id = self._contract_environment(contract_id)

        with self._writing(environment_id) as session:
            if session.query(ContractVarModel.id).filter_by(contract_id=contract_id, key=key).first() is not None:
                raise DuplicateVariableError(f"Contract {contract_id} already declares variable '{key}'")

            variable = ContractVarModel(contract_id=contract_id, key=key)
            session.add(variable)
            self._flush(session, DuplicateVariableError, f"Variable '{key}' already declared")
            return variable.id

    def find_variable(self, contract_id: int, key: str) -> Optional[int]:
        with self.backend.session_scope() as session:
            return session.query(ContractVarModel.id).filter_by(contract_id=contract_id, key=key).scalar()

    def get_variable(self, variable_id: int) -> ContractVariable:
        with self.backend.session_scope() as session:
            variable = session.get(ContractVarModel, variable_id)
            if variable is None:
                raise NotFoundError(f"Variable {variable_id} not found")
            return ContractVariable(id=variable.id, contract_id=variable.contract_id, key=variable.key)

    def record_variable_instance(self, variable_id: int, block_id: int, execution_id: int, value: bytes) -> int:
        """
        Append a value snapshot of a variable.

        The execution must be an invocation of the variable's contract logged
        at the same block, and the block must belong to the contract's
        environment.

        Raises:
            UnknownReferenceError: If any referenced row is missing or inconsistent
        """
        value = ensure_bytes("value", value)
        environment_id = self._variable_environment(variable_id)

        with self._writing(environment_id) as session:
            block = self._owned_block(session, block_id, environment_id)

            execution = session.get(ContractExecutionModel, execution_id)
            if execution is None or execution.block_id != block_id:
                raise UnknownReferenceError(f"Execution {execution_id} was not logged at block {block_id}")

            variable = session.get(ContractVarModel, variable_id)
            if execution.contract_id != variable.contract_id:
                raise UnknownReferenceError(
                    f"Execution {execution_id} invoked contract {execution.contract_id}, "
                    f"not the owner of variable {variable_id}"
                )

            instance = ContractVarInstanceModel(
                contract_var_id=variable_id,
                block_id=block_id,
                block_height=block.height,
                contract_execution_id=execution_id,
                value=value,
            )
            session.add(instance)
            self._flush(session, IntegrityViolation, f"Could not record instance of variable {variable_id}")
            logger.debug(f"Variable {variable_id} = {value.hex()} at height {block.height}")
            return instance.id

    def latest_variable_value(self, variable_id: int, as_of_height: int) -> Optional[VariableInstance]:
        """
        What the variable held at a height: the instance with the greatest block
        height at or below as_of_height (the last appended one on ties), or None.
        """
        as_of_height = ensure_height(as_of_height, "as_of_height")
        with self.backend.session_scope() as session:
            if session.get(ContractVarModel, variable_id) is None:
                raise NotFoundError(f"Variable {variable_id} not found")

            instance = (
                session.query(ContractVarInstanceModel)
                .filter(ContractVarInstanceModel.contract_var_id == variable_id)
                .filter(ContractVarInstanceModel.block_height <= as_of_height)
                .order_by(ContractVarInstanceModel.block_height.desc(), ContractVarInstanceModel.id.desc())
                .first()
            )
            return _to_instance(instance) if instance is not None else None

    # Maps

    def declare_map(self, contract_id: int, name: str) -> int:
        """
        Declare a map of a contract.

        Raises:
            DuplicateMapError: If the contract already declares name
            UnknownReferenceError: If the contract does not exist
        """
        ensure_name("name", name)
        environment_id = self._contract_environment(contract_id)

        with self._writing(environment_id) as session:
            if session.query(ContractMapModel.id).filter_by(contract_id=contract_id, name=name).first() is not None:
                raise DuplicateMapError(f"Contract {contract_id} already declares map '{name}'")

            contract_map = ContractMapModel(contract_id=contract_id, name=name)
            session.add(contract_map)
            self._flush(session, DuplicateMapError, f"Map '{name}' already declared")
            return contract_map.id

    def find_map(self, contract_id: int, name: str) -> Optional[int]:
        with self.backend.session_scope() as session:
            return session.query(ContractMapModel.id).filter_by(contract_id=contract_id, name=name).scalar()

    def get_map(self, map_id: int) -> ContractMap:
        with self.backend.session_scope() as session:
            contract_map = session.get(ContractMapModel, map_id)
            if contract_map is None:
                raise NotFoundError(f"Map {map_id} not found")
            return ContractMap(id=contract_map.id, contract_id=contract_map.contract_id, name=contract_map.name)

    def put_map_entry(self, map_id: int, block_id: int, key_hash: bytes, value: bytes) -> int:
        """
        Record the value of one map key as of a block.

        Raises:
            ConflictError: If the map already holds a value for key_hash at this block
            UnknownReferenceError: If the map or block is missing or inconsistent
        """
        key_hash = ensure_bytes("key_hash", key_hash, allow_empty=False)
        value = ensure_bytes("value", value)
        environment_id = self._map_environment(map_id)

        with self._writing(environment_id) as session:
            block = self._owned_block(session, block_id, environment_id)

            existing = session.query(ContractMapEntryModel.id).filter_by(
                contract_map_id=map_id, block_id=block_id, key_hash=key_hash
            ).first()
            if existing is not None:
                logger.error(f"Map {map_id} already holds key {key_hash.hex()} at block {block_id}")
                raise ConflictError(f"Map {map_id} already holds key {key_hash.hex()} at block {block_id}")

            entry = ContractMapEntryModel(
                contract_map_id=map_id,
                block_id=block_id,
                block_height=block.height,
                key_hash=key_hash,
                value=value,
            )
            session.add(entry)
            self._flush(session, ConflictError, f"Map {map_id} already holds key {key_hash.hex()}")
            return entry.id

    def latest_map_entry(self, map_id: int, key_hash: bytes, as_of_height: int) -> Optional[MapEntry]:
        """The value of a map key at a height, or None if it was never written at or before it."""
        key_hash = ensure_bytes("key_hash", key_hash)
        as_of_height = ensure_height(as_of_height, "as_of_height")
        with self.backend.session_scope() as session:
            if session.get(ContractMapModel, map_id) is None:
                raise NotFoundError(f"Map {map_id} not found")

            entry = (
                session.query(ContractMapEntryModel)
                .filter(ContractMapEntryModel.contract_map_id == map_id)
                .filter(ContractMapEntryModel.key_hash == key_hash)
                .filter(ContractMapEntryModel.block_height <= as_of_height)
                .order_by(ContractMapEntryModel.block_height.desc())
                .first()
            )
            return _to_map_entry(entry) if entry is not None else None

    # Per-block views used by the comparator

    def variable_writes_at(self, block_id: int) -> dict[tuple[str, str], bytes]:
        """
        Final value of every variable written at a block, keyed by
        (qualified contract id, variable key).
        """
        with self.backend.session_scope() as session:
            rows = (
                session.query(
                    ContractModel.qualified_contract_id,
                    ContractVarModel.key,
                    ContractVarInstanceModel.value,
                )
                .select_from(ContractVarInstanceModel)
                .join(ContractVarModel, ContractVarInstanceModel.contract_var_id == ContractVarModel.id)
                .join(ContractModel, ContractVarModel.contract_id == ContractModel.id)
                .filter(ContractVarInstanceModel.block_id == block_id)
                .order_by(ContractVarInstanceModel.id)
            )
            # Later instances in the block overwrite earlier ones
            return {(qualified_id, key): value for qualified_id, key, value in rows}

    def map_writes_at(self, block_id: int) -> dict[tuple[str, str, bytes], bytes]:
        """
        Every map entry written at a block, keyed by
        (qualified contract id, map name, key hash).
        """
        with self.backend.session_scope() as session:
            rows = (
                session.query(
                    ContractModel.qualified_contract_id,
                    ContractMapModel.name,
                    ContractMapEntryModel.key_hash,
                    ContractMapEntryModel.value,
                )
                .select_from(ContractMapEntryModel)
                .join(ContractMapModel, ContractMapEntryModel.contract_map_id == ContractMapModel.id)
                .join(ContractModel, ContractMapModel.contract_id == ContractModel.id)
                .filter(ContractMapEntryModel.block_id == block_id)
            )
            return {(qualified_id, name, key_hash): value for qualified_id, name, key_hash, value in rows}

    # Helpers

    def _contract_environment(self, contract_id: int) -> int:
        with self.backend.session_scope() as session:
            environment_id = session.query(ContractModel.environment_id).filter_by(id=contract_id).scalar()
        if environment_id is None:
            raise UnknownReferenceError(f"Contract {contract_id} does not exist")
        return environment_id

    def _variable_environment(self, variable_id: int) -> int:
        with self.backend.session_scope() as session:
            environment_id = (
                session.query(ContractModel.environment_id)
                .join(ContractVarModel, ContractVarModel.contract_id == ContractModel.id)
                .filter(ContractVarModel.id == variable_id)
                .scalar()
            )
        if environment_id is None:
            raise UnknownReferenceError(f"Variable {variable_id} does not exist")
        return environment_id

    def _map_environment(self, map_id: int) -> int:
        with self.backend.session_scope() as session:
            environment_id = (
                session.query(ContractModel.environment_id)
                .join(ContractMapModel, ContractMapModel.contract_id == ContractModel.id)
                .filter(ContractMapModel.id == map_id)
                .scalar()
            )
        if environment_id is None:
            raise UnknownReferenceError(f"Map {map_id} does not exist")
        return environment_id

    @staticmethod
    def _owned_block(session: Session, block_id: int, environment_id: int) -> BlockModel:
        block = session.get(BlockModel, block_id)
        if block is None or block.environment_id != environment_id:
            raise UnknownReferenceError(f"Block {block_id} does not belong to environment {environment_id}")
        return block
