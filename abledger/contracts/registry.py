"""
Contract Registry & Execution Log

Contract source deployed in a block (one row per qualified identifier per
environment) and the log of which transaction executed which contract at
which block.
"""

import logging

from abledger.core.component import StoreComponent
from abledger.core.types import Contract, ContractExecution
from abledger.error_mitigation.errors import (
    DuplicateContractError,
    DuplicateExecutionError,
    NotFoundError,
    UnknownReferenceError,
)
from abledger.error_mitigation.validator import ensure_bytes, ensure_name
from abledger.storage.models import BlockModel, ContractModel, ContractExecutionModel

logger = logging.getLogger(__name__)


def _to_contract(model: ContractModel) -> Contract:
    return Contract(
        id=model.id,
        environment_id=model.environment_id,
        block_id=model.block_id,
        qualified_id=model.qualified_contract_id,
        source=model.source,
    )


def _to_execution(model: ContractExecutionModel) -> ContractExecution:
    return ContractExecution(
        id=model.id,
        block_id=model.block_id,
        contract_id=model.contract_id,
        transaction_id=model.transaction_id,
    )


class ContractRegistry(StoreComponent):
    """Deployed contracts and their executions"""

    def register_contract(self, block_id: int, qualified_id: str, source: bytes) -> int:
        """
        Record a contract deployment.

        The qualified identifier (issuer.name) is unique within the environment
        that owns the block, so the same contract can be deployed into every
        environment under comparison.

        Raises:
            DuplicateContractError: If the environment already has this contract
            UnknownReferenceError: If the block does not exist
        """
        ensure_name("qualified_id", qualified_id)
        source = ensure_bytes("source", source)
        environment_id = self._block_environment(block_id)

        with self._writing(environment_id) as session:
            if session.get(BlockModel, block_id) is None:
                raise UnknownReferenceError(f"Block {block_id} does not exist")

            existing = session.query(ContractModel.id).filter_by(
                environment_id=environment_id, qualified_contract_id=qualified_id
            ).first()
            if existing is not None:
                logger.error(f"Contract '{qualified_id}' already deployed in environment {environment_id}")
                raise DuplicateContractError(
                    f"Contract '{qualified_id}' already deployed in environment {environment_id}"
                )

            contract = ContractModel(
                environment_id=environment_id,
                block_id=block_id,
                qualified_contract_id=qualified_id,
                source=source,
            )
            session.add(contract)
            self._flush(session, DuplicateContractError, f"Contract '{qualified_id}' already deployed")
            contract_id = contract.id

        logger.debug(f"Registered contract '{qualified_id}' (id={contract_id}) at block {block_id}")
        return contract_id

    def record_execution(self, block_id: int, contract_id: int, tx_id: bytes) -> int:
        """
        Log that transaction tx_id invoked a contract at a block.

        A contract may be invoked many times per block, but only once per
        transaction.

        Raises:
            DuplicateExecutionError: If (block, contract, tx_id) is already logged
            UnknownReferenceError: If the contract is unknown or lives in another environment
        """
        tx_id = ensure_bytes("tx_id", tx_id, allow_empty=False)
        environment_id = self._block_environment(block_id)

        with self._writing(environment_id) as session:
            if session.get(BlockModel, block_id) is None:
                raise UnknownReferenceError(f"Block {block_id} does not exist")

            contract = session.get(ContractModel, contract_id)
            if contract is None or contract.environment_id != environment_id:
                raise UnknownReferenceError(
                    f"Contract {contract_id} is not deployed in environment {environment_id}"
                )

            existing = session.query(ContractExecutionModel.id).filter_by(
                block_id=block_id, contract_id=contract_id, transaction_id=tx_id
            ).first()
            if existing is not None:
                raise DuplicateExecutionError(
                    f"Transaction {tx_id.hex()} already executed contract {contract_id} at block {block_id}"
                )

            execution = ContractExecutionModel(block_id=block_id, contract_id=contract_id, transaction_id=tx_id)
            session.add(execution)
            self._flush(session, DuplicateExecutionError, f"Execution of {tx_id.hex()} already logged")
            return execution.id

    def get_contract(self, qualified_id: str, environment_id: int) -> Contract:
        with self.backend.session_scope() as session:
            contract = session.query(ContractModel).filter_by(
                environment_id=environment_id, qualified_contract_id=qualified_id
            ).first()
            if contract is None:
                raise NotFoundError(f"Contract '{qualified_id}' not found in environment {environment_id}")
            return _to_contract(contract)

    def get_contract_by_id(self, contract_id: int) -> Contract:
        with self.backend.session_scope() as session:
            contract = session.get(ContractModel, contract_id)
            if contract is None:
                raise NotFoundError(f"Contract {contract_id} not found")
            return _to_contract(contract)

    def list_contracts(self, environment_id: int) -> list[Contract]:
        with self.backend.session_scope() as session:
            rows = session.query(ContractModel).filter_by(environment_id=environment_id).order_by(ContractModel.id)
            return [_to_contract(row) for row in rows]

    def list_executions(self, block_id: int) -> list[ContractExecution]:
        """Executions logged at a block, in the order they were recorded."""
        with self.backend.session_scope() as session:
            self._load_block(session, block_id)
            rows = session.query(ContractExecutionModel).filter_by(block_id=block_id).order_by(ContractExecutionModel.id)
            return [_to_execution(row) for row in rows]
