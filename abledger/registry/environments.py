"""
Environment Registry

Tracks every independent replay context: its name, the runtime it executes
with and where its chainstate lives on disk. Environments own all other rows;
dropping one removes its whole history in a single transaction.
"""

import logging
from typing import Union

from sqlalchemy import delete, select

from abledger.core.component import StoreComponent
from abledger.core.types import Environment, RuntimeKind
from abledger.error_mitigation.errors import DuplicateNameError, NotFoundError
from abledger.error_mitigation.validator import ensure_name
from abledger.storage.models import (
    EnvironmentModel,
    BlockModel,
    MarfEntryModel,
    ContractModel,
    ContractExecutionModel,
    ContractVarModel,
    ContractVarInstanceModel,
    ContractMapModel,
    ContractMapEntryModel,
)

logger = logging.getLogger(__name__)


def _to_environment(model: EnvironmentModel) -> Environment:
    return Environment(
        id=model.id,
        name=model.name,
        runtime=RuntimeKind(model.runtime_id),
        path=model.path,
        max_height=model.max_height,
    )


class EnvironmentRegistry(StoreComponent):
    """Create, look up, list and drop environments"""

    def create_environment(self, name: str, runtime_kind, storage_path: str) -> int:
        """
        Register a new environment.

        Args:
            name: Unique environment name (e.g. "interp", "wasm")
            runtime_kind: RuntimeKind member, its integer value or its name
            storage_path: Where the environment's chainstate lives

        Returns:
            int: The new environment id

        Raises:
            InvalidRuntimeKind: If the kind is not one of the supported runtimes
            DuplicateNameError: If the name is taken
        """
        ensure_name("name", name)
        ensure_name("storage_path", storage_path)
        runtime = RuntimeKind.parse(runtime_kind)

        with self.backend.session_scope(write=True) as session:
            if session.query(EnvironmentModel.id).filter_by(name=name).first() is not None:
                logger.error(f"Environment name '{name}' already exists")
                raise DuplicateNameError(f"Environment '{name}' already exists")

            env = EnvironmentModel(name=name, runtime_id=int(runtime), path=storage_path)
            session.add(env)
            self._flush(session, DuplicateNameError, f"Environment '{name}' already exists")
            environment_id = env.id

        logger.info(f"Created environment '{name}' (id={environment_id}, runtime={runtime.label})")
        return environment_id

    def get_environment(self, environment_id: int) -> Environment:
        with self.backend.session_scope() as session:
            env = session.get(EnvironmentModel, environment_id)
            if env is None:
                raise NotFoundError(f"Environment {environment_id} not found")
            return _to_environment(env)

    def get_environment_by_name(self, name: str) -> Environment:
        with self.backend.session_scope() as session:
            env = session.query(EnvironmentModel).filter_by(name=name).first()
            if env is None:
                raise NotFoundError(f"Environment '{name}' not found")
            return _to_environment(env)

    def resolve(self, ref: Union[int, str]) -> Environment:
        """Look an environment up by id, or by name when given a string."""
        if isinstance(ref, str):
            return self.get_environment_by_name(ref)
        return self.get_environment(ref)

    def list_environments(self) -> list[Environment]:
        with self.backend.session_scope() as session:
            rows = session.query(EnvironmentModel).order_by(EnvironmentModel.id).all()
            return [_to_environment(row) for row in rows]

    def drop_environment(self, environment_id: int) -> dict[str, int]:
        """
        Delete an environment and every row derived from it, atomically.

        Rows are removed children first so the delete does not depend on the
        database enforcing ON DELETE CASCADE.

        Returns:
            dict: Number of rows removed per table
        """
        with self.locks.hold(environment_id), self.backend.session_scope(write=True) as session:
            if session.get(EnvironmentModel, environment_id) is None:
                raise NotFoundError(f"Environment {environment_id} not found")

            block_ids = select(BlockModel.id).where(BlockModel.environment_id == environment_id)
            contract_ids = select(ContractModel.id).where(ContractModel.environment_id == environment_id)
            var_ids = select(ContractVarModel.id).where(ContractVarModel.contract_id.in_(contract_ids))
            map_ids = select(ContractMapModel.id).where(ContractMapModel.contract_id.in_(contract_ids))

            statements = [
                ("contract_var_instance", delete(ContractVarInstanceModel).where(
                    ContractVarInstanceModel.contract_var_id.in_(var_ids)
                    | ContractVarInstanceModel.block_id.in_(block_ids))),
                ("contract_map_entry", delete(ContractMapEntryModel).where(
                    ContractMapEntryModel.contract_map_id.in_(map_ids)
                    | ContractMapEntryModel.block_id.in_(block_ids))),
                ("contract_var", delete(ContractVarModel).where(ContractVarModel.contract_id.in_(contract_ids))),
                ("contract_map", delete(ContractMapModel).where(ContractMapModel.contract_id.in_(contract_ids))),
                ("contract_execution", delete(ContractExecutionModel).where(
                    ContractExecutionModel.block_id.in_(block_ids))),
                ("contract", delete(ContractModel).where(ContractModel.environment_id == environment_id)),
                ("marf_entry", delete(MarfEntryModel).where(MarfEntryModel.block_id.in_(block_ids))),
                ("block", delete(BlockModel).where(BlockModel.environment_id == environment_id)),
                ("environment", delete(EnvironmentModel).where(EnvironmentModel.id == environment_id)),
            ]

            removed = {}
            for table, statement in statements:
                result = session.execute(statement.execution_options(synchronize_session=False))
                removed[table] = result.rowcount

        self.locks.discard(environment_id)
        logger.info(f"Dropped environment {environment_id}: {removed}")
        return removed
