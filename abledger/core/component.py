"""
Shared plumbing for the store components.
"""

from contextlib import contextmanager
from typing import Iterator, Type

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from abledger.core.locks import EnvironmentLocks
from abledger.error_mitigation.errors import (
    IntegrityViolation,
    NotFoundError,
    UnknownReferenceError,
)
from abledger.storage.models import BlockModel
from abledger.storage.sql_backend import SqlStorageBackend


class StoreComponent:
    """Base class giving components the backend, the lock registry and a few helpers"""

    def __init__(self, backend: SqlStorageBackend, locks: EnvironmentLocks):
        self.backend = backend
        self.locks = locks

    @contextmanager
    def _writing(self, environment_id: int) -> Iterator[Session]:
        """Hold the environment's writer lock for one transaction."""
        with self.locks.hold(environment_id), self.backend.session_scope(write=True) as session:
            yield session

    @staticmethod
    def _flush(session: Session, error_class: Type[IntegrityViolation], message: str) -> None:
        """Flush pending inserts, turning a database constraint failure into a store error."""
        try:
            session.flush()
        except IntegrityError as e:
            raise error_class(f"{message} ({e.orig})") from e

    def _block_environment(self, block_id: int) -> int:
        """Environment that owns a block, for writes that reference the block."""
        with self.backend.session_scope() as session:
            environment_id = session.query(BlockModel.environment_id).filter_by(id=block_id).scalar()
        if environment_id is None:
            raise UnknownReferenceError(f"Block {block_id} does not exist")
        return environment_id

    @staticmethod
    def _load_block(session: Session, block_id: int) -> BlockModel:
        block = session.get(BlockModel, block_id)
        if block is None:
            raise NotFoundError(f"Block {block_id} not found")
        return block
