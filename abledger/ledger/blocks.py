"""
Block Index

Per environment, an append-only, height-ordered ledger of block identities and
the trie root each block produced. The environment row carries a height
watermark that is checked and advanced in the same transaction as the insert,
under the environment's writer lock.
"""

import logging
from typing import Optional

from abledger.core.component import StoreComponent
from abledger.core.types import Block
from abledger.error_mitigation.errors import (
    DuplicateBlockError,
    HeightOutOfOrderError,
    NotFoundError,
    UnknownReferenceError,
)
from abledger.error_mitigation.validator import ensure_bytes, ensure_height
from abledger.storage.models import BlockModel, EnvironmentModel

logger = logging.getLogger(__name__)


def _to_block(model: BlockModel) -> Block:
    return Block(
        id=model.id,
        environment_id=model.environment_id,
        height=model.height,
        index_hash=model.index_hash,
        trie_root_hash=model.marf_trie_root_hash,
    )


class BlockIndex(StoreComponent):
    """Record and look up blocks per environment"""

    def record_block(self, environment_id: int, height: int, index_hash: bytes, trie_root_hash: bytes) -> int:
        """
        Append a block to an environment.

        Args:
            environment_id: Owning environment
            height: Block height, must exceed every height already recorded
            index_hash: Identity hash of the block, unique per environment
            trie_root_hash: Root of the state trie after applying the block

        Returns:
            int: The new block id

        Raises:
            HeightOutOfOrderError: If height does not advance the environment
            DuplicateBlockError: If index_hash was already recorded
            UnknownReferenceError: If the environment does not exist
        """
        height = ensure_height(height)
        index_hash = ensure_bytes("index_hash", index_hash, allow_empty=False)
        trie_root_hash = ensure_bytes("trie_root_hash", trie_root_hash, allow_empty=False)

        with self._writing(environment_id) as session:
            env = session.get(EnvironmentModel, environment_id)
            if env is None:
                raise UnknownReferenceError(f"Environment {environment_id} does not exist")

            if env.max_height is not None and height <= env.max_height:
                logger.error(f"[{env.name}] rejected block at height {height}, watermark is {env.max_height}")
                raise HeightOutOfOrderError(environment_id, height, env.max_height)

            duplicate = session.query(BlockModel.id).filter_by(
                environment_id=environment_id, index_hash=index_hash
            ).first()
            if duplicate is not None:
                logger.error(f"[{env.name}] block {index_hash.hex()} already recorded")
                raise DuplicateBlockError(
                    f"Block {index_hash.hex()} already recorded for environment {environment_id}"
                )

            block = BlockModel(
                environment_id=environment_id,
                height=height,
                index_hash=index_hash,
                marf_trie_root_hash=trie_root_hash,
            )
            session.add(block)
            env.max_height = height
            self._flush(session, DuplicateBlockError, f"Block at height {height} conflicts with a recorded block")
            block_id = block.id

        logger.debug(f"Recorded block {block_id} at height {height} for environment {environment_id}")
        return block_id

    def get_block(self, environment_id: int, height: int) -> Block:
        with self.backend.session_scope() as session:
            block = session.query(BlockModel).filter_by(environment_id=environment_id, height=height).first()
            if block is None:
                raise NotFoundError(f"No block at height {height} for environment {environment_id}")
            return _to_block(block)

    def get_block_by_hash(self, environment_id: int, index_hash: bytes) -> Block:
        index_hash = ensure_bytes("index_hash", index_hash)
        with self.backend.session_scope() as session:
            block = session.query(BlockModel).filter_by(
                environment_id=environment_id, index_hash=index_hash
            ).first()
            if block is None:
                raise NotFoundError(f"Block {index_hash.hex()} not found for environment {environment_id}")
            return _to_block(block)

    def get_block_by_id(self, block_id: int) -> Block:
        with self.backend.session_scope() as session:
            return _to_block(self._load_block(session, block_id))

    def list_blocks(self, environment_id: int, start: Optional[int] = None, end: Optional[int] = None) -> list[Block]:
        """Blocks of an environment in height order, optionally limited to [start, end]."""
        with self.backend.session_scope() as session:
            query = session.query(BlockModel).filter_by(environment_id=environment_id)
            if start is not None:
                query = query.filter(BlockModel.height >= start)
            if end is not None:
                query = query.filter(BlockModel.height <= end)
            return [_to_block(row) for row in query.order_by(BlockModel.height).all()]

    def latest_height(self, environment_id: int) -> Optional[int]:
        """Highest recorded height, or None when the environment has no blocks yet."""
        with self.backend.session_scope() as session:
            env = session.get(EnvironmentModel, environment_id)
            if env is None:
                raise NotFoundError(f"Environment {environment_id} not found")
            return env.max_height
