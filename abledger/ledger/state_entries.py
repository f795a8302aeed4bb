"""
State Entry Store

Raw trie leaf entries (key hash -> value) written when producing a block. A
block holds at most one value per key; a second write for the same slot is a
ConflictError, which catches a driver applying the same block twice.
"""

import logging
from typing import Optional

from abledger.core.component import StoreComponent
from abledger.core.types import EntryDiff
from abledger.error_mitigation.errors import ConflictError, UnknownReferenceError
from abledger.error_mitigation.validator import ensure_bytes
from abledger.storage.models import BlockModel, MarfEntryModel

logger = logging.getLogger(__name__)


class StateEntryStore(StoreComponent):
    """Write and compare per-block trie leaf entries"""

    def put_entry(self, block_id: int, key_hash: bytes, value: bytes) -> int:
        """
        Record the value of one key as of a block.

        Returns:
            int: The new entry id

        Raises:
            ConflictError: If the block already holds a value for key_hash
            UnknownReferenceError: If the block does not exist
        """
        key_hash = ensure_bytes("key_hash", key_hash, allow_empty=False)
        value = ensure_bytes("value", value)
        environment_id = self._block_environment(block_id)

        with self._writing(environment_id) as session:
            if session.get(BlockModel, block_id) is None:
                raise UnknownReferenceError(f"Block {block_id} does not exist")

            existing = session.query(MarfEntryModel.id).filter_by(block_id=block_id, key_hash=key_hash).first()
            if existing is not None:
                logger.error(f"Block {block_id} already holds key {key_hash.hex()}")
                raise ConflictError(f"Block {block_id} already holds a value for key {key_hash.hex()}")

            entry = MarfEntryModel(block_id=block_id, key_hash=key_hash, value=value)
            session.add(entry)
            self._flush(session, ConflictError, f"Block {block_id} already holds key {key_hash.hex()}")
            return entry.id

    def get_entry(self, block_id: int, key_hash: bytes) -> Optional[bytes]:
        key_hash = ensure_bytes("key_hash", key_hash)
        with self.backend.session_scope() as session:
            return session.query(MarfEntryModel.value).filter_by(block_id=block_id, key_hash=key_hash).scalar()

    def list_entries(self, block_id: int) -> dict[bytes, bytes]:
        """All entries of a block as key_hash -> value."""
        with self.backend.session_scope() as session:
            return self._entries(session, block_id)

    def _entries(self, session, block_id: int) -> dict[bytes, bytes]:
        self._load_block(session, block_id)
        rows = session.query(MarfEntryModel.key_hash, MarfEntryModel.value).filter_by(block_id=block_id)
        return {key_hash: value for key_hash, value in rows}

    def diff_entries(self, block_id_a: int, block_id_b: int) -> set[EntryDiff]:
        """
        Keys whose value differs between two blocks.

        Every key present in either block is considered; a key missing from
        one side shows up with None for that side. Pure read, safe to repeat.

        Raises:
            NotFoundError: If either block does not exist
        """
        with self.backend.session_scope() as session:
            entries_a = self._entries(session, block_id_a)
            entries_b = self._entries(session, block_id_b)

        diffs = set()
        for key_hash in entries_a.keys() | entries_b.keys():
            value_a = entries_a.get(key_hash)
            value_b = entries_b.get(key_hash)
            if value_a != value_b:
                diffs.add(EntryDiff(key_hash, value_a, value_b))
        return diffs
