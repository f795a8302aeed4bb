"""
Divergence Comparator

Decides whether several environments agree on the state they recorded at one
block height. Blocks are matched by height: the blocks of different
environments at the same height are the same chain position executed by
different runtimes.

Trie roots are compared first. When they differ, the per-key entries of every
pair of blocks are diffed to isolate the keys that disagree. The verdict
follows the roots alone. Contract variables and map entries written at that
height are cross-checked as well and reported alongside, since a root
divergence can originate in a single contract's map.
"""

import logging
from enum import Enum
from itertools import combinations
from dataclasses import dataclass, field
from typing import Any, Iterable, NamedTuple, Optional, Union

from abledger.core.locks import EnvironmentLocks
from abledger.core.types import Block, Environment
from abledger.contracts.instances import ContractDataStore
from abledger.error_mitigation.errors import MissingBlockError, NotFoundError
from abledger.error_mitigation.validator import ensure_height
from abledger.ledger.blocks import BlockIndex
from abledger.ledger.state_entries import StateEntryStore
from abledger.registry.environments import EnvironmentRegistry

logger = logging.getLogger(__name__)


def _hex(value: Optional[bytes]) -> Optional[str]:
    return None if value is None else "0x" + value.hex()


class Verdict(Enum):
    AGREEMENT = "agreement"
    DISAGREEMENT = "disagreement"


class EntryDivergence(NamedTuple):
    """The value one environment holds for a key that not all environments agree on"""
    key_hash: bytes
    environment_id: int
    value: Optional[bytes]


class DivergenceKind(Enum):
    VARIABLE = "variable"
    MAP_ENTRY = "map_entry"


@dataclass(frozen=True)
class ContractDivergence:
    """A contract variable or map key written with different values at the compared height"""
    kind: DivergenceKind
    qualified_id: str
    name: str
    key_hash: Optional[bytes]  # map entries only
    values: tuple[tuple[int, Optional[bytes]], ...]  # (environment id, value) per environment

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "contract": self.qualified_id,
            "name": self.name,
            "key_hash": _hex(self.key_hash),
            "values": {str(env_id): _hex(value) for env_id, value in self.values},
        }


@dataclass
class ComparisonReport:
    """Outcome of comparing several environments at one height"""
    height: int
    environments: list[Environment]
    blocks: dict[int, Block]
    verdict: Verdict
    entry_divergences: list[EntryDivergence] = field(default_factory=list)
    contract_divergences: list[ContractDivergence] = field(default_factory=list)

    @property
    def trie_roots(self) -> dict[int, bytes]:
        return {env_id: block.trie_root_hash for env_id, block in self.blocks.items()}

    @property
    def roots_agree(self) -> bool:
        return len(set(self.trie_roots.values())) <= 1

    @property
    def contracts_agree(self) -> bool:
        return not self.contract_divergences

    @property
    def is_agreement(self) -> bool:
        return self.verdict is Verdict.AGREEMENT

    @property
    def diverging_keys(self) -> set[bytes]:
        return {divergence.key_hash for divergence in self.entry_divergences}

    def to_dict(self) -> dict[str, Any]:
        names = {env.id: env.name for env in self.environments}
        return {
            "height": self.height,
            "verdict": self.verdict.value,
            "contracts_agree": self.contracts_agree,
            "environments": [env.to_dict() for env in self.environments],
            "trie_roots": {names[env_id]: _hex(root) for env_id, root in self.trie_roots.items()},
            "entry_divergences": [
                {
                    "key_hash": _hex(divergence.key_hash),
                    "environment": names[divergence.environment_id],
                    "value": _hex(divergence.value),
                }
                for divergence in self.entry_divergences
            ],
            "contract_divergences": [divergence.to_dict() for divergence in self.contract_divergences],
        }


class DivergenceComparator:
    """
    Cross-environment comparison at a block height.

    A comparison holds the writer locks of every compared environment, so it
    never observes a block that is still being filled in.
    """

    def __init__(
        self,
        environments: EnvironmentRegistry,
        blocks: BlockIndex,
        entries: StateEntryStore,
        contract_data: ContractDataStore,
        locks: EnvironmentLocks,
    ):
        self.environments = environments
        self.blocks = blocks
        self.entries = entries
        self.contract_data = contract_data
        self.locks = locks

    def compare_heights(self, environment_ids: Iterable[Union[int, str]], height: int) -> ComparisonReport:
        """
        Compare environments at one height.

        Args:
            environment_ids: Environment ids or names, at least two distinct ones
            height: Block height to compare

        Returns:
            ComparisonReport: Verdict plus the keys and contract data that disagree

        Raises:
            MissingBlockError: If any environment has not recorded the height yet
            NotFoundError: If an environment does not exist
            ValueError: If fewer than two distinct environments are given
        """
        height = ensure_height(height)
        environments = []
        for ref in environment_ids:
            env = self.environments.resolve(ref)
            if env.id not in {known.id for known in environments}:
                environments.append(env)
        if len(environments) < 2:
            raise ValueError("compare_heights needs at least two distinct environments")

        env_ids = [env.id for env in environments]
        with self.locks.hold(*env_ids):
            blocks = self._blocks_at(env_ids, height)

            report = ComparisonReport(
                height=height,
                environments=environments,
                blocks=blocks,
                verdict=Verdict.AGREEMENT,
            )
            if not report.roots_agree:
                report.entry_divergences = self._entry_divergences(env_ids, blocks)
            report.contract_divergences = self._contract_divergences(env_ids, blocks)

        # The verdict follows the trie roots alone; contract data is diagnostics
        if not report.roots_agree:
            report.verdict = Verdict.DISAGREEMENT
            logger.warning(
                f"Divergence at height {height} between {[env.name for env in environments]}: "
                f"{len(report.diverging_keys)} key(s), {len(report.contract_divergences)} contract value(s)"
            )
        elif report.contract_divergences:
            logger.warning(
                f"Environments {[env.name for env in environments]} agree at height {height} "
                f"but {len(report.contract_divergences)} contract value(s) differ"
            )
        else:
            logger.info(f"Environments {[env.name for env in environments]} agree at height {height}")
        return report

    def _blocks_at(self, env_ids: list[int], height: int) -> dict[int, Block]:
        blocks = {}
        missing = []
        for env_id in env_ids:
            try:
                blocks[env_id] = self.blocks.get_block(env_id, height)
            except NotFoundError:
                missing.append(env_id)
        if missing:
            raise MissingBlockError(height, missing)
        return blocks

    def _entry_divergences(self, env_ids: list[int], blocks: dict[int, Block]) -> list[EntryDivergence]:
        keys = set()
        for env_a, env_b in combinations(env_ids, 2):
            for diff in self.entries.diff_entries(blocks[env_a].id, blocks[env_b].id):
                keys.add(diff.key_hash)
        if not keys:
            return []

        values = {env_id: self.entries.list_entries(blocks[env_id].id) for env_id in env_ids}
        return [
            EntryDivergence(key_hash, env_id, values[env_id].get(key_hash))
            for key_hash in sorted(keys)
            for env_id in env_ids
        ]

    def _contract_divergences(self, env_ids: list[int], blocks: dict[int, Block]) -> list[ContractDivergence]:
        divergences = []

        variable_writes = {env_id: self.contract_data.variable_writes_at(blocks[env_id].id) for env_id in env_ids}
        for qualified_id, key in sorted(set().union(*variable_writes.values())):
            values = tuple((env_id, variable_writes[env_id].get((qualified_id, key))) for env_id in env_ids)
            if len({value for _, value in values}) > 1:
                divergences.append(ContractDivergence(DivergenceKind.VARIABLE, qualified_id, key, None, values))

        map_writes = {env_id: self.contract_data.map_writes_at(blocks[env_id].id) for env_id in env_ids}
        for qualified_id, name, key_hash in sorted(set().union(*map_writes.values())):
            values = tuple((env_id, map_writes[env_id].get((qualified_id, name, key_hash))) for env_id in env_ids)
            if len({value for _, value in values}) > 1:
                divergences.append(ContractDivergence(DivergenceKind.MAP_ENTRY, qualified_id, name, key_hash, values))

        return divergences
