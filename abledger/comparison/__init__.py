from .comparator import (
    DivergenceComparator,
    ComparisonReport,
    ContractDivergence,
    DivergenceKind,
    EntryDivergence,
    Verdict,
)

__all__ = [
    'DivergenceComparator',
    'ComparisonReport',
    'ContractDivergence',
    'DivergenceKind',
    'EntryDivergence',
    'Verdict',
]
