"""
Unit tests for the error classifier
"""

import pytest

from abledger.error_mitigation.error_classifier import ErrorCategory, PriorityLevel, classify_error
from abledger.error_mitigation.errors import (
    ConflictError,
    DuplicateNameError,
    HeightOutOfOrderError,
    InvalidRuntimeKind,
    MissingBlockError,
    NotFoundError,
    ValidationError,
)


@pytest.mark.parametrize("error, category, recoverable", [
    (DuplicateNameError("taken"), ErrorCategory.INTEGRITY, False),
    (ConflictError("twice"), ErrorCategory.INTEGRITY, False),
    (HeightOutOfOrderError(1, 5, 7), ErrorCategory.ORDERING, False),
    (NotFoundError("gone"), ErrorCategory.NOT_FOUND, True),
    (MissingBlockError(10, [2]), ErrorCategory.PRECONDITION, True),
    (InvalidRuntimeKind("jit"), ErrorCategory.INPUT, False),
    (ValidationError("bad"), ErrorCategory.INPUT, False),
    (RuntimeError("disk full"), ErrorCategory.STORAGE, False),
])
def test_classify_error(error, category, recoverable):
    info = classify_error(error)
    assert info.category is category
    assert info.recoverable is recoverable
    assert info.error_type == type(error).__name__


def test_integrity_and_ordering_are_critical():
    assert classify_error(ConflictError("x")).priority is PriorityLevel.CRITICAL
    assert classify_error(HeightOutOfOrderError(1, 1, 1)).priority is PriorityLevel.CRITICAL


def test_missing_block_metadata():
    info = classify_error(MissingBlockError(10, [3, 1]))
    assert info.metadata == {"height": 10, "environment_ids": [1, 3]}
    assert "1, 3" in info.description


def test_to_dict():
    data = classify_error(NotFoundError("no block")).to_dict()
    assert data["category"] == "not_found"
    assert data["priority"] == "LOW"
    assert data["description"] == "no block"
    assert data["recoverable"] is True
