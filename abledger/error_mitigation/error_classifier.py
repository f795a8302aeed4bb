"""
Error Mitigation Error Classifier Module

This module sorts store errors into categories and tells callers whether an
error is recoverable. Integrity and ordering violations are fatal to the write
that raised them; read misses and comparator precondition failures are
recoverable.
"""

import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Any

from abledger.error_mitigation.errors import (
    LedgerError,
    IntegrityViolation,
    OrderingViolation,
    NotFoundError,
    MissingBlockError,
    ValidationError,
    InvalidRuntimeKind,
)

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Error categories for the store"""
    INTEGRITY = "integrity"
    ORDERING = "ordering"
    NOT_FOUND = "not_found"
    PRECONDITION = "precondition"
    INPUT = "input"
    STORAGE = "storage"


class PriorityLevel(Enum):
    """Error priority levels"""
    CRITICAL = 1    # Driver bug or corrupted replay, stop the writer
    HIGH = 2        # Bad input, fix the caller
    LOW = 3         # Expected during normal operation


@dataclass
class ErrorInfo:
    """Information about a classified error"""
    error_type: str
    category: ErrorCategory
    priority: PriorityLevel
    recoverable: bool
    description: str
    mitigation_strategy: str
    timestamp: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.error_type,
            "category": self.category.value,
            "priority": self.priority.name,
            "recoverable": self.recoverable,
            "description": self.description,
            "mitigation_strategy": self.mitigation_strategy,
            "timestamp": self.timestamp,
            "metadata": self.metadata
        }


# Checked in order, first match wins
_RULES = [
    (MissingBlockError, ErrorCategory.PRECONDITION, PriorityLevel.LOW, True,
     "Wait until every compared environment has recorded the height, then compare again"),
    (NotFoundError, ErrorCategory.NOT_FOUND, PriorityLevel.LOW, True,
     "Caller decides whether the missing row is expected"),
    (OrderingViolation, ErrorCategory.ORDERING, PriorityLevel.CRITICAL, False,
     "Replay driver skipped or repeated a block; restart the environment replay"),
    (IntegrityViolation, ErrorCategory.INTEGRITY, PriorityLevel.CRITICAL, False,
     "Inspect the replay driver for double application of the block"),
    (InvalidRuntimeKind, ErrorCategory.INPUT, PriorityLevel.HIGH, False,
     "Use one of the supported runtime kinds"),
    (ValidationError, ErrorCategory.INPUT, PriorityLevel.HIGH, False,
     "Fix the malformed argument"),
]


def classify_error(error: BaseException) -> ErrorInfo:
    """
    Classify an exception raised by the store.

    Args:
        error: The exception to classify

    Returns:
        ErrorInfo: Classified error information
    """
    for error_class, category, priority, recoverable, strategy in _RULES:
        if isinstance(error, error_class):
            break
    else:
        category, priority, recoverable = ErrorCategory.STORAGE, PriorityLevel.CRITICAL, False
        strategy = "Check database connectivity and integrity"

    metadata = {}
    if isinstance(error, MissingBlockError):
        metadata = {"height": error.height, "environment_ids": error.environment_ids}

    info = ErrorInfo(
        error_type=type(error).__name__,
        category=category,
        priority=priority,
        recoverable=recoverable,
        description=error.message if isinstance(error, LedgerError) else str(error),
        mitigation_strategy=strategy,
        metadata=metadata
    )
    logger.debug(f"Classified {info.error_type} as {category.value} (recoverable={recoverable})")
    return info
