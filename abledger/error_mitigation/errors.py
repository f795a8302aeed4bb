"""
Error taxonomy for ABLedger.

Every failure the store reports is synchronous and belongs to one of four
families:

- IntegrityViolation: a uniqueness or reference breach. Fatal to the single
  write attempt; it signals a driver bug or a genuine data conflict.
- OrderingViolation: a block height that does not advance the environment.
- NotFoundError: a read miss. The caller decides what to do.
- MissingBlockError: the comparator was asked about a height that not every
  environment has reached yet. Retry once they have.

The store never retries anything on its own.
"""

from typing import Any, Iterable


class LedgerError(Exception):
    """Base class for all store errors"""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError, ValueError):
    """Raised when an argument is malformed (wrong type, negative height, ...)"""
    pass


class InvalidRuntimeKind(LedgerError, ValueError):
    """Raised when a runtime kind is outside the closed enumeration"""
    def __init__(self, value: Any):
        super().__init__(f"Invalid runtime kind: {value!r}")
        self.value = value


class IntegrityViolation(LedgerError):
    """Uniqueness or foreign-key breach"""
    pass


class DuplicateNameError(IntegrityViolation):
    pass


class DuplicateBlockError(IntegrityViolation):
    pass


class ConflictError(IntegrityViolation):
    """A second value for a (block, key) slot that already holds one"""
    pass


class DuplicateContractError(IntegrityViolation):
    pass


class DuplicateExecutionError(IntegrityViolation):
    pass


class DuplicateVariableError(IntegrityViolation):
    pass


class DuplicateMapError(IntegrityViolation):
    pass


class UnknownReferenceError(IntegrityViolation):
    """A write referenced a row that does not exist or lives in another environment"""
    pass


class OrderingViolation(LedgerError):
    pass


class HeightOutOfOrderError(OrderingViolation):
    def __init__(self, environment_id: int, height: int, max_height: int):
        super().__init__(
            f"Height {height} does not advance environment {environment_id} "
            f"(current max height {max_height})"
        )
        self.environment_id = environment_id
        self.height = height
        self.max_height = max_height


class NotFoundError(LedgerError, LookupError):
    pass


class MissingBlockError(LedgerError):
    """Not every compared environment has recorded the requested height"""
    def __init__(self, height: int, environment_ids: Iterable[int]):
        self.height = height
        self.environment_ids = sorted(environment_ids)
        super().__init__(
            f"No block at height {height} for environment(s) "
            f"{', '.join(str(i) for i in self.environment_ids)}"
        )
