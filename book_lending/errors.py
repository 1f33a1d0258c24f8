from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories surfaced by every lending operation."""

    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    ILLEGAL_STATE = "ILLEGAL_STATE"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"


class LendingError(Exception):
    """Base class for domain failures. Subclasses carry an ``ErrorKind`` tag."""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:  # pragma: no cover
        return self.message


class NotFoundError(LendingError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(LendingError):
    kind = ErrorKind.CONFLICT


class IllegalStateError(LendingError):
    kind = ErrorKind.ILLEGAL_STATE


class InvalidArgumentError(LendingError):
    kind = ErrorKind.INVALID_ARGUMENT
