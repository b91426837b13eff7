"""Exceptions raised when working with SIF images."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable


class SIFError(Exception):
    """Base class for SIF errors."""

    default_message = "SIF error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class NoObjectsError(SIFError, LookupError):
    """The image contains no data objects."""

    default_message = "no objects in image"


class ObjectNotFoundError(SIFError, LookupError):
    """No data object matched the selection."""

    default_message = "object not found"


class MultipleObjectsFoundError(SIFError, LookupError):
    """More than one data object matched the selection."""

    default_message = "multiple objects found"


class InvalidObjectIDError(SIFError, ValueError):
    """An invalid (zero) object ID was supplied."""

    default_message = "invalid object ID"


class InvalidGroupIDError(SIFError, ValueError):
    """An invalid (zero) group ID was supplied."""

    default_message = "invalid group ID"


class UnexpectedDataTypeError(SIFError, TypeError):
    """A data object had a type other than the one expected."""

    def __init__(self, got, want: Iterable) -> None:
        self.got = got
        self.want = list(want)
        expected = " ".join(str(w) for w in self.want)
        super().__init__(f"unexpected data type {got!s}, expected one of: [{expected}]")

    def matches(self, other: object) -> bool:
        """Report whether this error is equivalent to other.

        A zero ``got`` in other matches any data type, and an empty ``want``
        in other matches any expected set; otherwise the expected types must
        be the same, ignoring order.
        """
        if not isinstance(other, UnexpectedDataTypeError):
            return False
        if other.want and Counter(self.want) != Counter(other.want):
            return False
        return self.got == other.got or other.got == 0