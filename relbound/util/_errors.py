"""Contains the general errors that extend Python's base errors."""
from __future__ import annotations


class LogicError(RuntimeError):
    """Generic error to indicate that an algorithmic assumption within relbound has been violated.

    Faulty input by the user is reported via `ValueError` (or `SchemaError` for malformed relation metadata). Therefore,
    encountering a `LogicError` indicates a bug in relbound itself rather than a problem with the supplied data.
    """
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class StateError(RuntimeError):
    """Indicates that an object is not in the right state to perform an operation.

    For example, accessing the integer value of an unbounded cardinality raises this error.
    """
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
