"""Per-object set of field operations waiting to be saved."""

from collections.abc import Iterator
from typing import Any

from .operations import MISSING, FieldOperation, apply, decode_operation, merge


class PendingOperations:
    """The net effect of all local edits to an object since its last save.

    Holds at most one operation per field. Performing an edit on a field
    that already has a pending operation replaces it with the merged result.
    """

    def __init__(self) -> None:
        self._operations: dict[str, FieldOperation] = {}

    def perform(self, key: str, operation: FieldOperation) -> FieldOperation:
        """Queue an edit for `key`, merging it with any pending edit.

        Returns:
            The operation now pending for the field.
        """
        merged = merge(self._operations.get(key), operation)
        self._operations[key] = merged
        return merged

    def get(self, key: str) -> FieldOperation | None:
        return self._operations.get(key)

    def pop(self, key: str) -> FieldOperation | None:
        return self._operations.pop(key, None)

    def clear(self) -> None:
        self._operations.clear()

    def items(self) -> list[tuple[str, FieldOperation]]:
        return list(self._operations.items())

    def __contains__(self, key: object) -> bool:
        return key in self._operations

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._operations))

    def __len__(self) -> int:
        return len(self._operations)

    def __bool__(self) -> bool:
        return bool(self._operations)

    def estimate(self, server_data: dict[str, Any]) -> dict[str, Any]:
        """Apply every pending operation to a copy of the server's data."""
        estimated = dict(server_data)
        for key, operation in self._operations.items():
            value = apply(estimated.get(key, MISSING), operation)
            if value is MISSING:
                estimated.pop(key, None)
            else:
                estimated[key] = value
        return estimated

    def encode(self) -> dict[str, Any]:
        """Wire form of the pending edits, suitable as a save request body."""
        return {key: operation.encode() for key, operation in self._operations.items()}

    @classmethod
    def from_encoded(cls, data: dict[str, Any]) -> "PendingOperations":
        pending = cls()
        for key, encoded in data.items():
            pending._operations[key] = decode_operation(encoded)
        return pending

    def __repr__(self) -> str:
        return f"PendingOperations({self._operations!r})"
