"""Field operations and the rules for composing them.

An object's local edits are kept as one operation per field. Each new edit
is merged onto the operation already pending for that field, so any number
of offline edits collapse into a single operation with the same effect on
the server as applying them one by one.

The set of operations is closed: `apply`, `merge` and `decode_operation`
dispatch over every variant and reject anything else.
"""

from dataclasses import dataclass, field
from typing import Any

from .codec import (
    ObjectReference,
    RelationValue,
    contains_item,
    decode_value,
    distinct,
    encode_value,
    same_item,
)
from .errors import InvalidOperationError


class _Missing:
    """Marker for a field with no value."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_list(value: Any, operation: str) -> list[Any]:
    if value is MISSING or value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    raise TypeError(f"{operation} requires a list, got {type(value).__name__}")


@dataclass(frozen=True)
class SetOperation:
    value: Any

    def encode(self) -> Any:
        return encode_value(self.value)


@dataclass(frozen=True)
class DeleteOperation:
    def encode(self) -> dict[str, Any]:
        return {"__op": "Delete"}


@dataclass(frozen=True)
class IncrementOperation:
    amount: int | float

    def __post_init__(self) -> None:
        if not _is_number(self.amount):
            raise TypeError(f"Increment amount must be a number, got {self.amount!r}")

    def encode(self) -> dict[str, Any]:
        return {"__op": "Increment", "amount": self.amount}


@dataclass(frozen=True)
class AddOperation:
    objects: tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "objects", tuple(distinct(self.objects)))

    def encode(self) -> dict[str, Any]:
        return {"__op": "Add", "objects": encode_value(list(self.objects))}


@dataclass(frozen=True)
class AddUniqueOperation:
    objects: tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "objects", tuple(distinct(self.objects)))

    def encode(self) -> dict[str, Any]:
        return {"__op": "AddUnique", "objects": encode_value(list(self.objects))}


@dataclass(frozen=True)
class RemoveOperation:
    objects: tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "objects", tuple(distinct(self.objects)))

    def encode(self) -> dict[str, Any]:
        return {"__op": "Remove", "objects": encode_value(list(self.objects))}


@dataclass(frozen=True)
class RelationOperation:
    """Adds and removes members of a relation field.

    All members must be object references of one class, which becomes the
    relation's target class.
    """

    adds: tuple[ObjectReference, ...] = field(default=())
    removes: tuple[ObjectReference, ...] = field(default=())
    target_class_name: str | None = None

    def __post_init__(self) -> None:
        adds = distinct(self.adds)
        removes = distinct(self.removes)
        if not adds and not removes:
            raise ValueError("A relation operation needs objects to add or remove")

        target = self.target_class_name
        for item in adds + removes:
            if not isinstance(item, ObjectReference):
                raise TypeError(f"Relation members must be object references, got {item!r}")
            if target is None:
                target = item.class_name
            elif item.class_name != target:
                raise ValueError(
                    f"Relation members must all be {target} objects, got {item.class_name}"
                )

        object.__setattr__(self, "adds", tuple(adds))
        object.__setattr__(self, "removes", tuple(removes))
        object.__setattr__(self, "target_class_name", target)

    def encode(self) -> dict[str, Any]:
        ops = []
        if self.adds:
            ops.append({"__op": "AddRelation", "objects": encode_value(list(self.adds))})
        if self.removes:
            ops.append({"__op": "RemoveRelation", "objects": encode_value(list(self.removes))})
        if len(ops) == 1:
            return ops[0]
        return {"__op": "Batch", "ops": ops}


FieldOperation = (
    SetOperation
    | DeleteOperation
    | IncrementOperation
    | AddOperation
    | AddUniqueOperation
    | RemoveOperation
    | RelationOperation
)


def _add_unique(old: list[Any], objects: tuple[Any, ...]) -> list[Any]:
    result = list(old)
    for target in objects:
        if isinstance(target, ObjectReference):
            for index, existing in enumerate(result):
                if same_item(target, existing):
                    result[index] = target
                    break
            else:
                result.append(target)
        elif not contains_item(result, target):
            result.append(target)
    return result


def apply(old_value: Any, operation: FieldOperation) -> Any:
    """Compute a field's value as if `operation` had been applied by the server.

    Args:
        old_value: Last known value of the field; `MISSING` or None if absent.
        operation: The operation to apply.

    Returns:
        The new value, or `MISSING` when the operation deletes the field.

    Raises:
        TypeError: If the old value has the wrong shape for the operation.
    """
    if isinstance(operation, SetOperation):
        return operation.value

    if isinstance(operation, DeleteOperation):
        return MISSING

    if isinstance(operation, IncrementOperation):
        if old_value is MISSING or old_value is None:
            return operation.amount
        if not _is_number(old_value):
            raise TypeError(
                f"Cannot increment a non-number value {old_value!r}"
            )
        return old_value + operation.amount

    if isinstance(operation, AddOperation):
        return _as_list(old_value, "Add") + list(operation.objects)

    if isinstance(operation, AddUniqueOperation):
        return _add_unique(_as_list(old_value, "AddUnique"), operation.objects)

    if isinstance(operation, RemoveOperation):
        return [
            item
            for item in _as_list(old_value, "Remove")
            if not contains_item(list(operation.objects), item)
        ]

    if isinstance(operation, RelationOperation):
        if old_value is MISSING or old_value is None:
            return RelationValue(operation.target_class_name)
        if isinstance(old_value, RelationValue):
            if old_value.target_class_name not in (None, operation.target_class_name):
                raise TypeError(
                    f"Relation targets {old_value.target_class_name}, "
                    f"not {operation.target_class_name}"
                )
            return RelationValue(operation.target_class_name)
        raise TypeError(f"Cannot apply a relation operation to {old_value!r}")

    raise InvalidOperationError(f"Unknown field operation {operation!r}")


def _invalid(previous: FieldOperation, incoming: FieldOperation) -> InvalidOperationError:
    return InvalidOperationError(
        f"{type(incoming).__name__} is invalid after {type(previous).__name__}"
    )


def merge(previous: FieldOperation | None, incoming: FieldOperation) -> FieldOperation:
    """Combine an incoming edit with the one already pending for the field.

    Raises:
        InvalidOperationError: If the pairing cannot be expressed as one operation.
        TypeError: If folding into a pending set hits a value of the wrong shape.
    """
    if previous is None:
        return incoming

    if isinstance(incoming, (SetOperation, DeleteOperation)):
        return incoming

    if isinstance(incoming, IncrementOperation):
        if isinstance(previous, DeleteOperation):
            return SetOperation(incoming.amount)
        if isinstance(previous, SetOperation):
            return SetOperation(apply(previous.value, incoming))
        if isinstance(previous, IncrementOperation):
            return IncrementOperation(previous.amount + incoming.amount)
        raise _invalid(previous, incoming)

    if isinstance(incoming, AddOperation):
        if isinstance(previous, DeleteOperation):
            return SetOperation(list(incoming.objects))
        if isinstance(previous, SetOperation):
            return SetOperation(apply(previous.value, incoming))
        if isinstance(previous, AddOperation):
            return AddOperation(previous.objects + incoming.objects)
        raise _invalid(previous, incoming)

    if isinstance(incoming, AddUniqueOperation):
        if isinstance(previous, DeleteOperation):
            return SetOperation(list(incoming.objects))
        if isinstance(previous, SetOperation):
            return SetOperation(apply(previous.value, incoming))
        if isinstance(previous, AddUniqueOperation):
            return AddUniqueOperation(tuple(_add_unique(list(previous.objects), incoming.objects)))
        raise _invalid(previous, incoming)

    if isinstance(incoming, RemoveOperation):
        if isinstance(previous, DeleteOperation):
            return previous
        if isinstance(previous, SetOperation):
            return SetOperation(apply(previous.value, incoming))
        if isinstance(previous, RemoveOperation):
            return RemoveOperation(previous.objects + incoming.objects)
        raise _invalid(previous, incoming)

    if isinstance(incoming, RelationOperation):
        if not isinstance(previous, RelationOperation):
            raise _invalid(previous, incoming)
        if previous.target_class_name != incoming.target_class_name:
            raise InvalidOperationError(
                f"Related object must be a {previous.target_class_name}, "
                f"but a {incoming.target_class_name} was passed in"
            )
        # The newer operation decides each member's fate
        adds = [a for a in previous.adds if not contains_item(list(incoming.removes), a)]
        removes = [r for r in previous.removes if not contains_item(list(incoming.adds), r)]
        return RelationOperation(
            adds=tuple(adds) + incoming.adds,
            removes=tuple(removes) + incoming.removes,
            target_class_name=incoming.target_class_name,
        )

    raise InvalidOperationError(f"Unknown field operation {incoming!r}")


def decode_operation(data: Any) -> FieldOperation:
    """Restore an operation from its wire form.

    Values that are not `{"__op": ...}` mappings decode as a set.
    """
    if not isinstance(data, dict) or "__op" not in data:
        return SetOperation(decode_value(data))

    op = data["__op"]
    if op == "Delete":
        return DeleteOperation()
    if op == "Increment":
        return IncrementOperation(data["amount"])
    if op == "Add":
        return AddOperation(tuple(decode_value(data["objects"])))
    if op == "AddUnique":
        return AddUniqueOperation(tuple(decode_value(data["objects"])))
    if op == "Remove":
        return RemoveOperation(tuple(decode_value(data["objects"])))
    if op == "AddRelation":
        return RelationOperation(adds=tuple(decode_value(data["objects"])))
    if op == "RemoveRelation":
        return RelationOperation(removes=tuple(decode_value(data["objects"])))
    if op == "Batch":
        result: FieldOperation | None = None
        for nested in data["ops"]:
            result = merge(result, decode_operation(nested))
        if result is None:
            raise ValueError("Batch operation has no ops")
        return result

    raise ValueError(f"Unknown operation type {op!r}")
