"""Remote objects with locally accumulated edits."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from .codec import ObjectReference, decode_date, decode_value
from .command import Command
from .operations import (
    AddOperation,
    AddUniqueOperation,
    DeleteOperation,
    FieldOperation,
    IncrementOperation,
    RelationOperation,
    RemoveOperation,
    SetOperation,
)
from .pending import PendingOperations
from .runner import CommandRunner

logger = logging.getLogger(__name__)

RESERVED_KEYS = ("objectId", "createdAt", "updatedAt")


class RemoteObject(ObjectReference):
    """An object of a server-side class.

    Edits are queued as field operations and only reach the server on
    `save`. Reading a field returns its estimated value: the last known
    server value with the pending edits applied.
    """

    def __init__(
        self,
        class_name: str,
        object_id: str | None = None,
        data: dict[str, Any] | None = None,
    ):
        super().__init__(class_name, object_id)
        self._server_data: dict[str, Any] = {}
        self._pending = PendingOperations()
        self.created_at: datetime | None = None
        self.updated_at: datetime | None = None
        if data:
            self._merge_server_data(data)

    @classmethod
    def from_server(cls, class_name: str, data: dict[str, Any]) -> "RemoteObject":
        """Create an object from a server response."""
        return cls(class_name, data=data)

    @property
    def pending(self) -> PendingOperations:
        return self._pending

    @property
    def is_dirty(self) -> bool:
        return bool(self._pending)

    @property
    def endpoint(self) -> str:
        if self.object_id is None:
            return f"classes/{self.class_name}"
        return f"classes/{self.class_name}/{self.object_id}"

    # Reads

    def _estimated(self) -> dict[str, Any]:
        return self._pending.estimate(self._server_data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._estimated().get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._estimated()[key]

    def __contains__(self, key: object) -> bool:
        return key in self._estimated()

    def keys(self) -> list[str]:
        return list(self._estimated())

    # Edits

    def _perform(self, key: str, operation: FieldOperation) -> None:
        if key in RESERVED_KEYS:
            raise ValueError(f"{key} is managed by the server")
        self._pending.perform(key, operation)

    def set(self, key: str, value: Any) -> None:
        self._perform(key, SetOperation(value))

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def unset(self, key: str) -> None:
        self._perform(key, DeleteOperation())

    def increment(self, key: str, amount: int | float = 1) -> None:
        self._perform(key, IncrementOperation(amount))

    def add(self, key: str, items: list[Any]) -> None:
        self._perform(key, AddOperation(tuple(items)))

    def add_unique(self, key: str, items: list[Any]) -> None:
        self._perform(key, AddUniqueOperation(tuple(items)))

    def remove(self, key: str, items: list[Any]) -> None:
        self._perform(key, RemoveOperation(tuple(items)))

    def add_relation(self, key: str, objects: list[ObjectReference]) -> None:
        self._perform(key, RelationOperation(adds=tuple(objects)))

    def remove_relation(self, key: str, objects: list[ObjectReference]) -> None:
        self._perform(key, RelationOperation(removes=tuple(objects)))

    def revert(self) -> None:
        """Discard all unsaved edits."""
        self._pending.clear()

    # Server round-trips

    def _merge_server_data(self, data: dict[str, Any]) -> None:
        for key, value in data.items():
            if key == "objectId":
                self.object_id = value
            elif key == "createdAt":
                self.created_at = decode_date(value)
                self.updated_at = self.updated_at or self.created_at
            elif key == "updatedAt":
                self.updated_at = decode_date(value)
            else:
                self._server_data[key] = decode_value(value)

    async def save(
        self,
        runner: CommandRunner,
        session_token: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Send pending edits to the server.

        Edits made while the save is in flight stay pending. If the save
        fails, the sent edits are put back in front of them.
        """
        if not self.is_dirty and self.object_id is not None:
            return

        sending = self._pending
        self._pending = PendingOperations()

        command = Command.create(
            self.endpoint,
            method="PUT" if self.object_id else "POST",
            session_token=session_token,
            data=sending.encode(),
            server_url=runner.server.url,
        )

        try:
            result = await runner.run_command(command, cancel_event=cancel_event)
        except BaseException:
            newer = self._pending
            self._pending = sending
            for key, operation in newer.items():
                self._pending.perform(key, operation)
            raise

        self._server_data = sending.estimate(self._server_data)
        self._merge_server_data(result.data)
        logger.debug(f"Saved {self.class_name} {self.object_id}")

    async def fetch(
        self,
        runner: CommandRunner,
        session_token: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Replace the server-side state with the server's current copy."""
        if self.object_id is None:
            raise ValueError("Cannot fetch an object that has not been saved")

        command = Command.create(
            self.endpoint,
            method="GET",
            session_token=session_token,
            server_url=runner.server.url,
        )
        result = await runner.run_command(command, cancel_event=cancel_event)
        self._server_data = {}
        self._merge_server_data(result.data)

    async def destroy(
        self,
        runner: CommandRunner,
        session_token: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Delete the object on the server."""
        if self.object_id is None:
            raise ValueError("Cannot delete an object that has not been saved")

        command = Command.create(
            self.endpoint,
            method="DELETE",
            session_token=session_token,
            server_url=runner.server.url,
        )
        await runner.run_command(command, cancel_event=cancel_event)
        self._server_data = {}
        self._pending.clear()
