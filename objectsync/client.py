"""High-level client wiring the transport, storage, identity and runner together."""

import asyncio
import logging
from typing import Any

from .codec import build_query_string
from .command import Command
from .config import Config
from .identity import InstallationIdProvider
from .objects import RemoteObject
from .runner import CommandRunner
from .storage import SQLiteStorageController, StorageController
from .transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)


class ObjectSyncClient:
    """Entry point for applications.

    Example:
        async with ObjectSyncClient(load_config("objectsync.yaml")) as client:
            score = client.object("GameScore")
            score.set("player", "Sean")
            score.increment("score", 10)
            await client.save(score)
    """

    def __init__(
        self,
        config: Config,
        transport: Transport | None = None,
        storage: StorageController | None = None,
    ):
        """Initialize the client.

        Args:
            config: Client configuration.
            transport: Transport to use; defaults to an httpx transport.
            storage: Storage to use; defaults to SQLite at config.storage.db_path.
        """
        self.config = config
        self._owns_transport = transport is None
        self._owns_storage = storage is None
        self._transport = transport or HttpxTransport(timeout=config.http.timeout_seconds)
        self._storage = storage or SQLiteStorageController(config.storage.db_path)
        self.installation_ids = InstallationIdProvider(self._storage)
        self.runner = CommandRunner(
            self._transport,
            self.installation_ids,
            server=config.server,
            version=config.version,
            retry=config.retry,
        )

    async def __aenter__(self) -> "ObjectSyncClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the transport and storage this client created."""
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.close()
        if self._owns_storage and isinstance(self._storage, SQLiteStorageController):
            self._storage.close()

    def command(
        self,
        endpoint: str,
        method: str = "GET",
        session_token: str | None = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Command:
        """Build a command against the configured server."""
        return Command.create(
            endpoint,
            method=method,
            session_token=session_token,
            headers=headers,
            data=data,
            server_url=self.config.server.url,
        )

    async def run(
        self,
        endpoint: str,
        method: str = "GET",
        session_token: str | None = None,
        data: Any = None,
        use_master_key: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Run a raw REST call and return the decoded response mapping."""
        command = self.command(endpoint, method, session_token=session_token, data=data)
        result = await self.runner.run_command(
            command,
            cancel_event=cancel_event,
            use_master_key=use_master_key,
        )
        return result.data

    def object(self, class_name: str, object_id: str | None = None) -> RemoteObject:
        """Create a local handle on an object, without contacting the server."""
        return RemoteObject(class_name, object_id)

    async def get_object(
        self,
        class_name: str,
        object_id: str,
        session_token: str | None = None,
    ) -> RemoteObject:
        obj = RemoteObject(class_name, object_id)
        await obj.fetch(self.runner, session_token=session_token)
        return obj

    async def save(
        self,
        obj: RemoteObject,
        session_token: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        await obj.save(self.runner, session_token=session_token, cancel_event=cancel_event)

    async def query(
        self,
        class_name: str,
        where: dict[str, Any] | None = None,
        order: str | None = None,
        limit: int | None = None,
        skip: int | None = None,
        session_token: str | None = None,
    ) -> list[RemoteObject]:
        """Find objects of a class.

        Args:
            class_name: Class to query.
            where: Constraint mapping in the server's JSON query form.
            order: Comma-separated sort keys, "-" prefix for descending.
            limit: Maximum results.
            skip: Results to skip.
            session_token: Session token of the acting user.

        Returns:
            Matching objects.
        """
        params: dict[str, Any] = {}
        if where:
            params["where"] = where
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        if skip is not None:
            params["skip"] = skip

        endpoint = f"classes/{class_name}"
        if params:
            endpoint = f"{endpoint}?{build_query_string(params)}"

        data = await self.run(endpoint, "GET", session_token=session_token)
        return [
            RemoteObject.from_server(class_name, item)
            for item in data.get("results", [])
        ]

    async def call_function(
        self,
        name: str,
        params: dict[str, Any] | None = None,
        session_token: str | None = None,
    ) -> Any:
        """Call a cloud function and return its result."""
        data = await self.run(
            f"functions/{name}",
            "POST",
            session_token=session_token,
            data=params or {},
        )
        return data.get("result")
