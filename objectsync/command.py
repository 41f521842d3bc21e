"""Immutable description of one call to the server's REST API."""

from dataclasses import dataclass
from typing import Any

import httpx

from .codec import dumps
from .config import DEFAULT_SERVER_URL

API_VERSION_PREFIX = "/1/"
METHODS = ("GET", "POST", "PUT", "DELETE")

CLIENT_VERSION = "objectsync-py-0.1.0"
CLIENT_VERSION_HEADER = "X-Parse-Client-Version"
SESSION_TOKEN_HEADER = "X-Parse-Session-Token"

# Headers callers can not override
_PROTECTED_HEADERS = {CLIENT_VERSION_HEADER.lower(), SESSION_TOKEN_HEADER.lower()}


@dataclass(frozen=True)
class Command:
    """A single REST call: verb, versioned path, headers and optional body.

    Build with `Command.create`; constructing a command does no I/O.
    """

    path: str
    method: str
    headers: tuple[tuple[str, str], ...]
    target: httpx.URL
    data: Any = None

    @classmethod
    def create(
        cls,
        endpoint: str,
        method: str = "GET",
        session_token: str | None = None,
        headers: dict[str, str] | None = None,
        data: Any = None,
        server_url: str = DEFAULT_SERVER_URL,
    ) -> "Command":
        """Build a command for an endpoint such as ``classes/GameScore``.

        Args:
            endpoint: Endpoint relative to the API version root.
            method: HTTP verb, one of GET, POST, PUT, DELETE.
            session_token: Session token of the acting user, if any.
            headers: Extra headers; they never replace the client version
                or session headers.
            data: JSON-encodable request body.
            server_url: Base URL of the server.

        Raises:
            ValueError: If the verb is not supported.
        """
        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported method: {method}")

        path = API_VERSION_PREFIX + endpoint.lstrip("/")
        target = httpx.URL(server_url.rstrip("/") + path)

        merged: dict[str, str] = {}
        for name, value in (headers or {}).items():
            if name.lower() not in _PROTECTED_HEADERS:
                merged[name] = value

        merged[CLIENT_VERSION_HEADER] = CLIENT_VERSION
        if session_token:
            merged[SESSION_TOKEN_HEADER] = session_token
        if data is not None and not any(n.lower() == "content-type" for n in merged):
            merged["Content-Type"] = "application/json"

        return cls(
            path=path,
            method=method,
            headers=tuple(merged.items()),
            target=target,
            data=data,
        )

    @property
    def header_dict(self) -> dict[str, str]:
        return dict(self.headers)

    @property
    def session_token(self) -> str | None:
        return self.header_dict.get(SESSION_TOKEN_HEADER)

    def body_text(self) -> str | None:
        """JSON text of the body, or None for body-less commands."""
        if self.data is None:
            return None
        return dumps(self.data)
