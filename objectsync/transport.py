"""HTTP transport used by the command runner."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from .errors import CommandCancelledError, TransportError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
"""Receives transfer progress as a fraction between 0.0 and 1.0."""


@dataclass
class WebRequest:
    """A fully prepared HTTP request."""

    method: str
    target: httpx.URL
    headers: dict[str, str] = field(default_factory=dict)
    data: str | None = None


class Transport(ABC):
    """Performs HTTP requests for the command runner."""

    @abstractmethod
    async def execute(
        self,
        request: WebRequest,
        upload_progress: ProgressCallback | None = None,
        download_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> tuple[int, str | None]:
        """Send a request.

        Args:
            request: The request to send.
            upload_progress: Optional upload progress callback.
            download_progress: Optional download progress callback.
            cancel_event: Abandon the request once this event is set.

        Returns:
            Tuple of (status_code, body_text); body_text is None when empty.

        Raises:
            TransportError: If no response could be obtained or its body
                could not be read.
            CommandCancelledError: If `cancel_event` was set first.
        """
        pass


class HttpxTransport(Transport):
    """Transport backed by an `httpx.AsyncClient`."""

    def __init__(
        self,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transport.

        Args:
            timeout: Request timeout in seconds.
            client: Client to use instead of creating one.
        """
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(
        self,
        request: WebRequest,
        upload_progress: ProgressCallback | None,
        download_progress: ProgressCallback | None,
    ) -> tuple[int, str | None]:
        client = await self._get_client()
        content = request.data.encode("utf-8") if request.data is not None else None

        if upload_progress:
            upload_progress(0.0)

        try:
            async with client.stream(
                request.method,
                request.target,
                headers=request.headers,
                content=content,
            ) as response:
                if upload_progress:
                    upload_progress(1.0)

                total = int(response.headers.get("Content-Length") or 0)
                received = 0
                chunks = []
                if download_progress:
                    download_progress(0.0)

                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    received += len(chunk)
                    if download_progress and total:
                        download_progress(min(received / total, 1.0))

                if download_progress:
                    download_progress(1.0)

                body = b"".join(chunks)
                text = body.decode(response.encoding or "utf-8", errors="replace")
                logger.debug(
                    f"{request.method} {request.target} -> {response.status_code}"
                )
                return response.status_code, text or None

        except httpx.RequestError as e:
            # Covers transport failures and undecodable bodies
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def execute(
        self,
        request: WebRequest,
        upload_progress: ProgressCallback | None = None,
        download_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> tuple[int, str | None]:
        if cancel_event is None:
            return await self._send(request, upload_progress, download_progress)

        if cancel_event.is_set():
            raise CommandCancelledError("Request cancelled before it was sent")

        request_task = asyncio.ensure_future(
            self._send(request, upload_progress, download_progress)
        )
        cancel_task = asyncio.ensure_future(cancel_event.wait())

        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_task.cancel()
            if not request_task.done():
                request_task.cancel()

        if request_task in done:
            return request_task.result()

        raise CommandCancelledError("Request cancelled")
