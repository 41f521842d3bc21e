"""Tests for the httpx transport."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from objectsync.command import Command
from objectsync.config import RetryConfig, ServerConfig
from objectsync.errors import CommandCancelledError, ConnectionFailedError, TransportError
from objectsync.runner import CommandRunner
from objectsync.transport import HttpxTransport, WebRequest


def make_transport(handler) -> HttpxTransport:
    """Create a transport whose client answers with `handler`."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(client=client)


@pytest.fixture
def request_():
    return WebRequest(
        method="POST",
        target=httpx.URL("https://api.example.com/1/classes/Foo"),
        headers={"X-Parse-Application-Id": "app", "Content-Type": "application/json"},
        data='{"a":1}',
    )


class TestHttpxTransport:
    """Tests for HttpxTransport.execute."""

    @pytest.mark.asyncio
    async def test_execute(self, request_):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["app"] = request.headers["X-Parse-Application-Id"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"objectId": "abc"})

        transport = make_transport(handler)
        status, body = await transport.execute(request_)
        await transport.close()

        assert status == 201
        assert json.loads(body) == {"objectId": "abc"}
        assert seen == {
            "method": "POST",
            "url": "https://api.example.com/1/classes/Foo",
            "app": "app",
            "body": {"a": 1},
        }

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self, request_):
        transport = make_transport(lambda request: httpx.Response(204))

        status, body = await transport.execute(request_)

        assert status == 204
        assert body is None

    @pytest.mark.asyncio
    async def test_error_status_returned(self, request_):
        """Test non-2xx statuses are returned, not raised."""
        transport = make_transport(
            lambda request: httpx.Response(404, text='{"code":101,"error":"Object not found."}')
        )

        status, body = await transport.execute(request_)

        assert status == 404
        assert "Object not found." in body

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self, request_):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = make_transport(handler)

        with pytest.raises(TransportError, match="ConnectError"):
            await transport.execute(request_)

    @pytest.mark.asyncio
    async def test_undecodable_body_wrapped(self, request_):
        """Test a body that fails content decoding raises TransportError."""
        transport = make_transport(
            lambda request: httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip"),
            )
        )

        with pytest.raises(TransportError, match="DecodingError"):
            await transport.execute(request_)

    @pytest.mark.asyncio
    async def test_undecodable_body_through_runner(self):
        """Test the runner reports an undecodable body as a connection failure."""
        transport = make_transport(
            lambda request: httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip"),
            )
        )
        installation_ids = MagicMock()
        installation_ids.get = AsyncMock(return_value=None)
        runner = CommandRunner(
            transport,
            installation_ids,
            server=ServerConfig(url="https://api.example.com", application_id="app"),
            retry=RetryConfig(max_attempts=2, initial_delay_seconds=0.0),
        )
        command = Command.create("classes/Foo", server_url="https://api.example.com")

        with pytest.raises(ConnectionFailedError, match="DecodingError"):
            await runner.run_command(command)

    @pytest.mark.asyncio
    async def test_progress_callbacks(self, request_):
        uploads = []
        downloads = []
        transport = make_transport(lambda request: httpx.Response(200, text="{}"))

        await transport.execute(
            request_,
            upload_progress=uploads.append,
            download_progress=downloads.append,
        )

        assert uploads[0] == 0.0 and uploads[-1] == 1.0
        assert downloads[0] == 0.0 and downloads[-1] == 1.0
        assert all(0.0 <= p <= 1.0 for p in downloads)

    @pytest.mark.asyncio
    async def test_cancelled_before_send(self, request_):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text="{}")

        transport = make_transport(handler)
        cancel_event = asyncio.Event()
        cancel_event.set()

        with pytest.raises(CommandCancelledError):
            await transport.execute(request_, cancel_event=cancel_event)

        assert calls == []

    @pytest.mark.asyncio
    async def test_cancelled_in_flight(self, request_):
        """Test setting the event abandons a slow request."""

        async def slow_handler(request):
            await asyncio.sleep(10)
            return httpx.Response(200, text="{}")

        transport = make_transport(slow_handler)
        cancel_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel_event.set)

        with pytest.raises(CommandCancelledError):
            await asyncio.wait_for(
                transport.execute(request_, cancel_event=cancel_event), timeout=5
            )

    @pytest.mark.asyncio
    async def test_completes_with_unset_event(self, request_):
        transport = make_transport(lambda request: httpx.Response(200, text="[]"))

        status, body = await transport.execute(request_, cancel_event=asyncio.Event())

        assert (status, body) == (200, "[]")

    @pytest.mark.asyncio
    async def test_close(self):
        transport = HttpxTransport(timeout=5.0)
        client = await transport._get_client()

        await transport.close()

        assert client.is_closed
        assert transport._client is None
