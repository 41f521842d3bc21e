"""Runs commands against the server with retries and typed failures.

Each attempt resolves the installation id, attaches the application
headers, hands the request to the transport and classifies the result:

- 2xx: the body is decoded as JSON; an empty body becomes ``{}`` and a
  JSON array becomes ``{"results": [...]}``. Anything else is a
  `MalformedResponseError` and is not retried.
- 5xx and connection failures: retried with capped exponential backoff
  until the retry budget runs out.
- Other statuses: decoded into an `ObjectSyncError` and raised at once.

Callers never see a raw transport exception or status code.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

from .command import Command
from .config import RetryConfig, ServerConfig, VersionConfig
from .errors import (
    CommandCancelledError,
    ConnectionFailedError,
    ErrorCode,
    MalformedResponseError,
    ObjectSyncError,
    TransportError,
)
from .identity import InstallationIdProvider
from .transport import ProgressCallback, Transport, WebRequest

logger = logging.getLogger(__name__)

APPLICATION_ID_HEADER = "X-Parse-Application-Id"
INSTALLATION_ID_HEADER = "X-Parse-Installation-Id"
CLIENT_KEY_HEADER = "X-Parse-Client-Key"
MASTER_KEY_HEADER = "X-Parse-Master-Key"
OS_VERSION_HEADER = "X-Parse-OS-Version"
BUILD_VERSION_HEADER = "X-Parse-App-Build-Version"
DISPLAY_VERSION_HEADER = "X-Parse-App-Display-Version"


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing one whose name differs only in case."""
    for existing in [key for key in headers if key.lower() == name.lower()]:
        del headers[existing]
    headers[name] = value


@dataclass
class CommandResult:
    """A successful response."""

    status_code: int
    data: dict[str, Any]


class CommandRunner:
    """Executes `Command`s through a transport."""

    def __init__(
        self,
        transport: Transport,
        installation_ids: InstallationIdProvider,
        server: ServerConfig,
        version: VersionConfig | None = None,
        retry: RetryConfig | None = None,
    ):
        """Initialize the runner.

        Args:
            transport: Transport that performs the HTTP calls.
            installation_ids: Source of the installation id header.
            server: Application id, keys and auxiliary headers.
            version: Application version info sent as headers.
            retry: Retry policy for transient failures.
        """
        self.transport = transport
        self.installation_ids = installation_ids
        self.server = server
        self.version = version or VersionConfig()
        self.retry = retry or RetryConfig()

    async def _prepare(self, command: Command, use_master_key: bool) -> WebRequest:
        """Build the request for one attempt."""
        headers: dict[str, str] = {}
        for name, value in self.server.auxiliary_headers.items():
            _set_header(headers, name, value)
        for name, value in command.headers:
            _set_header(headers, name, value)

        installation_id = await self.installation_ids.get()
        if installation_id is not None:
            _set_header(headers, INSTALLATION_ID_HEADER, str(installation_id))

        _set_header(headers, APPLICATION_ID_HEADER, self.server.application_id)
        if use_master_key:
            if not self.server.master_key:
                raise ValueError("use_master_key requires a configured master key")
            _set_header(headers, MASTER_KEY_HEADER, self.server.master_key)
        elif self.server.client_key:
            _set_header(headers, CLIENT_KEY_HEADER, self.server.client_key)

        if self.version.os_version:
            _set_header(headers, OS_VERSION_HEADER, self.version.os_version)
        if self.version.build_version:
            _set_header(headers, BUILD_VERSION_HEADER, self.version.build_version)
        if self.version.display_version:
            _set_header(headers, DISPLAY_VERSION_HEADER, self.version.display_version)

        return WebRequest(
            method=command.method,
            target=command.target,
            headers=headers,
            data=command.body_text(),
        )

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise CommandCancelledError("Command cancelled")

    @staticmethod
    async def _wait_before_retry(
        delay: float, cancel_event: asyncio.Event | None
    ) -> None:
        """Sleep for `delay` seconds, waking early if cancelled."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return

        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return  # Normal timeout, retry
        raise CommandCancelledError("Command cancelled while waiting to retry")

    @staticmethod
    def decode_success(status_code: int, body: str | None) -> dict[str, Any]:
        """Decode the body of a 2xx response into a mapping."""
        if body is None or not body.strip():
            return {}

        try:
            decoded = json.loads(body)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Invalid response from server: {e}", status_code=status_code
            ) from e

        if isinstance(decoded, list):
            return {"results": decoded}
        if isinstance(decoded, dict):
            return decoded

        raise MalformedResponseError(
            f"Invalid response from server: expected an object or array, "
            f"got {type(decoded).__name__}",
            status_code=status_code,
        )

    @staticmethod
    def decode_failure(status_code: int, body: str | None) -> ObjectSyncError:
        """Turn a non-2xx response into a typed failure."""
        payload = None
        if body:
            try:
                payload = json.loads(body)
            except json.JSONDecodeError:
                payload = None

        if isinstance(payload, dict):
            code = payload.get("code")
            if isinstance(code, int) and not isinstance(code, bool):
                message = payload.get("error")
                if not isinstance(message, str):
                    message = f"HTTP {status_code}"
                return ObjectSyncError(
                    ErrorCode.from_server(code),
                    message,
                    status_code=status_code,
                    server_code=code,
                )

        if status_code >= 500:
            return ObjectSyncError(
                ErrorCode.INTERNAL_SERVER_ERROR,
                f"Internal server error (HTTP {status_code})",
                status_code=status_code,
            )

        message = f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}"
        return ObjectSyncError(ErrorCode.OTHER_CAUSE, message, status_code=status_code)

    async def run_command(
        self,
        command: Command,
        upload_progress: ProgressCallback | None = None,
        download_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        use_master_key: bool = False,
    ) -> CommandResult:
        """Run a command, retrying transient failures.

        Args:
            command: The command to run.
            upload_progress: Optional upload progress callback.
            download_progress: Optional download progress callback.
            cancel_event: Set to abandon the command and its retries.
            use_master_key: Send the master key instead of the client key.

        Returns:
            CommandResult with the decoded response mapping.

        Raises:
            ObjectSyncError: On any terminal failure.
            CommandCancelledError: If cancelled before a terminal outcome.
        """
        max_attempts = self.retry.max_attempts
        attempt = 0

        while True:
            attempt += 1
            self._check_cancelled(cancel_event)
            request = await self._prepare(command, use_master_key)
            self._check_cancelled(cancel_event)

            try:
                status_code, body = await self.transport.execute(
                    request,
                    upload_progress=upload_progress,
                    download_progress=download_progress,
                    cancel_event=cancel_event,
                )
            except CommandCancelledError:
                logger.debug(f"{command.method} {command.path} cancelled")
                raise
            except (TransportError, OSError) as e:
                failure: ObjectSyncError = ConnectionFailedError(str(e))
            else:
                if 200 <= status_code < 300:
                    return CommandResult(
                        status_code=status_code,
                        data=self.decode_success(status_code, body),
                    )

                failure = self.decode_failure(status_code, body)
                if status_code < 500:
                    logger.debug(
                        f"{command.method} {command.path} failed: "
                        f"{failure.code.name} ({failure.message})"
                    )
                    raise failure

            if attempt >= max_attempts:
                logger.error(
                    f"{command.method} {command.path} failed after "
                    f"{attempt} attempts: {failure.message}"
                )
                raise failure

            delay = self.retry.delay_for(attempt)
            logger.warning(
                f"{failure.code.name} on {command.method} {command.path}, "
                f"attempt {attempt}/{max_attempts}; retrying in {delay:.1f}s"
            )
            await self._wait_before_retry(delay, cancel_event)
