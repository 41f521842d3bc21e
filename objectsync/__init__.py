"""objectsync: client SDK for Parse-Server-compatible object storage backends.

Provides command execution with retries and typed failures, and a merge
engine for offline field edits.
"""

__version__ = "0.1.0"

from .client import ObjectSyncClient
from .codec import ObjectReference
from .command import Command
from .config import Config, load_config
from .errors import (
    CommandCancelledError,
    ConnectionFailedError,
    ErrorCode,
    InvalidOperationError,
    MalformedResponseError,
    ObjectSyncError,
    TransportError,
)
from .identity import InstallationIdProvider
from .objects import RemoteObject
from .pending import PendingOperations
from .runner import CommandResult, CommandRunner

__all__ = [
    "Command",
    "CommandCancelledError",
    "CommandResult",
    "CommandRunner",
    "Config",
    "ConnectionFailedError",
    "ErrorCode",
    "InstallationIdProvider",
    "InvalidOperationError",
    "MalformedResponseError",
    "ObjectReference",
    "ObjectSyncClient",
    "ObjectSyncError",
    "PendingOperations",
    "RemoteObject",
    "TransportError",
    "load_config",
]
