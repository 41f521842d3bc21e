"""Failure taxonomy for commands run against the server."""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Numeric error codes returned by the server in `{"code": ..., "error": ...}` bodies."""

    OTHER_CAUSE = -1
    INTERNAL_SERVER_ERROR = 1
    CONNECTION_FAILED = 100
    OBJECT_NOT_FOUND = 101
    INVALID_QUERY = 102
    INVALID_CLASS_NAME = 103
    MISSING_OBJECT_ID = 104
    INVALID_KEY_NAME = 105
    INVALID_POINTER = 106
    INVALID_JSON = 107
    COMMAND_UNAVAILABLE = 108
    NOT_INITIALIZED = 109
    INCORRECT_TYPE = 111
    INVALID_CHANNEL_NAME = 112
    PUSH_MISCONFIGURED = 115
    OBJECT_TOO_LARGE = 116
    OPERATION_FORBIDDEN = 119
    CACHE_MISS = 120
    INVALID_NESTED_KEY = 121
    INVALID_FILE_NAME = 122
    INVALID_ACL = 123
    TIMEOUT = 124
    INVALID_EMAIL_ADDRESS = 125
    DUPLICATE_VALUE = 137
    INVALID_ROLE_NAME = 139
    EXCEEDED_QUOTA = 140
    SCRIPT_FAILED = 141
    VALIDATION_FAILED = 142
    FILE_DELETE_FAILED = 153
    REQUEST_LIMIT_EXCEEDED = 155
    INVALID_EVENT_NAME = 160
    USERNAME_MISSING = 200
    PASSWORD_MISSING = 201
    USERNAME_TAKEN = 202
    EMAIL_TAKEN = 203
    EMAIL_MISSING = 204
    EMAIL_NOT_FOUND = 205
    SESSION_MISSING = 206
    MUST_CREATE_USER_THROUGH_SIGNUP = 207
    ACCOUNT_ALREADY_LINKED = 208
    INVALID_SESSION_TOKEN = 209
    LINKED_ID_MISSING = 250
    INVALID_LINKED_SESSION = 251
    UNSUPPORTED_SERVICE = 252

    @classmethod
    def from_server(cls, code: int) -> "ErrorCode":
        """Map a server code to a known member, or OTHER_CAUSE."""
        try:
            return cls(code)
        except ValueError:
            return cls.OTHER_CAUSE


class ObjectSyncError(Exception):
    """A terminal failure of a command.

    Attributes:
        code: Kind of failure.
        message: Human-readable message, verbatim from the server when it sent one.
        status_code: HTTP status of the response, if there was one.
        server_code: Raw numeric code from the response body, if any.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int | None = None,
        server_code: int | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.server_code = server_code

    @property
    def retryable(self) -> bool:
        return self.code in (ErrorCode.CONNECTION_FAILED, ErrorCode.INTERNAL_SERVER_ERROR)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.name}, message={self.message!r})"


class ConnectionFailedError(ObjectSyncError):
    """The transport could not complete the call."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.CONNECTION_FAILED, message)


class MalformedResponseError(ObjectSyncError):
    """A success status arrived with a body that is not a JSON object or array."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(ErrorCode.OTHER_CAUSE, message, status_code=status_code)


class TransportError(Exception):
    """Raised by transports when no HTTP response could be obtained."""


class CommandCancelledError(Exception):
    """The command was abandoned through its cancellation signal."""


class InvalidOperationError(Exception):
    """A field operation cannot follow the operation already pending for that field."""
