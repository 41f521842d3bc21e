"""Tests for building commands."""

import pytest

from objectsync.command import (
    API_VERSION_PREFIX,
    CLIENT_VERSION,
    CLIENT_VERSION_HEADER,
    SESSION_TOKEN_HEADER,
    Command,
)
from objectsync.codec import ObjectReference


class TestCommandCreate:
    """Tests for Command.create."""

    def test_make_command(self):
        """Test the path, verb and session header of a new command."""
        command = Command.create("endpoint", method="GET", session_token="abcd")

        assert command.target.path == "/1/endpoint"
        assert command.method == "GET"
        assert (SESSION_TOKEN_HEADER, "abcd") in command.headers

    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE"])
    @pytest.mark.parametrize("endpoint", ["classes/GameScore", "/users/me", "functions/hello"])
    @pytest.mark.parametrize("token", [None, "r:token"])
    def test_path_and_session_header(self, method, endpoint, token):
        """Test the version prefix is always present and the session header only with a token."""
        command = Command.create(endpoint, method=method, session_token=token)

        assert command.path.startswith(API_VERSION_PREFIX)
        assert command.target.path.startswith(API_VERSION_PREFIX)
        assert (SESSION_TOKEN_HEADER in command.header_dict) == (token is not None)

    def test_client_version_header_always_present(self):
        """Test the protocol identity header is attached."""
        command = Command.create("classes/Foo")

        assert command.header_dict[CLIENT_VERSION_HEADER] == CLIENT_VERSION

    def test_server_url_with_mount_path(self):
        """Test the endpoint resolves under the server's mount path."""
        command = Command.create(
            "classes/Foo", server_url="http://localhost:1337/parse/"
        )

        assert str(command.target) == "http://localhost:1337/parse/1/classes/Foo"

    def test_query_string_kept(self):
        """Test query parameters in the endpoint end up in the target."""
        command = Command.create("classes/Foo?limit=10")

        assert command.target.path == "/1/classes/Foo"
        assert command.target.params["limit"] == "10"

    def test_lowercase_method_normalized(self):
        """Test verbs are upper-cased."""
        command = Command.create("classes/Foo", method="post", data={})

        assert command.method == "POST"

    def test_unsupported_method(self):
        """Test unknown verbs are rejected."""
        with pytest.raises(ValueError, match="Unsupported method"):
            Command.create("classes/Foo", method="PATCH")

    def test_caller_headers_cannot_override_protected(self):
        """Test caller headers never replace the identity or session headers."""
        command = Command.create(
            "classes/Foo",
            session_token="real",
            headers={
                "x-parse-session-token": "fake",
                CLIENT_VERSION_HEADER: "spoofed",
                "X-Custom": "kept",
            },
        )

        headers = command.header_dict
        assert headers[SESSION_TOKEN_HEADER] == "real"
        assert headers[CLIENT_VERSION_HEADER] == CLIENT_VERSION
        assert headers["X-Custom"] == "kept"
        assert "x-parse-session-token" not in headers

    def test_content_type_only_with_body(self):
        """Test the JSON content type is added for commands with a body."""
        without_body = Command.create("classes/Foo")
        with_body = Command.create("classes/Foo", method="POST", data={"a": 1})

        assert "Content-Type" not in without_body.header_dict
        assert with_body.header_dict["Content-Type"] == "application/json"

    def test_command_is_immutable(self):
        """Test commands can't be modified after construction."""
        command = Command.create("classes/Foo")

        with pytest.raises(AttributeError):
            command.method = "DELETE"


class TestCommandBody:
    """Tests for body serialization."""

    def test_no_body(self):
        assert Command.create("classes/Foo").body_text() is None

    def test_body_encodes_pointers(self):
        """Test object references serialize as pointers."""
        ref = ObjectReference("Player", "abc")
        command = Command.create("classes/Foo", method="POST", data={"owner": ref})

        assert command.body_text() == (
            '{"owner":{"__type":"Pointer","className":"Player","objectId":"abc"}}'
        )
