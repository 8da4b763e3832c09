"""
Control Plane Client Tests

Tests for the httpx client against an in-process mock transport.
"""

import json

import httpx
import pytest

from sovereign_vpn.client.api_client import (
    Conflict,
    ControlPlaneClient,
    Registered,
    Rejected,
    error_message,
)
from sovereign_vpn.client.errors import (
    RegistrationFailedError,
    RequestFailedError,
    ResponseFormatError,
    TransportFailureError,
)


def make_client(handler):
    return ControlPlaneClient("http://control.test/", transport=httpx.MockTransport(handler))


class TestRegisterPeer:
    """Test POST /api/peers outcomes"""

    @pytest.mark.asyncio
    async def test_registered(self):
        """
        GIVEN a control plane answering 201
        WHEN registering
        THEN should send name and public key only and return Registered
        """
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"peer": {"assignedIP": "10.66.66.2/32"}})

        client = make_client(handler)
        result = await client.register_peer("Pixel", "PUB=")
        await client.close()

        assert isinstance(result, Registered)
        assert result.body["peer"]["assignedIP"] == "10.66.66.2/32"
        assert seen["path"] == "/api/peers"
        assert seen["body"] == {"name": "Pixel", "publicKey": "PUB="}

    @pytest.mark.asyncio
    async def test_conflict(self):
        client = make_client(
            lambda request: httpx.Response(409, json={"detail": "Peer with this public key already exists"})
        )

        result = await client.register_peer("Pixel", "PUB=")

        assert result == Conflict("Peer with this public key already exists")

    @pytest.mark.asyncio
    async def test_rejected_keeps_server_message(self):
        """
        GIVEN a 400 with an error field
        WHEN registering
        THEN the message should be surfaced verbatim
        """
        client = make_client(
            lambda request: httpx.Response(400, json={"error": "Invalid public key: must be 32 bytes (Curve25519)"})
        )

        result = await client.register_peer("Pixel", "bad")

        assert result == Rejected(400, "Invalid public key: must be 32 bytes (Curve25519)")

    @pytest.mark.asyncio
    async def test_non_json_success(self):
        client = make_client(lambda request: httpx.Response(201, text="<html>"))

        with pytest.raises(ResponseFormatError):
            await client.register_peer("Pixel", "PUB=")

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """
        GIVEN an unreachable control plane
        WHEN registering
        THEN should raise TransportFailureError
        """
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(TransportFailureError, match="Cannot reach control plane"):
            await client.register_peer("Pixel", "PUB=")


class TestOtherCalls:
    """Test health, list and delete"""

    @pytest.mark.asyncio
    async def test_health(self):
        client = make_client(lambda request: httpx.Response(200, json={"status": "ok", "activePeers": 0}))

        assert (await client.health())["status"] == "ok"

    @pytest.mark.asyncio
    async def test_list_peers(self):
        client = make_client(lambda request: httpx.Response(200, json={"count": 0, "peers": []}))

        assert await client.list_peers() == {"count": 0, "peers": []}

    @pytest.mark.asyncio
    async def test_delete_encodes_key(self):
        """
        GIVEN a key containing '/', '+' and '='
        WHEN deleting
        THEN the path segment should be fully URL-encoded
        """
        seen = {}

        def handler(request: httpx.Request):
            seen["raw_path"] = request.url.raw_path
            return httpx.Response(200, json={"message": "revoked"})

        client = make_client(handler)
        await client.delete_peer("ab/c+d=")

        assert seen["raw_path"] == b"/api/peers/ab%2Fc%2Bd%3D"

    @pytest.mark.asyncio
    async def test_delete_not_found(self):
        client = make_client(lambda request: httpx.Response(404, json={"detail": "Peer not found"}))

        with pytest.raises(RequestFailedError) as exc_info:
            await client.delete_peer("PUB=")

        assert not isinstance(exc_info.value, RegistrationFailedError)
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Peer not found"

    @pytest.mark.asyncio
    async def test_list_failure_uses_request_fallback(self):
        """
        GIVEN a list call answered with a bare 502
        WHEN listing peers
        THEN should raise RequestFailedError with a generic status line
        """
        client = make_client(lambda request: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(RequestFailedError) as exc_info:
            await client.list_peers()

        assert exc_info.value.message == "Request failed: 502 Bad Gateway"


def test_error_message_fallback():
    """
    GIVEN an error response without a message field
    WHEN extracting the error text
    THEN should fall back to the status line
    """
    response = httpx.Response(502, text="Bad Gateway")

    assert error_message(response) == "Registration failed: 502 Bad Gateway"
