"""
Peer Provisioning API Endpoint Tests

End-to-end tests for the /api surface against an in-process provisioning
service with reconciliation disabled (or mocked).
"""

import base64
from unittest.mock import AsyncMock, Mock
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from sovereign_vpn.api.endpoints.peers import get_provisioning_service
from sovereign_vpn.main import app
from sovereign_vpn.networking.wireguard_keys import generate_keypair
from sovereign_vpn.services.provisioning_service import ProvisioningService
from sovereign_vpn.services.reconciliation_channel import (
    ReconciliationChannel,
    ReconciliationResult,
)


@pytest.fixture
def service(server_settings):
    """Fresh service per test"""
    return ProvisioningService(server_settings)


@pytest.fixture
def client(service):
    """Test client with the provisioning service overridden"""
    app.dependency_overrides[get_provisioning_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _register(client, name, public_key):
    return client.post("/api/peers", json={"name": name, "publicKey": public_key})


def _new_key():
    return generate_keypair()[1]


class TestRegisterEndpoint:
    """Test POST /api/peers"""

    def test_register_first_peer(self, client, zero_public_key):
        """
        GIVEN an empty registry
        WHEN registering "Pixel" with 32 zero bytes as the key
        THEN should return 201 with .2/32, keepalive 25 and serverApplied
        """
        response = _register(client, "Pixel", zero_public_key)

        assert response.status_code == 201
        data = response.json()
        assert data["peer"]["assignedIP"] == "10.66.66.2/32"
        assert data["serverConfig"]["persistentKeepalive"] == 25
        assert data["serverApplied"] is False
        assert data["serverError"]["reason"] == "not_configured"
        assert "[Peer]" in data["serverPeerBlock"]

    def test_sequential_registrations(self, client):
        """
        GIVEN two distinct keys
        WHEN registering both
        THEN addresses should be .2 then .3
        """
        first = _register(client, "a", _new_key())
        second = _register(client, "b", _new_key())

        assert first.json()["peer"]["assignedIP"] == "10.66.66.2/32"
        assert second.json()["peer"]["assignedIP"] == "10.66.66.3/32"

    def test_duplicate_key_returns_409(self, client, public_key):
        """
        GIVEN a registered key
        WHEN registering it again
        THEN should return 409 with the conflict message
        """
        _register(client, "Pixel", public_key)

        response = _register(client, "Pixel", public_key)

        assert response.status_code == 409
        assert response.json()["detail"] == "Peer with this public key already exists"

    def test_alias_spelling_of_registered_key_is_rejected(self, client, zero_public_key):
        """
        GIVEN 32 zero bytes registered as AAAA...AAA=
        WHEN registering AAAA...AAB=, which decodes to the same bytes
        THEN should return 400 and keep a single peer
        """
        _register(client, "Pixel", zero_public_key)

        response = _register(client, "Pixel", zero_public_key[:42] + "B=")

        assert response.status_code == 400
        assert client.get("/api/peers").json()["count"] == 1

    @pytest.mark.parametrize("body, detail", [
        ({"publicKey": base64.b64encode(bytes(32)).decode()}, "Peer name is required"),
        ({"name": "   ", "publicKey": base64.b64encode(bytes(32)).decode()}, "Peer name is required"),
        ({"name": "Pixel"}, "Client public key (base64) is required"),
        ({"name": "Pixel", "publicKey": base64.b64encode(bytes(31)).decode()},
         "Invalid public key: must be 32 bytes (Curve25519)"),
    ])
    def test_invalid_input_returns_400(self, client, body, detail):
        response = client.post("/api/peers", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_malformed_body_returns_400(self, client):
        """
        GIVEN a body that is not JSON
        WHEN posting
        THEN should return 400
        """
        response = client.post(
            "/api/peers",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_pool_exhausted_returns_503(self, client, service):
        service.registry.allocator._next_offset = service.registry.allocator._last_offset + 1

        response = _register(client, "Pixel", _new_key())

        assert response.status_code == 503

    def test_unexpected_error_returns_500(self, service):
        broken = Mock(spec=ProvisioningService)
        broken.register = AsyncMock(side_effect=RuntimeError("boom"))
        app.dependency_overrides[get_provisioning_service] = lambda: broken
        try:
            response = _register(TestClient(app), "Pixel", _new_key())
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to register peer"


class TestListAndRevokeEndpoints:
    """Test GET /api/peers and DELETE /api/peers/{publicKey}"""

    def test_list_peers_without_secrets(self, client):
        """
        GIVEN two registered peers
        WHEN listing
        THEN should return count 2 and no preshared keys
        """
        _register(client, "a", _new_key())
        _register(client, "b", _new_key())

        response = client.get("/api/peers")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        for peer in data["peers"]:
            assert "presharedKey" not in peer
            assert set(peer) == {"name", "publicKey", "assignedIP", "createdAt"}

    def test_revoke_then_revoke_again(self, client):
        """
        GIVEN a just-registered key containing '/' and '+'
        WHEN revoking via its URL-encoded form
        THEN count drops by one and a second revoke is 404
        """
        key = base64.b64encode(b"\xfb\xff" * 16).decode()
        assert "/" in key and "+" in key
        _register(client, "Pixel", key)
        _register(client, "Other", _new_key())

        response = client.delete(f"/api/peers/{quote(key, safe='')}")

        assert response.status_code == 200
        data = response.json()
        assert data["removedPeer"]["publicKey"] == key
        assert data["serverAction"] == f"Run on server: wg set wg0 peer {key} remove"
        assert "serverRemoved" not in data
        assert client.get("/api/peers").json()["count"] == 1

        second = client.delete(f"/api/peers/{quote(key, safe='')}")
        assert second.status_code == 404
        assert second.json()["detail"] == "Peer not found"

    def test_revoke_with_reconciliation(self, server_settings):
        reconciler = Mock(spec=ReconciliationChannel)
        reconciler.enabled = True
        reconciler.apply_peer = AsyncMock(return_value=ReconciliationResult.success())
        reconciler.remove_peer = AsyncMock(return_value=ReconciliationResult.success())
        service = ProvisioningService(server_settings, reconciler=reconciler)
        app.dependency_overrides[get_provisioning_service] = lambda: service
        try:
            client = TestClient(app)
            key = _new_key()
            registered = _register(client, "Pixel", key)
            response = client.delete(f"/api/peers/{quote(key, safe='')}")
        finally:
            app.dependency_overrides.clear()

        assert registered.json()["serverApplied"] is True
        assert "serverError" not in registered.json()
        assert response.json()["serverRemoved"] is True
        assert "serverAction" not in response.json()


class TestHealthAndPoolEndpoints:
    """Test GET /api/health and GET /api/pool/stats"""

    def test_health(self, client):
        _register(client, "Pixel", _new_key())

        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "sovereign-vpn-control-plane"
        assert data["activePeers"] == 1
        assert data["reconciliationEnabled"] is False

    def test_pool_stats(self, client):
        _register(client, "Pixel", _new_key())

        response = client.get("/api/pool/stats")

        assert response.json() == {
            "totalAddresses": 253,
            "issuedAddresses": 1,
            "remainingAddresses": 252,
            "activePeers": 1,
        }
