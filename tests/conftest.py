"""
Pytest configuration and shared fixtures
"""

import base64

import pytest

from sovereign_vpn.config import RemoteSettings, ServerSettings
from sovereign_vpn.networking.wireguard_keys import generate_keypair


@pytest.fixture(scope="session")
def test_subnet():
    """Overlay subnet used by the control plane under test"""
    return "10.66.66.0/24"


@pytest.fixture
def zero_public_key():
    """32 zero bytes, base64 encoded (44 chars)"""
    return base64.b64encode(bytes(32)).decode("ascii")


@pytest.fixture
def public_key():
    """A freshly generated client public key"""
    _, public = generate_keypair()
    return public


@pytest.fixture
def server_settings(test_subnet):
    """Server settings with reconciliation disabled"""
    return ServerSettings(subnet=test_subnet)


@pytest.fixture
def remote_server_settings(test_subnet):
    """Server settings with a remote endpoint configured"""
    return ServerSettings(
        subnet=test_subnet,
        remote=RemoteSettings(host="vpn.internal", key_path="/etc/vpn/id_ed25519"),
    )
