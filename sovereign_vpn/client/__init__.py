"""
Device-side components: identity, registration and tunnel control.
"""

from sovereign_vpn.client.api_client import (
    Conflict,
    ControlPlaneClient,
    Registered,
    Rejected,
)
from sovereign_vpn.client.errors import (
    ClientError,
    ConflictPersistedError,
    NotRegisteredError,
    RegistrationFailedError,
    RequestFailedError,
    ResponseFormatError,
    TransportFailureError,
    TunnelEngineError,
    VpnPermissionDeniedError,
)
from sovereign_vpn.client.identity import KeyIdentity
from sovereign_vpn.client.issued_material import IssuedConfig, ProtocolMode
from sovereign_vpn.client.network_monitor import NetworkMonitor, get_network_monitor
from sovereign_vpn.client.permission import VpnPermissionGate
from sovereign_vpn.client.registration_flow import ClientRegistrationFlow
from sovereign_vpn.client.secure_store import (
    EncryptedFileStore,
    MemoryStore,
    SecureStore,
    SecureStoreError,
)
from sovereign_vpn.client.tunnel import (
    TunnelDescriptor,
    TunnelEngine,
    TunnelState,
    TunnelStatistics,
    WgQuickTunnelEngine,
)

__all__ = [
    "ClientError",
    "ClientRegistrationFlow",
    "Conflict",
    "ConflictPersistedError",
    "ControlPlaneClient",
    "EncryptedFileStore",
    "IssuedConfig",
    "KeyIdentity",
    "MemoryStore",
    "NetworkMonitor",
    "NotRegisteredError",
    "ProtocolMode",
    "Registered",
    "RegistrationFailedError",
    "Rejected",
    "RequestFailedError",
    "ResponseFormatError",
    "SecureStore",
    "SecureStoreError",
    "TransportFailureError",
    "TunnelDescriptor",
    "TunnelEngine",
    "TunnelEngineError",
    "TunnelState",
    "TunnelStatistics",
    "VpnPermissionDeniedError",
    "WgQuickTunnelEngine",
    "get_network_monitor",
]
