"""
WireGuard Networking Package

Key primitives and the privileged remote channel to the live endpoint.
"""

from sovereign_vpn.networking.wireguard_keys import (
    WireGuardKeyError,
    decode_key,
    encode_key,
    generate_keypair,
    generate_preshared_key,
    get_public_key_from_private,
)

from sovereign_vpn.networking.remote_executor import (
    RemoteExecutor,
    RemoteResult,
    RemoteExecutionError,
    RemoteConnectionError,
    RemoteCommandError,
    RemoteTransportError,
)

__all__ = [
    "WireGuardKeyError",
    "decode_key",
    "encode_key",
    "generate_keypair",
    "generate_preshared_key",
    "get_public_key_from_private",
    "RemoteExecutor",
    "RemoteResult",
    "RemoteExecutionError",
    "RemoteConnectionError",
    "RemoteCommandError",
    "RemoteTransportError",
]
