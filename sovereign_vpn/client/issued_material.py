"""
Registration response variants

Control plane deployments answer a registration in one of two shapes:

- ``structured``: a ``serverConfig`` JSON object
- ``embedded_text``: a ``clientConfig`` wg-quick text block, parsed by
  ``KEY = value`` extraction. Some deployments of this variant also embed
  a server-generated ``PrivateKey``.

Which shape a client expects is a configuration decision (ProtocolMode).
The parser for the configured mode is the only one consulted; a response
that lacks that variant is a ResponseFormatError, never a fallback to the
other shape.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from sovereign_vpn.client.errors import ResponseFormatError
from sovereign_vpn.config import (
    DEFAULT_ALLOWED_IPS,
    DEFAULT_DNS_SERVERS,
    DEFAULT_KEEPALIVE,
    split_list,
)
from sovereign_vpn.networking.wireguard_keys import WireGuardKeyError, decode_key


def checked_key(value: Any, label: str) -> str:
    """Return ``value`` if it is a well-formed WireGuard key."""
    try:
        decode_key(value)
    except WireGuardKeyError as e:
        raise ResponseFormatError(f"{label} is malformed: {e}")
    return value


class ProtocolMode(str, Enum):
    STRUCTURED = "structured"
    EMBEDDED_TEXT = "embedded_text"


@dataclass(frozen=True)
class IssuedConfig:
    """
    Material issued to this device at registration.

    Attributes:
        server_public_key: Endpoint's WireGuard public key
        endpoint: Endpoint host:port
        preshared_key: Per-peer shared secret
        dns_servers: DNS servers for the tunnel interface
        allowed_routes: Routes sent through the tunnel
        keepalive_seconds: Persistent keepalive interval
        assigned_address: This device's overlay address (``<ip>/32``)
    """
    server_public_key: str
    endpoint: str
    preshared_key: str
    dns_servers: List[str]
    allowed_routes: List[str]
    keepalive_seconds: int
    assigned_address: str


@dataclass(frozen=True)
class StructuredMaterial:
    server_config: Dict[str, Any]
    assigned_address: str

    def to_issued_config(self) -> IssuedConfig:
        conf = self.server_config
        try:
            return IssuedConfig(
                server_public_key=checked_key(conf["serverPublicKey"], "serverPublicKey"),
                endpoint=conf["endpoint"],
                preshared_key=checked_key(conf["presharedKey"], "presharedKey"),
                dns_servers=split_list(conf.get("dns") or DEFAULT_DNS_SERVERS),
                allowed_routes=split_list(conf.get("allowedIPs") or DEFAULT_ALLOWED_IPS),
                keepalive_seconds=int(conf.get("persistentKeepalive", DEFAULT_KEEPALIVE)),
                assigned_address=self.assigned_address,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ResponseFormatError(f"Incomplete serverConfig in response: {e}")


@dataclass(frozen=True)
class EmbeddedTextMaterial:
    raw_config: str
    assigned_address: str

    def value(self, key: str) -> Optional[str]:
        return parse_conf_value(self.raw_config, key)

    def server_private_key(self) -> Optional[str]:
        return self.value("PrivateKey")

    def to_issued_config(self) -> IssuedConfig:
        required = {}
        for key in ("PublicKey", "Endpoint", "PresharedKey"):
            value = self.value(key)
            if value is None:
                raise ResponseFormatError(f"clientConfig is missing {key}")
            required[key] = value

        keepalive = self.value("PersistentKeepalive")
        try:
            keepalive_seconds = int(keepalive) if keepalive else DEFAULT_KEEPALIVE
        except ValueError:
            keepalive_seconds = DEFAULT_KEEPALIVE

        return IssuedConfig(
            server_public_key=checked_key(required["PublicKey"], "clientConfig PublicKey"),
            endpoint=required["Endpoint"],
            preshared_key=checked_key(required["PresharedKey"], "clientConfig PresharedKey"),
            dns_servers=split_list(self.value("DNS") or DEFAULT_DNS_SERVERS),
            allowed_routes=split_list(self.value("AllowedIPs") or DEFAULT_ALLOWED_IPS),
            keepalive_seconds=keepalive_seconds,
            assigned_address=self.assigned_address,
        )


IssuedMaterial = Union[StructuredMaterial, EmbeddedTextMaterial]


def parse_conf_value(conf: str, key: str) -> Optional[str]:
    """
    Extract ``key`` from wg-quick text.

    e.g. parse_conf_value("[Peer]\\nPublicKey = abc\\n", "PublicKey") -> "abc"
    """
    match = re.search(rf"(?m)^[ \t]*{re.escape(key)}[ \t]*=[ \t]*(.+?)[ \t]*$", conf)
    return match.group(1) if match else None


def parse_registration_response(body: Dict[str, Any], mode: ProtocolMode) -> IssuedMaterial:
    """
    Parse a 201 registration body according to the configured mode.

    Raises:
        ResponseFormatError: The body lacks the peer info or the variant
            the mode expects
    """
    peer = body.get("peer")
    if not isinstance(peer, dict) or not peer.get("assignedIP"):
        raise ResponseFormatError("Response has no assigned address")
    assigned_address = peer["assignedIP"]

    if mode is ProtocolMode.STRUCTURED:
        server_config = body.get("serverConfig")
        if not isinstance(server_config, dict):
            raise ResponseFormatError("Expected a serverConfig object in the response")
        return StructuredMaterial(server_config, assigned_address)

    client_config = body.get("clientConfig")
    if not isinstance(client_config, str):
        raise ResponseFormatError("Expected a clientConfig text block in the response")
    return EmbeddedTextMaterial(client_config, assigned_address)
