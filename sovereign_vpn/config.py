"""
Runtime configuration

Settings are read from environment variables. Each settings object is a
frozen dataclass built by ``from_env()``; explicit keyword arguments
override the environment, which keeps tests independent of the process
environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

SERVICE_NAME = "sovereign-vpn-control-plane"

DEFAULT_SERVER_PUBLIC_KEY = "G1ReQCSgRG/MdfF5/SMrcnU+lKQMlwkr9aIA7/ZK5WI="
DEFAULT_SERVER_ENDPOINT = "vpn.example.com:51820"
DEFAULT_SUBNET = "10.66.66.0/24"
DEFAULT_DNS_SERVERS = "1.1.1.1, 1.0.0.1"
DEFAULT_ALLOWED_IPS = "0.0.0.0/0, ::/0"
DEFAULT_KEEPALIVE = 25


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def split_list(value: str) -> List[str]:
    """Split a comma separated setting into trimmed, non-empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class RemoteSettings:
    """
    Credentials for the privileged channel to the live WireGuard endpoint.

    Attributes:
        host: SSH host of the endpoint; None disables reconciliation
        user: Remote login user
        port: SSH port
        key_path: Optional identity file passed to ``ssh -i``
        use_sudo: Prefix remote scripts with ``sudo -n``
        timeout: Connect and command timeout in seconds
    """
    host: Optional[str] = None
    user: str = "root"
    port: int = 22
    key_path: Optional[str] = None
    use_sudo: bool = False
    timeout: float = 15.0

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    @classmethod
    def from_env(cls) -> "RemoteSettings":
        return cls(
            host=os.getenv("WG_SSH_HOST") or None,
            user=os.getenv("WG_SSH_USER", "root"),
            port=int(os.getenv("WG_SSH_PORT", "22")),
            key_path=os.getenv("WG_SSH_KEY_PATH") or None,
            use_sudo=_env_flag("WG_SSH_USE_SUDO"),
            timeout=float(os.getenv("WG_SSH_TIMEOUT", "15")),
        )


@dataclass(frozen=True)
class ServerSettings:
    """
    Control plane settings handed to every provisioned client.

    Attributes:
        server_public_key: Endpoint's WireGuard public key (base64)
        server_endpoint: Endpoint address clients dial (host:port)
        subnet: Overlay network CIDR; the first host is the endpoint itself
        dns_servers: DNS servers pushed to clients
        client_allowed_ips: Routes clients send through the tunnel
        persistent_keepalive: Keepalive interval in seconds
        interface: WireGuard interface name on the endpoint
        wan_interface: Egress interface used for the masquerade rule
        remote: Credentials for live reconciliation
    """
    server_public_key: str = DEFAULT_SERVER_PUBLIC_KEY
    server_endpoint: str = DEFAULT_SERVER_ENDPOINT
    subnet: str = DEFAULT_SUBNET
    dns_servers: str = DEFAULT_DNS_SERVERS
    client_allowed_ips: str = DEFAULT_ALLOWED_IPS
    persistent_keepalive: int = DEFAULT_KEEPALIVE
    interface: str = "wg0"
    wan_interface: str = "eth0"
    remote: RemoteSettings = RemoteSettings()

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(
            server_public_key=os.getenv("SERVER_PUBLIC_KEY", DEFAULT_SERVER_PUBLIC_KEY),
            server_endpoint=os.getenv("SERVER_ENDPOINT", DEFAULT_SERVER_ENDPOINT),
            subnet=os.getenv("VPN_SUBNET", DEFAULT_SUBNET),
            dns_servers=os.getenv("DNS_SERVERS", DEFAULT_DNS_SERVERS),
            client_allowed_ips=os.getenv("CLIENT_ALLOWED_IPS", DEFAULT_ALLOWED_IPS),
            persistent_keepalive=int(
                os.getenv("PERSISTENT_KEEPALIVE", str(DEFAULT_KEEPALIVE))
            ),
            interface=os.getenv("WG_INTERFACE", "wg0"),
            wan_interface=os.getenv("WAN_INTERFACE", "eth0"),
            remote=RemoteSettings.from_env(),
        )


@dataclass(frozen=True)
class ClientSettings:
    """
    Device-side settings.

    Attributes:
        api_base_url: Control plane base URL
        protocol_mode: ``structured`` or ``embedded_text``; decides which
            registration response variant the client parses
        accept_server_private_key: In ``embedded_text`` mode, replace the
            local private key with one issued by the server
        state_dir: Directory holding the encrypted store and its key
        tunnel_name: Local tunnel name handed to the tunnel engine
        request_timeout: HTTP timeout in seconds
    """
    api_base_url: str = "http://127.0.0.1:8080"
    protocol_mode: str = "structured"
    accept_server_private_key: bool = False
    state_dir: Path = Path.home() / ".sovereign-vpn"
    tunnel_name: str = "sovereign0"
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ClientSettings":
        state_dir = os.getenv("VPN_STATE_DIR")
        return cls(
            api_base_url=os.getenv("VPN_API_BASE_URL", "http://127.0.0.1:8080"),
            protocol_mode=os.getenv("VPN_PROTOCOL_MODE", "structured"),
            accept_server_private_key=_env_flag("VPN_ACCEPT_SERVER_PRIVATE_KEY"),
            state_dir=Path(state_dir).expanduser() if state_dir else Path.home() / ".sovereign-vpn",
            tunnel_name=os.getenv("VPN_TUNNEL_NAME", "sovereign0"),
        )
