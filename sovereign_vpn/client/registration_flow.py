"""
Device registration and tunnel control

Flow:
    no identity -> generate -> register -> registered

A 409 from the control plane means the public key is already taken. The
flow rotates the identity and tries once more; a second 409 is reported
as ConflictPersistedError. Any other rejection surfaces the server's
message verbatim.

Issued configuration is persisted in the same encrypted scope as the
identity under ``config.*`` keys, so rotating the identity drops it too.

Server-issued private keys: in ``embedded_text`` mode some deployments
return a ``PrivateKey`` generated by the server. It replaces the local
identity only when ``accept_server_private_key`` is enabled; otherwise it
is ignored and the locally generated key stays authoritative.
"""

import logging
from typing import Optional

from sovereign_vpn.client.api_client import Conflict, ControlPlaneClient, Rejected
from sovereign_vpn.client.errors import (
    ConflictPersistedError,
    NotRegisteredError,
    RegistrationFailedError,
    ResponseFormatError,
)
from sovereign_vpn.client.identity import KeyIdentity
from sovereign_vpn.client.issued_material import (
    EmbeddedTextMaterial,
    IssuedConfig,
    ProtocolMode,
    parse_registration_response,
)
from sovereign_vpn.client.network_monitor import NetworkMonitor, get_network_monitor
from sovereign_vpn.client.permission import VpnPermissionGate
from sovereign_vpn.client.secure_store import EncryptedFileStore, SecureStore
from sovereign_vpn.client.tunnel import (
    InterfaceSection,
    PeerSection,
    TunnelDescriptor,
    TunnelEngine,
    TunnelState,
    WgQuickTunnelEngine,
)
from sovereign_vpn.config import ClientSettings, split_list
from sovereign_vpn.networking.wireguard_keys import WireGuardKeyError

logger = logging.getLogger(__name__)

MAX_REGISTRATION_ATTEMPTS = 2

KEY_SERVER_PUBLIC_KEY = "config.server_public_key"
KEY_ENDPOINT = "config.endpoint"
KEY_PRESHARED_KEY = "config.preshared_key"
KEY_DNS = "config.dns"
KEY_ALLOWED_IPS = "config.allowed_ips"
KEY_KEEPALIVE = "config.keepalive"
KEY_ASSIGNED_ADDRESS = "config.assigned_address"


class ClientRegistrationFlow:
    """
    Registers this device and drives its tunnel

    Attributes:
        api: Control plane client
        store: Encrypted scope holding identity and issued configuration
        identity: Device keypair backed by ``store``
        mode: Which registration response variant to parse
        engine: Tunnel engine receiving descriptors
        tunnel_name: Name handed to the engine
        permission_gate: Optional gate awaited before bringing the tunnel up
        monitor: Statistics poller started on UP and stopped on DOWN
    """

    def __init__(
        self,
        api: ControlPlaneClient,
        store: SecureStore,
        mode: ProtocolMode = ProtocolMode.STRUCTURED,
        accept_server_private_key: bool = False,
        engine: Optional[TunnelEngine] = None,
        tunnel_name: str = "sovereign0",
        permission_gate: Optional[VpnPermissionGate] = None,
        monitor: Optional[NetworkMonitor] = None,
    ):
        self.api = api
        self.store = store
        self.identity = KeyIdentity(store)
        self.mode = ProtocolMode(mode)
        self.accept_server_private_key = accept_server_private_key
        self.engine = engine or WgQuickTunnelEngine()
        self.tunnel_name = tunnel_name
        self.permission_gate = permission_gate
        self.monitor = monitor or get_network_monitor()

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        engine: Optional[TunnelEngine] = None,
        permission_gate: Optional[VpnPermissionGate] = None,
    ) -> "ClientRegistrationFlow":
        return cls(
            api=ControlPlaneClient(settings.api_base_url, timeout=settings.request_timeout),
            store=EncryptedFileStore(settings.state_dir),
            mode=ProtocolMode(settings.protocol_mode),
            accept_server_private_key=settings.accept_server_private_key,
            engine=engine,
            tunnel_name=settings.tunnel_name,
            permission_gate=permission_gate,
        )

    async def close(self):
        await self.api.close()

    async def register_device(self, name: str) -> IssuedConfig:
        """
        Register this device, rotating the identity once on conflict.

        Args:
            name: Display name sent with the public key

        Returns:
            The issued configuration, already persisted

        Raises:
            ConflictPersistedError: Second consecutive 409
            RegistrationFailedError: Any other rejection
            TransportFailureError: Control plane unreachable
            ResponseFormatError: Response lacks the configured variant or
                carries a malformed key
        """
        conflict: Optional[Conflict] = None

        for attempt in range(1, MAX_REGISTRATION_ATTEMPTS + 1):
            public_key = self.identity.ensure()
            result = await self.api.register_peer(name, public_key)

            if isinstance(result, Conflict):
                conflict = result
                logger.warning(
                    f"Registration attempt {attempt} conflicted for {public_key[:16]}...: "
                    f"{result.message}"
                )
                if attempt < MAX_REGISTRATION_ATTEMPTS:
                    self.identity.clear()
                continue

            if isinstance(result, Rejected):
                logger.warning(f"Registration rejected ({result.status_code}): {result.message}")
                raise RegistrationFailedError(result.message, result.status_code)

            issued = self._persist(result.body)
            logger.info(f"Registered device '{name}' as {issued.assigned_address}")
            return issued

        raise ConflictPersistedError(conflict.message)

    def _persist(self, body: dict) -> IssuedConfig:
        material = parse_registration_response(body, self.mode)
        issued = material.to_issued_config()

        if isinstance(material, EmbeddedTextMaterial) and self.accept_server_private_key:
            server_private_key = material.server_private_key()
            if server_private_key:
                try:
                    self.identity.adopt_private_key(server_private_key)
                except WireGuardKeyError as e:
                    raise ResponseFormatError(f"clientConfig PrivateKey is malformed: {e}")

        self.store.put_many({
            KEY_SERVER_PUBLIC_KEY: issued.server_public_key,
            KEY_ENDPOINT: issued.endpoint,
            KEY_PRESHARED_KEY: issued.preshared_key,
            KEY_DNS: ", ".join(issued.dns_servers),
            KEY_ALLOWED_IPS: ", ".join(issued.allowed_routes),
            KEY_KEEPALIVE: str(issued.keepalive_seconds),
            KEY_ASSIGNED_ADDRESS: issued.assigned_address,
        })
        return issued

    def load_issued_config(self) -> Optional[IssuedConfig]:
        """Persisted configuration, or None if any required field is missing."""
        server_public_key = self.store.get(KEY_SERVER_PUBLIC_KEY)
        endpoint = self.store.get(KEY_ENDPOINT)
        preshared_key = self.store.get(KEY_PRESHARED_KEY)
        assigned_address = self.store.get(KEY_ASSIGNED_ADDRESS)
        if not all((server_public_key, endpoint, preshared_key, assigned_address)):
            return None

        return IssuedConfig(
            server_public_key=server_public_key,
            endpoint=endpoint,
            preshared_key=preshared_key,
            dns_servers=split_list(self.store.get(KEY_DNS) or ""),
            allowed_routes=split_list(self.store.get(KEY_ALLOWED_IPS) or ""),
            keepalive_seconds=int(self.store.get(KEY_KEEPALIVE) or 0),
            assigned_address=assigned_address,
        )

    def is_registered(self) -> bool:
        return self.identity.has_keypair() and self.store.get(KEY_ASSIGNED_ADDRESS) is not None

    def build_tunnel_descriptor(self) -> Optional[TunnelDescriptor]:
        private_key = self.identity.current_private_key()
        issued = self.load_issued_config()
        if private_key is None or issued is None:
            return None

        return TunnelDescriptor(
            interface=InterfaceSection(
                private_key=private_key,
                address=issued.assigned_address,
                dns_servers=issued.dns_servers,
            ),
            peer=PeerSection(
                public_key=issued.server_public_key,
                preshared_key=issued.preshared_key,
                endpoint=issued.endpoint,
                allowed_ips=issued.allowed_routes,
                persistent_keepalive=issued.keepalive_seconds,
            ),
        )

    async def toggle_tunnel(self) -> TunnelState:
        """
        Flip the tunnel between UP and DOWN.

        Returns:
            The resulting state

        Raises:
            NotRegisteredError: No complete configuration is stored
            VpnPermissionDeniedError: The user declined the prompt (UP only)
            TunnelEngineError: The engine failed to change state
        """
        descriptor = self.build_tunnel_descriptor()
        if descriptor is None:
            raise NotRegisteredError()

        # only bringing the tunnel up needs the user's consent
        if self.permission_gate is not None:
            current = await self.engine.get_state(self.tunnel_name)
            if current is not TunnelState.UP:
                await self.permission_gate.request()

        state = await self.engine.set_state(self.tunnel_name, TunnelState.TOGGLE, descriptor)

        if state is TunnelState.UP:
            await self.monitor.start(self.engine, self.tunnel_name)
        else:
            await self.monitor.stop()

        return state
