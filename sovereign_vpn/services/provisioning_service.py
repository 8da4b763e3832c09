"""
Peer Provisioning Service

Main service layer for the zero-trust provisioning workflow. The client
generates its own keypair and sends only the public key; the service never
sees a client private key.

Workflow (register):
1. Validate name and public key (no side effects on failure)
2. Allocate overlay address and preshared key, store record (registry lock)
3. Reconcile onto the live endpoint, after the lock is released
4. Return everything the client needs to build its own tunnel config

Reconciliation is best-effort: its result is reported as a flag next to a
registration or revocation that has already succeeded.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sovereign_vpn.config import SERVICE_NAME, ServerSettings
from sovereign_vpn.services.address_allocator import AddressAllocator
from sovereign_vpn.services.peer_registry import PeerRecord, PeerRegistry
from sovereign_vpn.services.reconciliation_channel import (
    ReconciliationChannel,
    ReconciliationResult,
)

logger = logging.getLogger(__name__)

PENDING_ENDPOINT_NOTICE = "Control-plane record created, live endpoint not yet updated"


def render_server_peer_block(record: PeerRecord) -> str:
    """
    ``[Peer]`` block an operator can append to the endpoint's config.
    """
    ip = record.assigned_ip.split("/")[0]
    return (
        f"\n[Peer]\n# {record.name}\n"
        f"PublicKey = {record.public_key}\n"
        f"PresharedKey = {record.preshared_key}\n"
        f"AllowedIPs = {ip}/32\n"
    )


class ProvisioningService:
    """
    Orchestrates registry and reconciliation for the HTTP surface

    Attributes:
        settings: Control plane settings returned to clients
        registry: Authoritative peer store
        reconciler: Channel to the live endpoint
    """

    def __init__(
        self,
        settings: ServerSettings,
        registry: Optional[PeerRegistry] = None,
        reconciler: Optional[ReconciliationChannel] = None,
    ):
        self.settings = settings
        self.registry = registry or PeerRegistry(AddressAllocator(settings.subnet))
        self.reconciler = reconciler or ReconciliationChannel(settings)

        logger.info(
            f"Initialized provisioning service: subnet={settings.subnet}, "
            f"endpoint={settings.server_endpoint}, "
            f"reconciliation={'on' if self.reconciler.enabled else 'off'}"
        )

    def server_config(self, record: PeerRecord) -> Dict[str, Any]:
        return {
            "serverPublicKey": self.settings.server_public_key,
            "endpoint": self.settings.server_endpoint,
            "presharedKey": record.preshared_key,
            "dns": self.settings.dns_servers,
            "allowedIPs": self.settings.client_allowed_ips,
            "persistentKeepalive": self.settings.persistent_keepalive,
        }

    async def register(self, name: Any, public_key: Any) -> Dict[str, Any]:
        """
        Register a device and issue its tunnel material.

        Args:
            name: Device display name
            public_key: Client-generated WireGuard public key (base64)

        Returns:
            Registration response body

        Raises:
            InvalidInputError: Malformed name or key
            DuplicatePeerError: Public key already registered
            AddressPoolExhaustedError: No overlay address left
        """
        record = self.registry.register(public_key, name)

        reconciliation = await self.reconciler.apply_peer(
            public_key=record.public_key,
            preshared_key=record.preshared_key,
            allowed_address=record.assigned_ip,
        )

        response = {
            "message": f'Peer "{record.name}" registered',
            "peer": {
                "name": record.name,
                "assignedIP": record.assigned_ip,
                "createdAt": record.created_at,
            },
            "serverConfig": self.server_config(record),
            "serverPeerBlock": render_server_peer_block(record),
            "serverApplied": reconciliation.ok,
        }
        self._attach_failure(response, reconciliation)

        if not reconciliation.ok:
            response["notice"] = PENDING_ENDPOINT_NOTICE
            logger.warning(
                f"Peer '{record.name}' registered; live endpoint not yet updated"
            )
        return response

    def list_peers(self) -> Dict[str, Any]:
        peers = self.registry.list()
        return {"count": len(peers), "peers": peers}

    async def revoke(self, public_key: str) -> Dict[str, Any]:
        """
        Revoke a peer and remove it from the live endpoint.

        Raises:
            PeerNotFoundError: If the key was never registered or already revoked
        """
        record = self.registry.revoke(public_key)

        response: Dict[str, Any] = {
            "message": f'Peer "{record.name}" revoked',
            "removedPeer": {
                "name": record.name,
                "publicKey": record.public_key,
                "assignedIP": record.assigned_ip,
            },
        }

        if not self.reconciler.enabled:
            response["serverAction"] = (
                f"Run on server: {self.reconciler.manual_remove_command(public_key)}"
            )
            return response

        reconciliation = await self.reconciler.remove_peer(public_key)
        response["serverRemoved"] = reconciliation.ok
        self._attach_failure(response, reconciliation)
        return response

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "activePeers": self.registry.count(),
            "reconciliationEnabled": self.reconciler.enabled,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    def pool_stats(self) -> Dict[str, int]:
        return self.registry.pool_stats()

    @staticmethod
    def _attach_failure(response: Dict[str, Any], result: ReconciliationResult) -> None:
        if result.failure is not None:
            response["serverError"] = {
                "reason": result.failure.reason.value,
                "message": result.failure.message,
            }
