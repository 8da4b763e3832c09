"""
Peer Registry

Authoritative in-memory record of public key -> overlay address ->
preshared key -> metadata. Records do not survive a restart.

Concurrency:
- One threading.Lock guards both the peer map and the address allocator.
  The duplicate check, the address allocation and the insert happen inside
  that single critical section.
- Listing copies the map under the same lock, so callers never observe a
  partially built record.
- Records are frozen dataclasses; callers always receive immutable values.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from sovereign_vpn.networking.wireguard_keys import (
    WireGuardKeyError,
    decode_key,
    generate_preshared_key,
)
from sovereign_vpn.services.address_allocator import AddressAllocator
from sovereign_vpn.services.errors import (
    DuplicatePeerError,
    InvalidInputError,
    PeerNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeerRecord:
    """
    A registered peer.

    Attributes:
        public_key: Client's WireGuard public key (base64), unique
        name: Trimmed display name
        assigned_ip: Overlay address in ``<ip>/32`` form
        preshared_key: Per-peer 32-byte shared secret (base64)
        created_at: ISO 8601 UTC timestamp
    """
    public_key: str
    name: str
    assigned_ip: str
    preshared_key: str
    created_at: str

    def summary(self) -> Dict[str, str]:
        """Public view of the record; never contains the preshared key."""
        return {
            "name": self.name,
            "publicKey": self.public_key,
            "assignedIP": self.assigned_ip,
            "createdAt": self.created_at,
        }


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def validate_registration(public_key: Any, display_name: Any) -> Tuple[str, str]:
    """
    Validate a registration request before anything is allocated.

    Args:
        public_key: Candidate base64 public key
        display_name: Candidate display name

    Returns:
        Tuple of (public_key, trimmed display name)

    Raises:
        InvalidInputError: If the name is empty after trimming or the key
            is not the canonical base64 of exactly 32 bytes
    """
    if not isinstance(display_name, str) or not display_name.strip():
        raise InvalidInputError("Peer name is required")

    if not isinstance(public_key, str) or not public_key:
        raise InvalidInputError("Client public key (base64) is required")

    try:
        decode_key(public_key)
    except WireGuardKeyError:
        raise InvalidInputError("Invalid public key: must be 32 bytes (Curve25519)")

    return public_key, display_name.strip()


class PeerRegistry:
    """
    Thread-safe peer store with address allocation

    Attributes:
        allocator: Address allocator, only touched under ``_lock``
        _peers: public_key -> PeerRecord
        _lock: Single mutual-exclusion domain for the map and allocator
    """

    def __init__(self, allocator: AddressAllocator):
        self.allocator = allocator
        self._peers: Dict[str, PeerRecord] = {}
        self._lock = threading.Lock()

    def register(self, public_key: str, display_name: str) -> PeerRecord:
        """
        Register a new peer.

        A duplicate public key is rejected, never replayed.

        Args:
            public_key: Client's WireGuard public key (base64)
            display_name: Human readable device name

        Returns:
            The stored PeerRecord

        Raises:
            InvalidInputError: If validation fails (nothing is allocated)
            DuplicatePeerError: If the public key is already registered
            AddressPoolExhaustedError: If the subnet is exhausted
        """
        public_key, name = validate_registration(public_key, display_name)

        with self._lock:
            existing = self._peers.get(public_key)
            if existing is not None:
                raise DuplicatePeerError(
                    public_key=public_key,
                    existing=existing.summary()
                )

            assigned_ip = self.allocator.allocate()
            record = PeerRecord(
                public_key=public_key,
                name=name,
                assigned_ip=assigned_ip,
                preshared_key=generate_preshared_key(),
                created_at=_utc_timestamp(),
            )
            self._peers[public_key] = record
            total = len(self._peers)

        logger.info(
            f"Registered peer '{name}' ({public_key[:16]}...) at {assigned_ip}. "
            f"Total peers: {total}"
        )
        return record

    def list(self) -> List[Dict[str, str]]:
        """
        Snapshot of all peers without secrets. Order is not part of the contract.
        """
        with self._lock:
            records = list(self._peers.values())
        return [record.summary() for record in records]

    def revoke(self, public_key: str) -> PeerRecord:
        """
        Remove a peer. Its address is not returned to the allocator.

        Args:
            public_key: Peer's WireGuard public key

        Returns:
            The removed PeerRecord

        Raises:
            PeerNotFoundError: If the key is not registered
        """
        with self._lock:
            record = self._peers.pop(public_key, None)
            remaining = len(self._peers)

        if record is None:
            logger.warning(f"Revoke requested for unknown peer {public_key[:16]}...")
            raise PeerNotFoundError(public_key)

        logger.info(
            f"Revoked peer '{record.name}' ({public_key[:16]}...). "
            f"Remaining peers: {remaining}"
        )
        return record

    def count(self) -> int:
        with self._lock:
            return len(self._peers)

    def pool_stats(self) -> Dict[str, int]:
        with self._lock:
            stats = self.allocator.stats()
            stats["activePeers"] = len(self._peers)
        return stats
