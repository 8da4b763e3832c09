"""
Overlay Address Allocator

Hands out host addresses of the overlay subnet in strictly increasing
order. The first host address belongs to the endpoint's own interface, so
allocation starts at the second one (``.2`` in a /24).

Addresses are never reclaimed: a revoked peer's address stays burned for
the lifetime of the process, so a stale route on the endpoint can never
collide with a newly registered peer. A /24 therefore exhausts after 253
registrations.

The allocator holds no lock of its own. It is owned by PeerRegistry and
only called inside the registry's critical section, so the
check-allocate-insert sequence stays a single atomic step.
"""

import ipaddress
import logging
from typing import Dict

from sovereign_vpn.services.errors import AddressPoolExhaustedError

logger = logging.getLogger(__name__)


class AddressAllocator:
    """
    Monotonic host address counter over an IPv4 subnet

    Attributes:
        network: IPv4Network the addresses are drawn from
        endpoint_address: Address reserved for the endpoint (first host)
        _next_offset: Offset from the network address of the next address
    """

    def __init__(self, subnet: str):
        """
        Initialize allocator

        Args:
            subnet: Network CIDR (e.g., "10.66.66.0/24")

        Raises:
            ValueError: If the CIDR is invalid or too small to hold a peer
        """
        try:
            self.network = ipaddress.IPv4Network(subnet, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid subnet CIDR: {e}")

        # network address, endpoint, at least one peer, broadcast
        if self.network.num_addresses < 4:
            raise ValueError(f"Subnet {subnet} is too small for any peer")

        self.endpoint_address = self.network.network_address + 1
        self._next_offset = 2
        self._last_offset = self.network.num_addresses - 2

        logger.info(
            f"Initialized address allocator: subnet={self.network}, "
            f"endpoint={self.endpoint_address}, capacity={self.capacity}"
        )

    @property
    def capacity(self) -> int:
        """Total number of peer addresses the subnet can ever issue"""
        return self._last_offset - 1

    @property
    def issued_count(self) -> int:
        return self._next_offset - 2

    def remaining(self) -> int:
        return self.capacity - self.issued_count

    def allocate(self) -> str:
        """
        Issue the next host address.

        Returns:
            Address in ``<ip>/32`` form

        Raises:
            AddressPoolExhaustedError: If the subnet has no unissued host left
        """
        if self._next_offset > self._last_offset:
            raise AddressPoolExhaustedError(
                subnet=str(self.network),
                issued_count=self.issued_count
            )

        address = self.network.network_address + self._next_offset
        self._next_offset += 1

        logger.debug(f"Allocated overlay address {address}")
        return f"{address}/32"

    def stats(self) -> Dict[str, int]:
        return {
            "totalAddresses": self.capacity,
            "issuedAddresses": self.issued_count,
            "remainingAddresses": self.remaining(),
        }
