"""
Overlay Address Allocator Tests

Tests for monotonic host address allocation within the overlay subnet.
"""

import ipaddress

import pytest

from sovereign_vpn.services.address_allocator import AddressAllocator
from sovereign_vpn.services.errors import AddressPoolExhaustedError


class TestAddressAllocator:
    """Test address allocation order and bounds"""

    def test_first_address_skips_endpoint(self, test_subnet):
        """
        GIVEN a fresh allocator for 10.66.66.0/24
        WHEN allocating the first address
        THEN should return .2/32, leaving .1 for the endpoint
        """
        allocator = AddressAllocator(test_subnet)

        assert str(allocator.endpoint_address) == "10.66.66.1"
        assert allocator.allocate() == "10.66.66.2/32"

    def test_addresses_strictly_increase(self, test_subnet):
        """
        GIVEN a fresh allocator
        WHEN allocating many addresses
        THEN each address should be greater than every previous one
        """
        allocator = AddressAllocator(test_subnet)

        issued = [
            ipaddress.IPv4Interface(allocator.allocate()).ip
            for _ in range(50)
        ]

        assert issued == sorted(issued)
        assert len(set(issued)) == 50

    def test_capacity_for_slash_24(self, test_subnet):
        """
        GIVEN a /24 subnet
        WHEN reading capacity
        THEN should be 253 (excluding network, endpoint and broadcast)
        """
        allocator = AddressAllocator(test_subnet)

        assert allocator.capacity == 253
        assert allocator.remaining() == 253

    def test_exhaustion_raises(self):
        """
        GIVEN a /29 subnet (5 peer addresses)
        WHEN allocating beyond capacity
        THEN should raise AddressPoolExhaustedError after the last host
        """
        allocator = AddressAllocator("10.0.0.0/29")

        issued = [allocator.allocate() for _ in range(5)]

        assert issued[0] == "10.0.0.2/32"
        assert issued[-1] == "10.0.0.6/32"
        with pytest.raises(AddressPoolExhaustedError):
            allocator.allocate()

    def test_stats(self, test_subnet):
        """
        GIVEN an allocator with two issued addresses
        WHEN reading stats
        THEN should report total, issued and remaining counts
        """
        allocator = AddressAllocator(test_subnet)
        allocator.allocate()
        allocator.allocate()

        assert allocator.stats() == {
            "totalAddresses": 253,
            "issuedAddresses": 2,
            "remainingAddresses": 251,
        }

    def test_invalid_subnet(self):
        """
        GIVEN a malformed CIDR
        WHEN creating an allocator
        THEN should raise ValueError
        """
        with pytest.raises(ValueError, match="Invalid subnet CIDR"):
            AddressAllocator("not-a-subnet")

    def test_subnet_too_small(self):
        """
        GIVEN a /31 subnet
        WHEN creating an allocator
        THEN should raise ValueError
        """
        with pytest.raises(ValueError, match="too small"):
            AddressAllocator("10.0.0.0/31")
