"""
Provisioning exceptions

Shared by the allocator, the registry and the provisioning service.
Endpoints map each class to one HTTP status.
"""

from typing import Any, Dict, Optional


class ProvisioningError(Exception):
    """Base exception for provisioning errors"""
    pass


class InvalidInputError(ProvisioningError):
    """Raised when the display name or public key is malformed"""
    pass


class DuplicatePeerError(ProvisioningError):
    """Raised when a public key is already registered"""

    def __init__(self, public_key: str, existing: Optional[Dict[str, Any]] = None):
        self.public_key = public_key
        self.existing = existing or {}
        super().__init__("Peer with this public key already exists")


class PeerNotFoundError(ProvisioningError):
    """Raised when revoking a public key that is not registered"""

    def __init__(self, public_key: str):
        self.public_key = public_key
        super().__init__("Peer not found")


class AddressPoolExhaustedError(ProvisioningError):
    """Raised when every host address of the overlay subnet has been issued"""

    def __init__(self, subnet: str, issued_count: int):
        self.subnet = subnet
        self.issued_count = issued_count
        super().__init__(
            f"Address pool exhausted: {issued_count} addresses issued "
            f"from subnet {subnet}"
        )
