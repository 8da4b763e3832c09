"""
Device identity

Generates the device's WireGuard keypair locally and keeps it in the
secure store. Only the public key is ever handed to code that talks to
the control plane; the private key is read solely when building the local
tunnel descriptor.
"""

import logging
from typing import Optional

from sovereign_vpn.client.secure_store import SecureStore
from sovereign_vpn.networking.wireguard_keys import (
    generate_keypair,
    get_public_key_from_private,
)

logger = logging.getLogger(__name__)

KEY_PRIVATE = "identity.private_key"
KEY_PUBLIC = "identity.public_key"


class KeyIdentity:
    """
    Store-backed X25519 identity

    Attributes:
        store: Encrypted scope shared with the issued configuration
    """

    def __init__(self, store: SecureStore):
        self.store = store

    def generate(self) -> str:
        """
        Generate a fresh keypair, replacing any stored identity.

        Returns:
            The public key (base64)
        """
        private_key, public_key = generate_keypair()
        self.store.put_many({KEY_PRIVATE: private_key, KEY_PUBLIC: public_key})
        logger.info(f"Generated device identity {public_key[:16]}...")
        return public_key

    def current_public_key(self) -> Optional[str]:
        return self.store.get(KEY_PUBLIC)

    def current_private_key(self) -> Optional[str]:
        return self.store.get(KEY_PRIVATE)

    def has_keypair(self) -> bool:
        return self.current_private_key() is not None

    def ensure(self) -> str:
        """Return the stored public key, generating an identity if absent."""
        public_key = self.current_public_key()
        if public_key is None or not self.has_keypair():
            return self.generate()
        return public_key

    def adopt_private_key(self, private_key: str) -> str:
        """
        Replace the local identity with a server-issued private key.

        Only used by deployments where the server generates client keys.

        Raises:
            WireGuardKeyError: If the key is malformed
        """
        public_key = get_public_key_from_private(private_key)
        self.store.put_many({KEY_PRIVATE: private_key, KEY_PUBLIC: public_key})
        logger.warning(f"Adopted server-issued identity {public_key[:16]}...")
        return public_key

    def clear(self) -> None:
        """
        Wipe the identity. The scope is cleared wholesale, so issued
        configuration tied to the old key is dropped with it.
        """
        self.store.clear()
        logger.info("Cleared device identity")
