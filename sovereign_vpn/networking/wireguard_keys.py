"""
WireGuard key primitives.

This module provides functionality for:
- Generating X25519 keypairs in WireGuard's base64 format
- Deriving a public key from a private key
- Strict decoding of 32-byte keys (canonical base64 only)
- Generating random preshared keys

WireGuard uses Curve25519 for key exchange. Keys travel as standard
base64 of exactly 32 raw bytes, which is always 44 characters long.
"""

import base64
import binascii
import secrets
from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

KEY_LENGTH = 32
ENCODED_KEY_LENGTH = 44


class WireGuardKeyError(Exception):
    """Raised when a key is malformed or cannot be processed."""
    pass


def decode_key(encoded: str) -> bytes:
    """
    Decode a base64 WireGuard key, insisting on exactly 32 raw bytes.

    Only the canonical spelling is accepted: the 44-character text must be
    exactly what encoding the decoded bytes produces. Base64 whose unused
    trailing bits are set (``...AAB=`` for ``...AAA=``) names the same key
    and is rejected.

    Args:
        encoded: Standard base64 text

    Returns:
        bytes: The 32 raw key bytes

    Raises:
        WireGuardKeyError: If the text is not valid base64, does not
            decode to 32 bytes, or is not the canonical encoding
    """
    if not isinstance(encoded, str):
        raise WireGuardKeyError("Key must be a base64 string")

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise WireGuardKeyError(f"Key is not valid base64: {e}")

    if len(raw) != KEY_LENGTH:
        raise WireGuardKeyError(
            f"Invalid key length: expected {KEY_LENGTH} bytes, got {len(raw)}"
        )

    if len(encoded) != ENCODED_KEY_LENGTH or encode_key(raw) != encoded:
        raise WireGuardKeyError("Key is not canonical base64")

    return raw


def encode_key(raw: bytes) -> str:
    """Encode 32 raw key bytes to WireGuard base64."""
    if len(raw) != KEY_LENGTH:
        raise WireGuardKeyError(
            f"Invalid key length: expected {KEY_LENGTH} bytes, got {len(raw)}"
        )
    return base64.b64encode(raw).decode("ascii")


def generate_keypair() -> Tuple[str, str]:
    """
    Generate a new WireGuard keypair using X25519.

    Returns:
        Tuple[str, str]: (private_key, public_key), both base64, 44 chars

    Example:
        >>> private_key, public_key = generate_keypair()
        >>> len(public_key)
        44
    """
    private_key_obj = X25519PrivateKey.generate()

    private_key_bytes = private_key_obj.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption()
    )
    public_key_bytes = private_key_obj.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )

    return encode_key(private_key_bytes), encode_key(public_key_bytes)


def get_public_key_from_private(private_key: str) -> str:
    """
    Derive the public key from a private key.

    Args:
        private_key: Base64-encoded X25519 private key

    Returns:
        str: Base64-encoded X25519 public key

    Raises:
        WireGuardKeyError: If the private key is invalid
    """
    raw = decode_key(private_key)

    try:
        private_key_obj = X25519PrivateKey.from_private_bytes(raw)
    except ValueError as e:
        raise WireGuardKeyError(f"Invalid private key: {e}")

    public_key_bytes = private_key_obj.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
    return encode_key(public_key_bytes)


def generate_preshared_key() -> str:
    """
    Generate a random 32-byte preshared key.

    Returns:
        str: Base64-encoded key, equivalent to ``wg genpsk``
    """
    return encode_key(secrets.token_bytes(KEY_LENGTH))
