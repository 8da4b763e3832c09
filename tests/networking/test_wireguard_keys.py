"""
Tests for WireGuard key primitives.

This module tests:
- X25519 keypair generation
- Strict base64 decoding to exactly 32 bytes
- Public key derivation
- Preshared key generation
"""

import base64
import os

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from sovereign_vpn.networking.wireguard_keys import (
    ENCODED_KEY_LENGTH,
    WireGuardKeyError,
    decode_key,
    encode_key,
    generate_keypair,
    generate_preshared_key,
    get_public_key_from_private,
)


class TestKeypairGeneration:
    """Test suite for WireGuard keypair generation."""

    def test_keypair_generation(self):
        """
        Given no existing keys
        When generating keypair
        Then should return base64 private and public keys of 44 characters
        """
        private_key, public_key = generate_keypair()

        assert len(private_key) == ENCODED_KEY_LENGTH
        assert len(public_key) == ENCODED_KEY_LENGTH
        assert private_key.endswith("=")
        assert public_key.endswith("=")

    def test_keypair_generation_uniqueness(self):
        """
        Given multiple keypair generations
        When generating keypairs
        Then each keypair should be unique
        """
        keypairs = [generate_keypair() for _ in range(3)]

        assert len({private for private, _ in keypairs}) == 3
        assert len({public for _, public in keypairs}) == 3

    def test_public_key_matches_cryptography(self):
        """
        Given a private key
        When deriving its public key
        Then should match what the cryptography library computes
        """
        private_key, public_key = generate_keypair()

        key_obj = X25519PrivateKey.from_private_bytes(base64.b64decode(private_key))
        expected = key_obj.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )

        assert base64.b64decode(public_key) == expected
        assert get_public_key_from_private(private_key) == public_key


class TestKeyDecoding:
    """Test suite for strict key decoding."""

    def test_round_trip(self):
        """
        Given 32 raw bytes encoded to 44 characters
        When decoding and re-encoding
        Then should return the original text
        """
        for _ in range(20):
            encoded = base64.b64encode(os.urandom(32)).decode("ascii")

            assert len(encoded) == 44
            assert encode_key(decode_key(encoded)) == encoded

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
    def test_rejects_other_lengths(self, length):
        """
        Given base64 of a length other than 32 bytes
        When decoding
        Then should raise WireGuardKeyError
        """
        encoded = base64.b64encode(bytes(length)).decode("ascii")

        with pytest.raises(WireGuardKeyError, match="Invalid key length"):
            decode_key(encoded)

    def test_rejects_non_base64(self):
        with pytest.raises(WireGuardKeyError, match="not valid base64"):
            decode_key("this is not base64 at all!!!!!!!!!!!!!!!!!!=")

    def test_rejects_non_string(self):
        with pytest.raises(WireGuardKeyError):
            decode_key(None)

    def test_encode_rejects_wrong_length(self):
        with pytest.raises(WireGuardKeyError):
            encode_key(b"short")

    def test_invalid_private_key(self):
        with pytest.raises(WireGuardKeyError):
            get_public_key_from_private("AAAA")


class TestCanonicalEncoding:
    """Test suite for rejecting alternate spellings of a key."""

    def test_accepts_generated_key(self):
        _, public_key = generate_keypair()

        assert len(decode_key(public_key)) == 32

    @pytest.mark.parametrize("last", ["B", "C", "D"])
    def test_rejects_nonzero_padding_bits(self, last):
        """
        Given 32 zero bytes spelled with non-zero unused trailing bits
        When decoding
        Then should raise even though the bytes match the canonical key
        """
        canonical = base64.b64encode(bytes(32)).decode("ascii")
        alias = canonical[:42] + last + "="

        assert base64.b64decode(alias) == bytes(32)
        with pytest.raises(WireGuardKeyError, match="not canonical"):
            decode_key(alias)

    @pytest.mark.parametrize("value", [None, "", "AAAA", 12345, "!" * 44])
    def test_rejects_invalid_values(self, value):
        with pytest.raises(WireGuardKeyError):
            decode_key(value)


class TestPresharedKey:
    """Test suite for preshared key generation."""

    def test_preshared_key_format(self):
        """
        Given a generated preshared key
        When decoding it
        Then should be 32 random bytes
        """
        psk = generate_preshared_key()

        assert len(decode_key(psk)) == 32
        assert generate_preshared_key() != psk
