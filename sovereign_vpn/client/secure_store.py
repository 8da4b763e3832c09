"""
Encrypted local key/value storage for the device.

Holds the WireGuard identity and the material issued at registration.
Values are strings; the whole map is sealed with AES-256-GCM and written
atomically. The data key lives next to the data in a 0600 file, mirroring
how WireGuard itself keeps private keys on disk.

Security considerations:
- Key and data files are created owner read/write only (0600)
- Each write uses a fresh 96-bit nonce
- A tampered or foreign data file fails authentication and is reported
  as SecureStoreError instead of being silently discarded
"""

import json
import logging
import os
import secrets
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
KEY_FILE = "store.key"
DATA_FILE = "store.bin"
ASSOCIATED_DATA = b"sovereign-vpn-store-v1"


class SecureStoreError(Exception):
    """Raised when the store cannot be read, decrypted or written"""
    pass


class SecureStore(ABC):
    """String key/value scope that is encrypted at rest"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def put_many(self, values: Mapping[str, str]) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        """Wipe every entry in the scope"""
        ...

    def put(self, key: str, value: str) -> None:
        self.put_many({key: value})


class MemoryStore(SecureStore):
    """Process-local store; nothing touches disk"""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put_many(self, values: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(values)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


def _write_private_file(path: Path, content: bytes) -> None:
    """Write a file atomically with 0600 permissions."""
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".store_", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.chmod(temp_path, 0o600)
        os.replace(temp_path, path)
    except OSError:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class EncryptedFileStore(SecureStore):
    """
    AES-GCM sealed JSON map on disk

    Attributes:
        directory: Directory holding ``store.key`` and ``store.bin``
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        os.chmod(self.directory, 0o700)

        self._key_path = self.directory / KEY_FILE
        self._data_path = self.directory / DATA_FILE
        self._lock = threading.Lock()
        self._aead = AESGCM(self._load_or_create_key())

    def _load_or_create_key(self) -> bytes:
        if self._key_path.exists():
            key = self._key_path.read_bytes()
            if len(key) != 32:
                raise SecureStoreError(
                    f"Store key {self._key_path} is corrupt: expected 32 bytes, got {len(key)}"
                )
            return key

        key = AESGCM.generate_key(bit_length=256)
        _write_private_file(self._key_path, key)
        logger.info(f"Created store key at {self._key_path}")
        return key

    def _read(self) -> Dict[str, str]:
        if not self._data_path.exists():
            return {}

        blob = self._data_path.read_bytes()
        if len(blob) <= NONCE_SIZE:
            raise SecureStoreError(f"Store file {self._data_path} is truncated")

        nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext, ASSOCIATED_DATA)
        except InvalidTag:
            raise SecureStoreError(f"Store file {self._data_path} failed authentication")

        return json.loads(plaintext.decode("utf-8"))

    def _write(self, data: Dict[str, str]) -> None:
        nonce = secrets.token_bytes(NONCE_SIZE)
        plaintext = json.dumps(data, sort_keys=True).encode("utf-8")
        ciphertext = self._aead.encrypt(nonce, plaintext, ASSOCIATED_DATA)
        _write_private_file(self._data_path, nonce + ciphertext)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def put_many(self, values: Mapping[str, str]) -> None:
        with self._lock:
            data = self._read()
            data.update(values)
            self._write(data)

    def clear(self) -> None:
        with self._lock:
            if self._data_path.exists():
                self._data_path.unlink()
        logger.info(f"Cleared secure store at {self.directory}")
