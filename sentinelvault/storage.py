"""
Persistent storage of the encrypted vault blob.

A vault is one opaque file per storage key. Saves go to a temporary
file in the same directory which is flushed, synced and then renamed
over the previous blob, so readers only ever see a complete blob.
"""

import os
import re
import struct
import hashlib
import logging
import tempfile
import threading
from dataclasses import dataclass
from typing import Optional

from . import config
from .crypto import KdfParams
from .errors import Busy, CorruptVault, VaultIOError
from .utils import fsync_directory, set_owner_only_permissions

logger = logging.getLogger(__name__)

_U32 = struct.Struct("<I")
_KDF_COSTS = struct.Struct("<IIII")
_MAX_FIELD_SIZE = 1024


def encode_header(format_version: int, kdf_params: KdfParams, salt: bytes) -> bytes:
    """
    Build the unencrypted blob header.

    The header is also the associated data of the AES-GCM seal, so any
    change to it makes the blob fail authentication.
    """
    algorithm = kdf_params.algorithm.encode("ascii")
    return b"".join([
        config.VAULT_MAGIC,
        _U32.pack(format_version),
        _U32.pack(len(algorithm)),
        algorithm,
        _KDF_COSTS.pack(kdf_params.time_cost, kdf_params.memory_cost,
                        kdf_params.parallelism, kdf_params.iterations),
        _U32.pack(len(salt)),
        bytes(salt),
    ])


class _Reader:
    """Bounds-checked cursor over a blob."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise CorruptVault(
                f"Vault blob truncated: needed {size} bytes at offset {self.offset}, "
                f"have {len(self.data) - self.offset}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def u32(self) -> int:
        return _U32.unpack(self.take(_U32.size))[0]

    def field(self, limit: Optional[int] = _MAX_FIELD_SIZE) -> bytes:
        size = self.u32()
        if limit is not None and size > limit:
            raise CorruptVault(f"Vault blob field of {size} bytes exceeds limit of {limit}")
        return self.take(size)


@dataclass(frozen=True)
class VaultBlob:
    """The complete at-rest state of a vault."""
    format_version: int
    kdf_params: KdfParams
    salt: bytes
    nonce: bytes
    ciphertext: bytes
    auth_tag: bytes

    def header_bytes(self) -> bytes:
        return encode_header(self.format_version, self.kdf_params, self.salt)

    def to_bytes(self) -> bytes:
        """Serialize as header, then length-prefixed nonce, tag and ciphertext."""
        return b"".join([
            self.header_bytes(),
            _U32.pack(len(self.nonce)),
            self.nonce,
            _U32.pack(len(self.auth_tag)),
            self.auth_tag,
            _U32.pack(len(self.ciphertext)),
            self.ciphertext,
        ])

    @classmethod
    def from_bytes(cls, data: bytes) -> "VaultBlob":
        """
        Parse a serialized blob.

        Raises:
            CorruptVault: If the bytes are not a complete blob of a known version
                or its key derivation costs are out of range
        """
        reader = _Reader(bytes(data))
        magic = reader.take(len(config.VAULT_MAGIC))
        if magic != config.VAULT_MAGIC:
            raise CorruptVault(f"Magic bytes mismatch. Expected {config.VAULT_MAGIC!r}, got {magic!r}")

        version = reader.u32()
        if version != config.VAULT_FORMAT_VERSION:
            raise CorruptVault(
                f"Unsupported vault format version {version}, expected {config.VAULT_FORMAT_VERSION}")

        try:
            algorithm = reader.field(limit=64).decode("ascii")
        except UnicodeDecodeError as e:
            raise CorruptVault("Key derivation algorithm name is not ASCII") from e
        time_cost, memory_cost, parallelism, iterations = _KDF_COSTS.unpack(reader.take(_KDF_COSTS.size))
        kdf_params = KdfParams(algorithm=algorithm, time_cost=time_cost, memory_cost=memory_cost,
                               parallelism=parallelism, iterations=iterations)

        salt = reader.field()
        nonce = reader.field()
        tag = reader.field()
        ciphertext = reader.field(limit=None)
        if reader.offset != len(reader.data):
            raise CorruptVault(f"Vault blob has {len(reader.data) - reader.offset} trailing bytes")

        if algorithm not in (config.KDF_ARGON2ID, config.KDF_PBKDF2_SHA256):
            raise CorruptVault(f"Unknown key derivation algorithm {algorithm!r}")
        # Costs are read before the tag can be checked, so bound them first
        for name, value, limit in (("time_cost", time_cost, config.ARGON2_MAX_TIME_COST),
                                   ("memory_cost", memory_cost, config.ARGON2_MAX_MEMORY_COST),
                                   ("parallelism", parallelism, config.ARGON2_MAX_PARALLELISM),
                                   ("iterations", iterations, config.PBKDF2_MAX_ITERATIONS)):
            if not 1 <= value <= limit:
                raise CorruptVault(f"Key derivation {name} {value} is outside 1..{limit}")
        if len(salt) < config.SALT_SIZE:
            raise CorruptVault(f"Salt is {len(salt)} bytes, expected at least {config.SALT_SIZE}")
        if len(nonce) != config.NONCE_SIZE or len(tag) != config.TAG_SIZE:
            raise CorruptVault(f"Unexpected nonce or tag size ({len(nonce)}, {len(tag)})")

        return cls(format_version=version, kdf_params=kdf_params, salt=salt,
                   nonce=nonce, ciphertext=ciphertext, auth_tag=tag)


class VaultStore:
    """Reads and atomically replaces the blob for one storage key."""

    def __init__(self, directory: str, storage_key: str = config.DEFAULT_STORAGE_KEY,
                 busy_policy: str = config.BUSY_POLICY_WAIT):
        """
        Initialize the store.

        Args:
            directory: Directory holding vault blobs
            storage_key: Application-chosen name of this vault
            busy_policy: "wait" to queue a concurrent save, "fail" to raise Busy
        """
        if not re.fullmatch(config.STORAGE_KEY_PATTERN, storage_key or ""):
            raise ValueError(f"Invalid storage key: {storage_key!r}")
        if busy_policy not in (config.BUSY_POLICY_WAIT, config.BUSY_POLICY_FAIL):
            raise ValueError(f"Unknown busy policy: {busy_policy!r}")
        self.directory = os.fspath(directory)
        self.storage_key = storage_key
        self.busy_policy = busy_policy
        self._write_lock = threading.Lock()

    @property
    def path(self) -> str:
        return os.path.join(self.directory, self.storage_key + config.VAULT_FILE_SUFFIX)

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read_bytes(self) -> Optional[bytes]:
        """Return the raw persisted blob, or None if no vault was saved yet."""
        try:
            with open(self.path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Error reading vault file {self.path}: {e}")
            raise VaultIOError(f"Cannot read vault file {self.path}: {e}") from e

    def load(self) -> Optional[VaultBlob]:
        """
        Load the persisted blob.

        Returns:
            The blob, or None on first run

        Raises:
            CorruptVault: If the file exists but is not a valid blob
            VaultIOError: If the file cannot be read
        """
        data = self.read_bytes()
        if data is None:
            return None
        return VaultBlob.from_bytes(data)

    def fingerprint(self) -> Optional[str]:
        """SHA-256 of the persisted bytes, used to notice a replaced blob."""
        data = self.read_bytes()
        if data is None:
            return None
        return hashlib.sha256(data).hexdigest()

    def save(self, blob: VaultBlob) -> None:
        """
        Atomically replace the persisted blob.

        Raises:
            Busy: If another save is in flight and the policy is "fail"
            VaultIOError: If the blob could not be written; the previous blob is kept
        """
        if self.busy_policy == config.BUSY_POLICY_FAIL:
            if not self._write_lock.acquire(blocking=False):
                raise Busy(f"A save to {self.storage_key!r} is already in progress")
        else:
            self._write_lock.acquire()
        try:
            self._write(blob.to_bytes())
        finally:
            self._write_lock.release()

    def _write(self, data: bytes) -> None:
        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{self.storage_key}.",
                                            suffix=config.VAULT_TEMP_SUFFIX,
                                            dir=self.directory)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Error saving vault file {self.path}: {e}", exc_info=True)
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise VaultIOError(f"Cannot save vault file {self.path}: {e}") from e

        # The new blob is in place from here on; later failures only weaken durability
        try:
            fsync_directory(self.directory)
            if not set_owner_only_permissions(self.path):
                logger.warning(f"Failed to set secure file permissions for vault: {self.path}")
        except OSError as e:
            logger.warning(f"Saved {self.path} but could not finish hardening it: {e}")
        logger.debug(f"Saved {len(data)} bytes to {self.path}")

    def delete(self) -> bool:
        """
        Remove the persisted blob.

        Returns:
            True if a blob was removed
        """
        with self._write_lock:
            try:
                os.remove(self.path)
            except FileNotFoundError:
                return False
            except OSError as e:
                raise VaultIOError(f"Cannot delete vault file {self.path}: {e}") from e
        logger.info(f"Deleted vault file {self.path}")
        return True
