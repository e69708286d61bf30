"""
Cryptographic primitives for the vault engine.

Key derivation turns a passphrase into a 256-bit key; the authenticated
cipher seals and opens the record payload with AES-256-GCM.
"""

import os
import logging
from dataclasses import dataclass
from typing import Set, Tuple, Union

from argon2 import Type
from argon2.exceptions import HashingError
from argon2.low_level import hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import config
from .errors import AuthenticationFailed, KeyDerivationError

logger = logging.getLogger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]


def wipe(data) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if isinstance(data, bytearray):
        for i in range(len(data)):
            data[i] = 0
    elif isinstance(data, memoryview) and not data.readonly:
        data[:] = b"\x00" * data.nbytes


class NonceReuse(ValueError):
    """Raised when a seal would reuse a nonce already used with this cipher"""
    pass


@dataclass(frozen=True)
class KdfParams:
    """Key derivation settings. Persisted in the vault header so a vault
    keeps opening after the defaults change."""
    algorithm: str = config.DEFAULT_KDF
    time_cost: int = config.ARGON2_TIME_COST
    memory_cost: int = config.ARGON2_MEMORY_COST
    parallelism: int = config.ARGON2_PARALLELISM
    iterations: int = config.PBKDF2_ITERATIONS


class KeyDerivation:
    """Derives symmetric vault keys from passphrases."""

    SALT_SIZE = config.SALT_SIZE
    KEY_SIZE = config.KEY_SIZE

    def __init__(self, params: KdfParams = None):
        self.params = params or KdfParams()
        self.backend = default_backend()

    def generate_salt(self) -> bytes:
        """Generate a cryptographically secure random salt."""
        return os.urandom(self.SALT_SIZE)

    def derive(self, passphrase: Union[str, BytesLike], salt: bytes,
               params: KdfParams = None) -> bytearray:
        """
        Derive an encryption key from a passphrase using Argon2id or PBKDF2.

        Args:
            passphrase: The master passphrase
            salt: Per-vault random salt
            params: Settings to use instead of this instance's defaults,
                normally the ones read back from a vault header

        Returns:
            32-byte key as a bytearray the caller must wipe

        Raises:
            KeyDerivationError: If the passphrase, salt or params are malformed
        """
        params = params or self.params
        if isinstance(passphrase, str):
            secret = passphrase.encode("utf-8")
        else:
            secret = bytes(passphrase)
        if not secret:
            raise KeyDerivationError("Passphrase must not be empty")
        if len(salt) < self.SALT_SIZE:
            raise KeyDerivationError(
                f"Salt must be at least {self.SALT_SIZE} bytes, got {len(salt)}")

        if params.algorithm == config.KDF_ARGON2ID:
            try:
                key = hash_secret_raw(
                    secret=secret,
                    salt=bytes(salt),
                    time_cost=params.time_cost,
                    memory_cost=params.memory_cost,
                    parallelism=params.parallelism,
                    hash_len=self.KEY_SIZE,
                    type=Type.ID
                )
            except (HashingError, ValueError) as e:
                raise KeyDerivationError(f"Invalid Argon2id parameters: {e}") from e
        elif params.algorithm == config.KDF_PBKDF2_SHA256:
            if params.iterations < config.PBKDF2_MIN_ITERATIONS:
                raise KeyDerivationError(
                    f"PBKDF2 needs at least {config.PBKDF2_MIN_ITERATIONS} iterations, "
                    f"got {params.iterations}")
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=self.KEY_SIZE,
                salt=bytes(salt),
                iterations=params.iterations,
                backend=self.backend
            )
            key = kdf.derive(secret)
        else:
            raise KeyDerivationError(f"Unsupported key derivation function: {params.algorithm!r}")

        logger.debug(f"Derived key with {params.algorithm}")
        return bytearray(key)


class AuthenticatedCipher:
    """
    AES-256-GCM sealing of vault payloads.

    An instance remembers every nonce it has sealed with, so one instance
    should be used per key.
    """

    KEY_SIZE = config.KEY_SIZE
    NONCE_SIZE = config.NONCE_SIZE
    TAG_SIZE = config.TAG_SIZE

    def __init__(self):
        self.backend = default_backend()
        self._sealed_nonces: Set[bytes] = set()

    def generate_nonce(self) -> bytes:
        """Generate a fresh random 96-bit nonce not yet used by this cipher."""
        while True:
            nonce = os.urandom(self.NONCE_SIZE)
            if nonce not in self._sealed_nonces:
                return nonce

    def remember(self, nonce: bytes) -> None:
        """Record a nonce already used with this key, e.g. the one read from disk."""
        self._sealed_nonces.add(bytes(nonce))

    def reset(self) -> None:
        """Forget used nonces. Only call after switching to a new key."""
        self._sealed_nonces.clear()

    def _check(self, key: BytesLike, nonce: bytes) -> None:
        if len(key) != self.KEY_SIZE:
            raise ValueError(f"Key must be {self.KEY_SIZE} bytes, got {len(key)}")
        if len(nonce) != self.NONCE_SIZE:
            raise ValueError(f"Nonce must be {self.NONCE_SIZE} bytes, got {len(nonce)}")

    def seal(self, key: BytesLike, nonce: bytes, plaintext: BytesLike,
             associated_data: bytes = b"") -> Tuple[bytes, bytes]:
        """
        Encrypt data using AES-256-GCM.

        Args:
            key: 32-byte encryption key
            nonce: 12-byte nonce, never used before with this key
            plaintext: Data to encrypt
            associated_data: Header bytes authenticated but not encrypted

        Returns:
            Tuple of (ciphertext, tag)

        Raises:
            NonceReuse: If this cipher already sealed with the nonce
        """
        self._check(key, nonce)
        nonce = bytes(nonce)
        if nonce in self._sealed_nonces:
            raise NonceReuse("Refusing to seal twice with the same nonce")
        self._sealed_nonces.add(nonce)

        cipher = Cipher(
            algorithms.AES(key),
            modes.GCM(nonce),
            backend=self.backend
        )
        encryptor = cipher.encryptor()
        if associated_data:
            encryptor.authenticate_additional_data(associated_data)
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()
        return ciphertext, encryptor.tag

    def open(self, key: BytesLike, nonce: bytes, ciphertext: bytes, tag: bytes,
             associated_data: bytes = b"") -> bytearray:
        """
        Decrypt data using AES-256-GCM.

        Nothing is returned unless the tag verifies; partially decrypted
        bytes are wiped before the failure is raised.

        Args:
            key: 32-byte encryption key
            nonce: Nonce used for encryption
            ciphertext: Encrypted data
            tag: Authentication tag
            associated_data: Header bytes passed to seal

        Returns:
            Decrypted plaintext as a bytearray the caller must wipe

        Raises:
            AuthenticationFailed: If the key, ciphertext, tag or header do not authenticate
        """
        self._check(key, nonce)
        if len(tag) != self.TAG_SIZE:
            raise AuthenticationFailed(f"Tag must be {self.TAG_SIZE} bytes, got {len(tag)}")

        cipher = Cipher(
            algorithms.AES(key),
            modes.GCM(bytes(nonce), bytes(tag)),
            backend=self.backend
        )
        decryptor = cipher.decryptor()
        if associated_data:
            decryptor.authenticate_additional_data(associated_data)
        plaintext = bytearray(decryptor.update(ciphertext))
        try:
            plaintext += decryptor.finalize()
        except InvalidTag as e:
            wipe(plaintext)
            raise AuthenticationFailed("Ciphertext failed authentication") from e
        return plaintext
