"""
SentinelVault
Copyright (c) 2025

Local encrypted vault engine for the CyberGuardian and Neo Sentinel apps.

THREAT MODEL:
Secrets live only on the device, inside one AES-256-GCM sealed blob per
vault whose key is derived from the user's passphrase with Argon2id. A
lost passphrase cannot be recovered. Key material is wiped from memory
on lock, but Python cannot guarantee every copy of a secret is erased.
"""

from .codec import RecordCodec, SecretRecord
from .crypto import AuthenticatedCipher, KdfParams, KeyDerivation
from .engine import VaultEngine
from .errors import (AlreadyExists, AuthenticationFailed, Busy, CorruptVault,
                     KeyDerivationError, MalformedRecords, NotFound, NotInitialized,
                     UnsupportedVersion,
                     VaultError, VaultIOError, VaultLocked, WrongPassphrase)
from .scheduler import LockScheduler, ThreadingLockScheduler
from .storage import VaultBlob, VaultStore

__all__ = [
    "AlreadyExists",
    "AuthenticatedCipher",
    "AuthenticationFailed",
    "Busy",
    "CorruptVault",
    "KdfParams",
    "KeyDerivation",
    "KeyDerivationError",
    "LockScheduler",
    "MalformedRecords",
    "NotFound",
    "NotInitialized",
    "RecordCodec",
    "SecretRecord",
    "ThreadingLockScheduler",
    "UnsupportedVersion",
    "VaultBlob",
    "VaultEngine",
    "VaultError",
    "VaultIOError",
    "VaultLocked",
    "VaultStore",
    "WrongPassphrase",
]
