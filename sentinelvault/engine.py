"""
The vault engine: unlock/lock lifecycle and write-through record CRUD.

All state changes happen under one lock and follow the same sequence:
build the new record tuple, encode, seal with a fresh nonce, persist,
and only then publish the tuple to readers.
"""

import atexit
import dataclasses
import functools
import logging
import threading
import uuid
import weakref
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import config
from .codec import RecordCodec, SecretRecord, utcnow
from .crypto import AuthenticatedCipher, KdfParams, KeyDerivation, wipe
from .errors import (AlreadyExists, AuthenticationFailed, CorruptVault, KeyDerivationError,
                     MalformedRecords, NotFound, NotInitialized, UnsupportedVersion,
                     VaultLocked, WrongPassphrase)
from .scheduler import LockScheduler
from .storage import VaultBlob, VaultStore, encode_header

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("service_name", "login", "secret_value")

_live_engines = weakref.WeakSet()


@atexit.register
def _lock_all_engines():
    for engine in list(_live_engines):
        engine.lock()


class UnlockedVault:
    """Key and decrypted records of an unlocked vault. Never persisted."""

    __slots__ = ("key", "salt", "kdf_params", "records", "cipher", "extras")

    def __init__(self, key: bytearray, salt: bytes, kdf_params: KdfParams,
                 records: Tuple[SecretRecord, ...], cipher: AuthenticatedCipher,
                 extras: Optional[Dict[str, Any]] = None):
        self.key = key
        self.salt = salt
        self.kdf_params = kdf_params
        self.records = records
        self.cipher = cipher
        # Top-level payload fields from a newer writer, written back as read
        self.extras = extras or {}

    def wipe(self) -> None:
        wipe(self.key)
        self.records = ()
        self.extras = {}
        self.cipher.reset()


class VaultEngine:
    """
    Orchestrates an encrypted vault stored under one storage key.

    Mutators, lock, unlock and create are serialized by an internal lock.
    list_records reads the current immutable snapshot without locking.
    """

    def __init__(self, store: VaultStore, kdf: KeyDerivation = None,
                 codec: RecordCodec = None, scheduler: LockScheduler = None,
                 clock: Callable[[], datetime] = utcnow,
                 cipher_factory: Callable[[], AuthenticatedCipher] = AuthenticatedCipher):
        """
        Initialize the engine.

        Args:
            store: Where the vault blob lives
            kdf: Key derivation used for new vaults and re-keying
            codec: Record serializer
            scheduler: Optional auto-lock scheduler, armed on unlock and use
            clock: Source of record timestamps
            cipher_factory: Builds one cipher per unlocked session
        """
        self.store = store
        self.kdf = kdf or KeyDerivation()
        self.codec = codec or RecordCodec()
        self.scheduler = scheduler
        self._clock = clock
        self._cipher_factory = cipher_factory
        self._lock = threading.Lock()
        self._session: Optional[UnlockedVault] = None
        self._corrupt_fingerprint: Optional[str] = None
        self._idle_generation = 0
        _live_engines.add(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def state(self) -> str:
        if self._corrupt_fingerprint is not None:
            return config.STATE_CORRUPT
        if self._session is not None:
            return config.STATE_UNLOCKED
        return config.STATE_LOCKED

    def is_unlocked(self) -> bool:
        return self._session is not None

    def exists(self) -> bool:
        """Check whether a vault blob has been persisted."""
        return self.store.exists()

    # Lifecycle

    def create(self, passphrase) -> None:
        """
        Create a new, empty vault and leave it unlocked.

        Raises:
            AlreadyExists: If a blob is already persisted under this storage key
        """
        with self._lock:
            if self.store.exists():
                raise AlreadyExists(f"Vault {self.store.storage_key!r} already exists")

            salt = self.kdf.generate_salt()
            params = self.kdf.params
            key = self.kdf.derive(passphrase, salt, params)
            session = UnlockedVault(key, salt, params, (), self._cipher_factory())
            try:
                self._persist(session, ())
            except Exception:
                session.wipe()
                raise
            self._session = session
            self._corrupt_fingerprint = None
            self._arm_scheduler()
        logger.info(f"Created vault {self.store.storage_key!r}")

    def unlock(self, passphrase) -> None:
        """
        Unlock an existing vault. A no-op if it is already unlocked.

        Raises:
            NotInitialized: If no vault has been created
            WrongPassphrase: If the passphrase does not open the vault
            CorruptVault: If the blob or its records cannot be read
            UnsupportedVersion: If the records were written by a newer release
        """
        with self._lock:
            if self._session is not None:
                return
            self._check_corrupt_blob_replaced()
            key, blob, records, extras = self._open_persisted(passphrase)

            cipher = self._cipher_factory()
            cipher.remember(blob.nonce)
            self._session = UnlockedVault(key, blob.salt, blob.kdf_params, records, cipher, extras)
            self._arm_scheduler()
        logger.info(f"Unlocked vault {self.store.storage_key!r} with {len(records)} records")

    def lock(self) -> None:
        """Lock the vault and wipe key material. Idempotent."""
        with self._lock:
            self._lock_session()

    def background(self) -> None:
        """Application moved to the background."""
        logger.debug("Application backgrounded, locking vault")
        self.lock()

    def close(self) -> None:
        self.lock()
        _live_engines.discard(self)

    def reset(self) -> bool:
        """
        Lock and delete the persisted vault so it can be created again.

        Returns:
            True if a blob was deleted
        """
        with self._lock:
            self._lock_session()
            deleted = self.store.delete()
            self._corrupt_fingerprint = None
        logger.warning(f"Vault {self.store.storage_key!r} was reset")
        return deleted

    def change_passphrase(self, old_passphrase, new_passphrase) -> None:
        """
        Re-key the vault with a new passphrase and salt.

        The vault is left unlocked under the new key.

        Raises:
            NotInitialized: If no vault has been created
            WrongPassphrase: If old_passphrase does not open the vault
            CorruptVault: If the blob or its records cannot be read
            UnsupportedVersion: If the records were written by a newer release
        """
        with self._lock:
            self._check_corrupt_blob_replaced()
            old_key, _, records, extras = self._open_persisted(old_passphrase)
            wipe(old_key)

            salt = self.kdf.generate_salt()
            params = self.kdf.params
            key = self.kdf.derive(new_passphrase, salt, params)
            session = UnlockedVault(key, salt, params, records, self._cipher_factory(), extras)
            try:
                self._persist(session, records)
            except Exception:
                session.wipe()
                raise
            if self._session is not None:
                self._session.wipe()
            self._session = session
            self._arm_scheduler()
        logger.info(f"Changed passphrase of vault {self.store.storage_key!r}")

    # Reads

    def list_records(self) -> Tuple[SecretRecord, ...]:
        """
        Return all records in insertion order.

        Raises:
            VaultLocked: If the vault is locked
        """
        session = self._session
        if session is None:
            raise VaultLocked("Vault is locked")
        return session.records

    def get_record(self, record_id: str) -> SecretRecord:
        for record in self.list_records():
            if record.id == record_id:
                return record
        raise NotFound(f"No record with id {record_id!r}")

    def find_duplicates(self) -> List[List[SecretRecord]]:
        """Find records sharing a service name and login, ignoring case."""
        duplicates = defaultdict(list)
        for record in self.list_records():
            duplicates[(record.service_name.lower(), record.login.lower())].append(record)
        return [group for group in duplicates.values() if len(group) > 1]

    # Mutations

    def add_record(self, service_name: str, login: str,
                   secret_value: Optional[str] = None) -> SecretRecord:
        """
        Add a record and persist the vault before returning it.

        Raises:
            VaultLocked: If the vault is locked
            ValueError: If a field is invalid
        """
        _validate_fields(service_name=service_name, login=login, secret_value=secret_value)
        with self._lock:
            session = self._require_session()
            now = self._clock()
            record = SecretRecord(
                id=uuid.uuid4().hex,
                service_name=service_name,
                login=login,
                secret_value=secret_value,
                created_at=now,
                updated_at=now,
            )
            self._commit(session, session.records + (record,))
        logger.info(f"Added record {record.id}")
        return record

    def update_record(self, record_id: str, **fields) -> SecretRecord:
        """
        Change service_name, login and/or secret_value of a record.

        Raises:
            VaultLocked: If the vault is locked
            NotFound: If no record has record_id
            ValueError: If a field is unknown or invalid
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        _validate_fields(**fields)
        with self._lock:
            session = self._require_session()
            records = list(session.records)
            index = _index_of(records, record_id)
            updated = dataclasses.replace(records[index], updated_at=self._clock(), **fields)
            records[index] = updated
            self._commit(session, tuple(records))
        logger.info(f"Updated record {record_id}")
        return updated

    def delete_record(self, record_id: str) -> None:
        """
        Delete a record and persist the vault.

        Raises:
            VaultLocked: If the vault is locked
            NotFound: If no record has record_id
        """
        with self._lock:
            session = self._require_session()
            records = list(session.records)
            del records[_index_of(records, record_id)]
            self._commit(session, tuple(records))
        logger.info(f"Deleted record {record_id}")

    # Internals

    def _require_session(self) -> UnlockedVault:
        if self._corrupt_fingerprint is not None:
            raise CorruptVault(f"Vault {self.store.storage_key!r} is corrupt")
        if self._session is None:
            raise VaultLocked("Vault is locked")
        return self._session

    def _lock_session(self) -> None:
        session = self._session
        self._session = None
        if self.scheduler is not None:
            self.scheduler.cancel()
        if session is not None:
            session.wipe()
            logger.info(f"Locked vault {self.store.storage_key!r}")

    def _arm_scheduler(self) -> None:
        if self.scheduler is not None:
            self._idle_generation += 1
            self.scheduler.on_unlock_timeout(
                functools.partial(self._on_idle_timeout, self._idle_generation))

    def _on_idle_timeout(self, generation: int) -> None:
        with self._lock:
            # A timer that fired while a mutation held the lock was re-armed by it
            if generation != self._idle_generation:
                logger.debug(f"Ignoring stale auto-lock timeout for vault {self.store.storage_key!r}")
                return
            logger.info(f"Auto-lock timeout reached for vault {self.store.storage_key!r}")
            self._lock_session()

    def _mark_corrupt(self) -> None:
        self._lock_session()
        self._corrupt_fingerprint = self.store.fingerprint()

    def _check_corrupt_blob_replaced(self) -> None:
        if self._corrupt_fingerprint is None:
            return
        if self.store.fingerprint() == self._corrupt_fingerprint:
            raise CorruptVault(f"Vault {self.store.storage_key!r} is corrupt and has not been replaced")
        logger.info(f"Corrupt vault {self.store.storage_key!r} was replaced, retrying")
        self._corrupt_fingerprint = None

    def _open_persisted(self, passphrase) -> Tuple[bytearray, VaultBlob, Tuple[SecretRecord, ...],
                                                   Dict[str, Any]]:
        """Load, authenticate and decode the persisted vault. Caller owns the returned key."""
        try:
            blob = self.store.load()
        except CorruptVault:
            logger.error(f"Vault {self.store.storage_key!r} is unreadable", exc_info=True)
            self._mark_corrupt()
            raise
        if blob is None:
            raise NotInitialized(f"Vault {self.store.storage_key!r} has not been created")

        if not passphrase:
            logger.warning(f"Failed unlock attempt for vault {self.store.storage_key!r}: empty passphrase")
            raise WrongPassphrase("Wrong passphrase")
        try:
            key = self.kdf.derive(passphrase, blob.salt, blob.kdf_params)
        except KeyDerivationError as e:
            # A non-empty passphrase only fails on the stored parameters
            self._mark_corrupt()
            raise CorruptVault(f"Vault {self.store.storage_key!r} has invalid key derivation settings") from e
        try:
            plaintext = self._cipher_factory().open(
                key, blob.nonce, blob.ciphertext, blob.auth_tag, blob.header_bytes())
        except AuthenticationFailed as e:
            wipe(key)
            logger.warning(f"Failed unlock attempt for vault {self.store.storage_key!r}")
            raise WrongPassphrase("Wrong passphrase") from e

        try:
            records, extras = self.codec.decode_payload(plaintext)
        except UnsupportedVersion as e:
            # Readable by a newer release, so the blob is left alone
            wipe(key)
            logger.error(f"Vault {self.store.storage_key!r} was written by a newer release: {e}")
            raise
        except MalformedRecords as e:
            wipe(key)
            logger.error(f"Vault {self.store.storage_key!r} decrypted but its records are malformed: {e}")
            self._mark_corrupt()
            raise CorruptVault(f"Vault {self.store.storage_key!r} records are malformed") from e
        finally:
            wipe(plaintext)
        return key, blob, records, extras

    def _persist(self, session: UnlockedVault, records: Tuple[SecretRecord, ...]) -> None:
        header = encode_header(config.VAULT_FORMAT_VERSION, session.kdf_params, session.salt)
        plaintext = bytearray(self.codec.encode(records, session.extras))
        nonce = session.cipher.generate_nonce()
        try:
            ciphertext, tag = session.cipher.seal(session.key, nonce, plaintext, header)
        finally:
            wipe(plaintext)
        self.store.save(VaultBlob(
            format_version=config.VAULT_FORMAT_VERSION,
            kdf_params=session.kdf_params,
            salt=session.salt,
            nonce=nonce,
            ciphertext=ciphertext,
            auth_tag=tag,
        ))

    def _commit(self, session: UnlockedVault, records: Tuple[SecretRecord, ...]) -> None:
        # Readers keep seeing the old tuple until the new one is on disk
        self._persist(session, records)
        session.records = records
        self._arm_scheduler()


def _index_of(records: List[SecretRecord], record_id: str) -> int:
    for i, record in enumerate(records):
        if record.id == record_id:
            return i
    raise NotFound(f"No record with id {record_id!r}")


def _validate_fields(**fields) -> None:
    if "service_name" in fields:
        value = fields["service_name"]
        if not isinstance(value, str) or not value.strip():
            raise ValueError("service_name must be a non-empty string")
    if "login" in fields and not isinstance(fields["login"], str):
        raise ValueError("login must be a string")
    if "secret_value" in fields:
        value = fields["secret_value"]
        if value is not None and not isinstance(value, str):
            raise ValueError("secret_value must be a string or None")
