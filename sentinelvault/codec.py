"""
Secret records and their canonical serialization.

The encoded form is the plaintext sealed inside the vault blob, so it
never touches disk unencrypted.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

from . import config
from .errors import MalformedRecords, UnsupportedVersion

logger = logging.getLogger(__name__)

_KNOWN_FIELDS = ("id", "service_name", "login", "secret_value", "created_at", "updated_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SecretRecord:
    """Represents a single vault entry.

    Records are immutable; the engine replaces a record to update it.
    ``extras`` carries fields written by a newer release so they survive
    a read-modify-write cycle.
    """
    id: str
    service_name: str
    login: str
    secret_value: Optional[str] = field(default=None, repr=False)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    extras: Dict[str, Any] = field(default_factory=dict, repr=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = dict(self.extras)
        data.update({
            "id": self.id,
            "service_name": self.service_name,
            "login": self.login,
            "secret_value": self.secret_value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecretRecord":
        """Create from dictionary.

        Raises:
            MalformedRecords: If a required field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise MalformedRecords(f"Record must be an object, got {type(data).__name__}")
        for name in ("id", "service_name", "login", "created_at", "updated_at"):
            if not isinstance(data.get(name), str):
                raise MalformedRecords(f"Record field {name!r} is missing or not a string")
        secret_value = data.get("secret_value")
        if secret_value is not None and not isinstance(secret_value, str):
            raise MalformedRecords("Record field 'secret_value' must be a string or null")
        try:
            created_at = datetime.fromisoformat(data["created_at"])
            updated_at = datetime.fromisoformat(data["updated_at"])
        except ValueError as e:
            raise MalformedRecords(f"Invalid timestamp in record {data['id']!r}: {e}") from e

        return cls(
            id=data["id"],
            service_name=data["service_name"],
            login=data["login"],
            secret_value=secret_value,
            created_at=created_at,
            updated_at=updated_at,
            extras={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )


class RecordCodec:
    """Encodes ordered record sets to canonical JSON bytes and back."""

    SCHEMA_VERSION = config.RECORD_SCHEMA_VERSION

    def encode(self, records: Iterable[SecretRecord],
               extras: Optional[Dict[str, Any]] = None) -> bytes:
        """
        Serialize records in order.

        Keys are sorted and separators compact, so equal record sets
        always encode to identical bytes. extras are top-level fields
        read from a newer writer by decode_payload.
        """
        data = dict(extras or {})
        data["schema"] = self.SCHEMA_VERSION
        data["records"] = [r.to_dict() for r in records]
        return json.dumps(data, sort_keys=True, separators=(",", ":"),
                          ensure_ascii=False).encode("utf-8")

    def decode(self, payload: bytes) -> Tuple[SecretRecord, ...]:
        """
        Deserialize a record set produced by encode.

        Raises:
            MalformedRecords: If the payload is not a readable record set
            UnsupportedVersion: If the payload schema is newer than this release
        """
        return self.decode_payload(payload)[0]

    def decode_payload(self, payload: bytes) -> Tuple[Tuple[SecretRecord, ...], Dict[str, Any]]:
        """Like decode, but also return unknown top-level fields so they can be written back."""
        try:
            data = json.loads(bytes(payload).decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedRecords(f"Record payload is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedRecords("Record payload must be a JSON object")
        schema = data.get("schema")
        if not isinstance(schema, int) or isinstance(schema, bool) or schema < 1:
            raise MalformedRecords(f"Invalid record schema version: {schema!r}")
        if schema > self.SCHEMA_VERSION:
            raise UnsupportedVersion(
                f"Record schema {schema} was written by a newer release (this one reads up to {self.SCHEMA_VERSION})")
        entries = data.get("records")
        if not isinstance(entries, list):
            raise MalformedRecords("Record payload has no 'records' list")

        records = tuple(SecretRecord.from_dict(e) for e in entries)
        seen = set()
        for record in records:
            if record.id in seen:
                raise MalformedRecords(f"Duplicate record id {record.id!r}")
            seen.add(record.id)
        logger.debug(f"Decoded {len(records)} records (schema {schema})")
        extras = {k: v for k, v in data.items() if k not in ("schema", "records")}
        return records, extras
