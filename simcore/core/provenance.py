"""Provenance ledger: an append-only, hash-chained record of pipeline stages.

Every stage of a simulation run appends one :class:`ProvenanceRecord`
holding the SHA-256 digest of the stage's serialized output.  Each record
also stores the digest of the *previous* record's canonical serialization,
so altering, dropping or reordering any record breaks the chain and is
detected by :func:`verify_chain`.

Canonical form
--------------
A record is serialized as compact JSON with sorted keys, ISO-8601
timestamps and strict float handling (``allow_nan=False``).  The same
form is used when hashing and when persisting, so any reader can re-derive
the links from a persisted chain.
"""
from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Optional

from simcore.core.errors import ProvenanceFailed

logger = logging.getLogger(__name__)


def calculate_hash(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of *data*."""
    return hashlib.sha256(data).hexdigest()


def _thaw(value: Any) -> Any:
    """Plain dicts and lists from frozen metadata."""
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(v) for v in value]
    return value


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class ProvenanceRecord:
    timestamp: datetime
    event_type: str
    data_hash: str
    software_version: str
    previous_record_hash: Optional[str] = None
    metadata: Mapping = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Store a frozen, strict-JSON copy of the metadata.
        try:
            plain = json.loads(json.dumps(_thaw(self.metadata), allow_nan=False))
        except (TypeError, ValueError) as exc:
            raise ProvenanceFailed(f"Provenance metadata is not serializable: {exc}") from exc
        if not isinstance(plain, dict):
            raise ProvenanceFailed("Provenance metadata must be a mapping")
        object.__setattr__(self, "metadata", _freeze(plain))

    @classmethod
    def create(
        cls,
        event_type: str,
        data: bytes,
        software_version: str,
        previous_record_hash: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> "ProvenanceRecord":
        return cls(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            data_hash=calculate_hash(data),
            software_version=software_version,
            previous_record_hash=previous_record_hash,
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "data_hash": self.data_hash,
            "software_version": self.software_version,
            "previous_record_hash": self.previous_record_hash,
            "metadata": _thaw(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProvenanceRecord":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            event_type=data["event_type"],
            data_hash=data["data_hash"],
            software_version=data["software_version"],
            previous_record_hash=data.get("previous_record_hash"),
            metadata=data.get("metadata") or {},
        )

    def canonical_json(self) -> str:
        try:
            return json.dumps(
                self.to_dict(), sort_keys=True, separators=(",", ":"), allow_nan=False,
            )
        except (TypeError, ValueError) as exc:
            raise ProvenanceFailed(f"Failed to serialize provenance record: {exc}") from exc

    def calculate_record_hash(self) -> str:
        """Digest of this record's canonical serialization (used for linking)."""
        return calculate_hash(self.canonical_json().encode("utf-8"))


def verify_chain(records: Iterable[ProvenanceRecord]) -> None:
    """Check the hash links of an ordered record sequence.

    Raises
    ------
    ProvenanceFailed
        Naming the first position whose ``previous_record_hash`` does not
        match the hash of its predecessor.
    """
    previous: Optional[ProvenanceRecord] = None
    for position, record in enumerate(records):
        expected = previous.calculate_record_hash() if previous is not None else None
        if record.previous_record_hash != expected:
            raise ProvenanceFailed(
                f"Chain broken at record {position} ({record.event_type!r}): "
                f"expected previous hash {expected!r}, found {record.previous_record_hash!r}"
            )
        previous = record


class ProvenanceChain:
    """Append-only ordered collection of :class:`ProvenanceRecord`."""

    def __init__(self, records: Optional[Iterable[ProvenanceRecord]] = None):
        self._records: list = list(records or [])

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple:
        return tuple(self._records)

    def add_record(
        self,
        event_type: str,
        data: bytes,
        software_version: str,
        metadata: Optional[dict] = None,
    ) -> ProvenanceRecord:
        """Hash *data*, link to the last record and append.

        Raises :class:`ProvenanceFailed` when the previous record or the
        new record cannot be serialized; the chain is left untouched.
        """
        previous_hash = self._records[-1].calculate_record_hash() if self._records else None
        record = ProvenanceRecord.create(
            event_type, data, software_version, previous_hash, metadata,
        )
        self._records.append(record)
        logger.debug(
            "Provenance record %d appended: %s (%s)",
            len(self._records) - 1, event_type, record.data_hash[:12],
        )
        return record

    def verify(self) -> None:
        verify_chain(self._records)

    def to_json(self) -> str:
        try:
            return json.dumps(
                [r.to_dict() for r in self._records], indent=2, allow_nan=False,
            )
        except (TypeError, ValueError) as exc:
            raise ProvenanceFailed(f"Failed to serialize provenance chain: {exc}") from exc

    @classmethod
    def from_json(cls, text: str) -> "ProvenanceChain":
        try:
            raw: Any = json.loads(text)
            if not isinstance(raw, list):
                raise ValueError("expected a JSON array of records")
            return cls(ProvenanceRecord.from_dict(item) for item in raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise ProvenanceFailed(f"Failed to deserialize provenance chain: {exc}") from exc

    def drain_records(self) -> list:
        """Empty the chain and return its previous contents."""
        records, self._records = self._records, []
        return records
