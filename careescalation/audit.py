"""
Append-Only, Tamper-Evident Audit Log (Hash-Chained).

Every durable effect of the engine -- an observation written or corrected,
a risk snapshot overwritten, an alert raised or handled, a follow-up
scheduled, updated, rescheduled, reassigned or cancelled -- is recorded as
a structured audit entry.  Entries are linked via a SHA-256 hash chain: if
any entry is modified after the fact, ``verify_chain()`` reports where the
chain breaks.

Entries are keyed by ``patient_id`` so a reviewer can pull the complete
escalation history of one patient.

Callers that work inside a store transaction collect entries in an
``AuditBuffer`` and flush it only once the transaction has committed, so a
rolled-back transaction leaves no trace in the log.
"""

from __future__ import annotations

import enum
import hashlib
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Audit event types
# ---------------------------------------------------------------------------

class AuditEventType(str, enum.Enum):
    """Every auditable action of the engine."""

    # Observations
    OBSERVATION_RECORDED = "OBSERVATION_RECORDED"
    OBSERVATION_CORRECTED = "OBSERVATION_CORRECTED"
    RISK_SNAPSHOT_UPDATED = "RISK_SNAPSHOT_UPDATED"

    # Alerts
    ALERT_RAISED = "ALERT_RAISED"
    ALERT_ACKNOWLEDGED = "ALERT_ACKNOWLEDGED"
    ALERT_RESOLVED = "ALERT_RESOLVED"

    # Follow-ups
    FOLLOW_UP_SCHEDULED = "FOLLOW_UP_SCHEDULED"
    FOLLOW_UP_UPDATED = "FOLLOW_UP_UPDATED"
    FOLLOW_UP_RESCHEDULED = "FOLLOW_UP_RESCHEDULED"
    FOLLOW_UP_REASSIGNED = "FOLLOW_UP_REASSIGNED"
    FOLLOW_UP_CANCELLED = "FOLLOW_UP_CANCELLED"


# ---------------------------------------------------------------------------
# Audit entry model
# ---------------------------------------------------------------------------

class AuditEntry(BaseModel):
    """A single audit log entry.

    Records who did what, when, for which patient, and carries a hash link
    to the previous entry.
    """

    entry_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for this audit entry (UUID).",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp of the event.",
    )
    patient_id: str = Field(
        ...,
        description="Patient whose care record the event belongs to.",
    )
    actor_id: str = Field(
        ...,
        description="Staff user ID, or SYSTEM for automatic effects.",
    )
    actor_role: str = Field(
        default="SYSTEM",
        description="Role of the actor (HELP_DESK, DOCTOR, ..., SYSTEM).",
    )
    event_type: AuditEventType = Field(...)
    target_entity: str = Field(
        default="",
        description="Identifier of the affected record (observation, alert, follow-up).",
    )
    metadata: dict[str, Any] = Field(default_factory=dict)
    previous_hash: str = Field(
        default="",
        description=(
            "SHA-256 hash of the previous entry's canonical representation. "
            "Empty string for the first entry in the chain."
        ),
    )

    def canonical_bytes(self) -> bytes:
        """Return a deterministic byte representation for hashing."""
        data = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "patient_id": self.patient_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "event_type": self.event_type.value,
            "target_entity": self.target_entity,
            "metadata": self.metadata,
            "previous_hash": self.previous_hash,
        }
        return json.dumps(data, sort_keys=True, default=str).encode("utf-8")

    def compute_hash(self) -> str:
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class AuditLog:
    """Append-only audit log with SHA-256 hash chaining.

    There are no ``update()`` or ``delete()`` methods; once appended, an
    entry cannot be changed through this interface.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._hashes: list[str] = []  # parallel list of computed hashes

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Append an entry, linking it to the hash of the previous one."""
        if self._hashes:
            entry.previous_hash = self._hashes[-1]
        else:
            entry.previous_hash = ""

        self._entries.append(entry)
        self._hashes.append(entry.compute_hash())
        return entry

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Walk the log and validate every hash link.

        Returns:
            ``(valid, broken_at)`` where ``broken_at`` is the index of the
            first broken link, or None if the chain is intact.
        """
        for i, entry in enumerate(self._entries):
            if i == 0:
                if entry.previous_hash != "":
                    return (False, 0)
            else:
                expected_prev_hash = self._entries[i - 1].compute_hash()
                if entry.previous_hash != expected_prev_hash:
                    return (False, i)

            if self._hashes[i] != entry.compute_hash():
                return (False, i)

        return (True, None)

    def query(
        self,
        patient_id: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Return copies of the entries matching every given filter, oldest first."""
        results = []
        for entry in self._entries:
            if patient_id is not None and entry.patient_id != patient_id:
                continue
            if event_type is not None and entry.event_type != event_type:
                continue
            if time_start is not None and entry.timestamp < time_start:
                continue
            if time_end is not None and entry.timestamp > time_end:
                continue
            if actor_id is not None and entry.actor_id != actor_id:
                continue
            results.append(entry.model_copy(deep=True))
        return results

    def __len__(self) -> int:
        return len(self._entries)


class AuditBuffer:
    """Collects entries during a transaction and flushes them on commit."""

    def __init__(self, audit_log: AuditLog) -> None:
        self._audit_log = audit_log
        self._pending: list[AuditEntry] = []

    def record(
        self,
        event_type: AuditEventType,
        patient_id: str,
        target_entity: str,
        actor_id: str = "SYSTEM",
        actor_role: str = "SYSTEM",
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._pending.append(AuditEntry(
            patient_id=patient_id,
            actor_id=actor_id,
            actor_role=actor_role,
            event_type=event_type,
            target_entity=target_entity,
            metadata=metadata or {},
        ))

    def flush(self) -> None:
        for entry in self._pending:
            self._audit_log.append(entry)
        self._pending.clear()
