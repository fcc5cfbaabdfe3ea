"""
Store interfaces and an in-memory implementation.

The engine reads and writes through five narrow interfaces -- patients,
observations, alerts, follow-ups and the staff directory -- bundled in a
``CareStore`` that also provides the atomic ``transaction()`` boundary.

``InMemoryCareStore`` is the reference implementation used by the tests
and the synthetic scenario.  Records are copied on the way in and on the
way out, so no caller can mutate stored state without going through the
store.  ``transaction()`` snapshots every store on entry and restores the
snapshot if the block raises.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from datetime import date
from typing import Generic, Iterator, Optional, Protocol, TypeVar

from pydantic import BaseModel

from careescalation.exceptions import NotFoundError
from careescalation.models import (
    FollowUp,
    FollowUpStatus,
    Observation,
    Patient,
    RiskAlert,
    RiskLevel,
    StaffRole,
    StaffUser,
)


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class PatientStore(Protocol):
    def get(self, patient_id: str) -> Optional[Patient]: ...

    def update_risk_snapshot(
        self, patient_id: str, score: int, level: RiskLevel
    ) -> Patient: ...


class ObservationStore(Protocol):
    def get(self, observation_id: str) -> Optional[Observation]: ...

    def upsert(self, observation: Observation) -> Observation: ...

    def for_patient(self, patient_id: str) -> list[Observation]: ...


class AlertStore(Protocol):
    def create(self, alert: RiskAlert) -> RiskAlert: ...

    def get(self, alert_id: str) -> Optional[RiskAlert]: ...

    def update(self, alert: RiskAlert) -> RiskAlert: ...

    def for_patient(self, patient_id: str) -> list[RiskAlert]: ...


class FollowUpStore(Protocol):
    def create(self, follow_up: FollowUp) -> FollowUp: ...

    def get(self, follow_up_id: str) -> Optional[FollowUp]: ...

    def update(self, follow_up: FollowUp) -> FollowUp: ...

    def for_patient(self, patient_id: str) -> list[FollowUp]: ...

    def for_assignee(self, user_id: str) -> list[FollowUp]: ...

    def overdue(self, today: date) -> list[FollowUp]: ...


class UserDirectory(Protocol):
    def get(self, user_id: str) -> Optional[StaffUser]: ...

    def find_active_by_role(self, role: StaffRole) -> list[StaffUser]: ...


class CareStore(Protocol):
    patients: PatientStore
    observations: ObservationStore
    alerts: AlertStore
    follow_ups: FollowUpStore
    users: UserDirectory

    def transaction(self): ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

RecordT = TypeVar("RecordT", bound=BaseModel)


class _InMemoryTable(Generic[RecordT]):
    """Insertion-ordered dict of records keyed by id, copied in and out."""

    def __init__(self, key: str) -> None:
        self._key = key
        self._records: dict[str, RecordT] = {}

    def _id_of(self, record: RecordT) -> str:
        return getattr(record, self._key)

    def _get(self, record_id: Optional[str]) -> Optional[RecordT]:
        if record_id is None or record_id not in self._records:
            return None
        return self._records[record_id].model_copy(deep=True)

    def _put(self, record: RecordT) -> RecordT:
        self._records[self._id_of(record)] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    def _where(self, **criteria) -> list[RecordT]:
        return [
            r.model_copy(deep=True)
            for r in self._records.values()
            if all(getattr(r, k) == v for k, v in criteria.items())
        ]

    def snapshot(self) -> dict[str, RecordT]:
        return copy.deepcopy(self._records)

    def restore(self, records: dict[str, RecordT]) -> None:
        self._records = records

    def __len__(self) -> int:
        return len(self._records)


class InMemoryPatientStore(_InMemoryTable[Patient]):
    def __init__(self) -> None:
        super().__init__("patient_id")

    def add(self, patient: Patient) -> Patient:
        return self._put(patient)

    def get(self, patient_id: str) -> Optional[Patient]:
        return self._get(patient_id)

    def update_risk_snapshot(self, patient_id: str, score: int, level: RiskLevel) -> Patient:
        if patient_id not in self._records:
            raise NotFoundError("Patient", patient_id)
        stored = self._records[patient_id]
        stored.current_risk_score = score
        stored.current_risk_level = level
        return stored.model_copy(deep=True)


class InMemoryObservationStore(_InMemoryTable[Observation]):
    def __init__(self) -> None:
        super().__init__("observation_id")

    def get(self, observation_id: str) -> Optional[Observation]:
        return self._get(observation_id)

    def upsert(self, observation: Observation) -> Observation:
        return self._put(observation)

    def for_patient(self, patient_id: str) -> list[Observation]:
        """Observations of a patient, most recent check first."""
        found = self._where(patient_id=patient_id)
        return sorted(found, key=lambda o: (o.check_date, o.recorded_at), reverse=True)


class InMemoryAlertStore(_InMemoryTable[RiskAlert]):
    def __init__(self) -> None:
        super().__init__("alert_id")

    def create(self, alert: RiskAlert) -> RiskAlert:
        return self._put(alert)

    def get(self, alert_id: str) -> Optional[RiskAlert]:
        return self._get(alert_id)

    def update(self, alert: RiskAlert) -> RiskAlert:
        if alert.alert_id not in self._records:
            raise NotFoundError("Alert", alert.alert_id)
        return self._put(alert)

    def for_patient(self, patient_id: str) -> list[RiskAlert]:
        return self._where(patient_id=patient_id)


class InMemoryFollowUpStore(_InMemoryTable[FollowUp]):
    def __init__(self) -> None:
        super().__init__("follow_up_id")

    def create(self, follow_up: FollowUp) -> FollowUp:
        return self._put(follow_up)

    def get(self, follow_up_id: str) -> Optional[FollowUp]:
        return self._get(follow_up_id)

    def update(self, follow_up: FollowUp) -> FollowUp:
        if follow_up.follow_up_id not in self._records:
            raise NotFoundError("Follow-up", follow_up.follow_up_id)
        return self._put(follow_up)

    def for_patient(self, patient_id: str) -> list[FollowUp]:
        return self._where(patient_id=patient_id)

    def for_assignee(self, user_id: str) -> list[FollowUp]:
        return self._where(assigned_to_id=user_id)

    def overdue(self, today: date) -> list[FollowUp]:
        """Open follow-ups whose scheduled date has passed."""
        open_statuses = (FollowUpStatus.PENDING, FollowUpStatus.RESCHEDULED)
        return [
            f.model_copy(deep=True)
            for f in self._records.values()
            if f.status in open_statuses and f.scheduled_date < today
        ]


class InMemoryUserDirectory(_InMemoryTable[StaffUser]):
    def __init__(self) -> None:
        super().__init__("user_id")

    def add(self, user: StaffUser) -> StaffUser:
        return self._put(user)

    def get(self, user_id: str) -> Optional[StaffUser]:
        return self._get(user_id)

    def find_active_by_role(self, role: StaffRole) -> list[StaffUser]:
        return self._where(role=role, active=True)


class InMemoryCareStore:
    """All five stores plus an all-or-nothing transaction boundary."""

    def __init__(self) -> None:
        self.patients = InMemoryPatientStore()
        self.observations = InMemoryObservationStore()
        self.alerts = InMemoryAlertStore()
        self.follow_ups = InMemoryFollowUpStore()
        self.users = InMemoryUserDirectory()

    def _tables(self) -> list[_InMemoryTable]:
        return [self.patients, self.observations, self.alerts, self.follow_ups, self.users]

    @contextmanager
    def transaction(self) -> Iterator[InMemoryCareStore]:
        """Run a block atomically: on any exception every store is rolled back."""
        snapshots = [table.snapshot() for table in self._tables()]
        try:
            yield self
        except BaseException:
            for table, records in zip(self._tables(), snapshots):
                table.restore(records)
            raise
