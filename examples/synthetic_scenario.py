"""
Synthetic Scenario: Antenatal Check and Follow-Up Walkthrough
=============================================================

Runs the Care Escalation Engine end to end on synthetic data.  No real
patient data is used.

Steps demonstrated:
  1. Load escalation settings from YAML
  2. Register a synthetic patient and staff
  3. Record a routine (STABLE) check
  4. Record a check with danger signs (SEVERE) -> alert + auto follow-up
  5. Acknowledge and resolve the alert
  6. Complete the follow-up call with a chained next call
  7. Verify the audit trail

Usage:
    python -m examples.synthetic_scenario
    # or: python examples/synthetic_scenario.py
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import date, timedelta
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from careescalation.alerts import AlertDesk
from careescalation.audit import AuditLog
from careescalation.config import DEFAULT_CONFIG, load_config_from_yaml
from careescalation.follow_up import FollowUpLifecycle
from careescalation.models import (
    FollowUpStatus,
    FollowUpUpdate,
    ObservationRequest,
    Patient,
    StaffRole,
    StaffUser,
)
from careescalation.orchestrator import CareEscalationOrchestrator
from careescalation.policy import EscalationPolicy
from careescalation.stores import InMemoryCareStore


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-8s [%(name)s] %(message)s")
    _banner("Care Escalation Engine Synthetic Scenario")
    print("DISCLAIMER: All data in this demo is entirely synthetic.\n")

    # ------------------------------------------------------------------
    # Step 1: Load escalation settings
    # ------------------------------------------------------------------
    _banner("Step 1: Load Escalation Settings")

    sample_yaml = Path(__file__).parent / "escalation.yaml"
    if sample_yaml.exists():
        config = load_config_from_yaml(sample_yaml)
        print(f"Loaded settings from {sample_yaml.name}")
    else:
        config = DEFAULT_CONFIG
        print("Using built-in defaults")
    print(json.dumps(config.model_dump(), indent=2))

    # ------------------------------------------------------------------
    # Step 2: Register patient and staff
    # ------------------------------------------------------------------
    _banner("Step 2: Register Synthetic Patient and Staff")

    store = InMemoryCareStore()
    patient = store.patients.add(Patient(
        mother_id="MR-0001",
        name="Synthetic Mother A (not a real person)",
        age=42,
        has_previous_complications=True,
    ))
    nurse = store.users.add(StaffUser(name="Nurse (synthetic)", role=StaffRole.HELP_DESK))
    doctor = store.users.add(StaffUser(name="Doctor (synthetic)", role=StaffRole.DOCTOR))
    print(f"Patient {patient.mother_id}: age {patient.age}, previous complications")

    audit_log = AuditLog()
    policy = EscalationPolicy(config)
    orchestrator = CareEscalationOrchestrator(store, policy, audit_log)
    lifecycle = FollowUpLifecycle(store, audit_log, config)
    alert_desk = AlertDesk(store, audit_log)

    # ------------------------------------------------------------------
    # Step 3: Routine check
    # ------------------------------------------------------------------
    _banner("Step 3: Routine Check")

    routine = orchestrator.record_observation(
        ObservationRequest(
            patient_id=patient.patient_id,
            bp_systolic=118,
            bp_diastolic=76,
            hemoglobin=11.8,
            fetal_heart_rate=140,
            fetal_movement=True,
        ),
        performing_user_id=nurse.user_id,
    )
    print(f"Score {routine.risk_score} -> {routine.risk_level.name}")
    print(f"  Factors: {routine.risk_factor_list()}")

    # ------------------------------------------------------------------
    # Step 4: Check with danger signs
    # ------------------------------------------------------------------
    _banner("Step 4: Check With Danger Signs")

    urgent = orchestrator.record_observation(
        {
            "patient_id": patient.patient_id,
            "bp_systolic": 165,
            "bp_diastolic": 70,
            "hemoglobin": 6.5,
            "bleeding_reported": True,
        },
        performing_user_id=nurse.user_id,
    )
    print(f"Score {urgent.risk_score} -> {urgent.risk_level.name}")
    for factor in urgent.risk_factor_list():
        print(f"  - {factor}")

    snapshot = store.patients.get(patient.patient_id)
    print(f"\nPatient snapshot: {snapshot.current_risk_score} / {snapshot.current_risk_level.name}")

    alert = alert_desk.unresolved_for_patient(patient.patient_id)[0]
    print(f"Alert: {alert.title}")
    print(f"  Recommended action: {alert.recommended_action}")

    follow_up = store.follow_ups.for_patient(patient.patient_id)[0]
    print(f"Follow-up scheduled for {follow_up.scheduled_date} ({follow_up.status.value})")

    # ------------------------------------------------------------------
    # Step 5: Alert handling
    # ------------------------------------------------------------------
    _banner("Step 5: Acknowledge and Resolve the Alert")

    alert = alert_desk.acknowledge(
        alert.alert_id, doctor.user_id,
        notes="Reviewed readings.", action_taken="Consultation booked.",
    )
    print(f"Acknowledged by {alert.acknowledged_by_id}")
    alert = alert_desk.resolve(alert.alert_id, "Synthetic: patient admitted for observation.")
    print(f"Resolved at {alert.resolved_at.isoformat()}")

    # ------------------------------------------------------------------
    # Step 6: Follow-up call
    # ------------------------------------------------------------------
    _banner("Step 6: Follow-Up Call")

    follow_up = lifecycle.update_follow_up(
        follow_up.follow_up_id,
        FollowUpUpdate(
            status=FollowUpStatus.COMPLETED,
            call_duration_seconds=240,
            patient_condition="Stable, resting",
            medication_compliance=True,
            advice_given="Continue iron supplements; report any bleeding.",
            next_follow_up_date=date.today() + timedelta(days=7),
        ),
    )
    print(f"Call completed after {follow_up.attempt_count} attempt(s)")
    for task in store.follow_ups.for_patient(patient.patient_id):
        print(f"  {task.scheduled_date} {task.status.value:<10} {task.notes}")

    # ------------------------------------------------------------------
    # Step 7: Audit trail
    # ------------------------------------------------------------------
    _banner("Step 7: Audit Trail")

    for entry in audit_log.query(patient_id=patient.patient_id):
        print(f"  {entry.timestamp.isoformat()} {entry.event_type.value:<24} {entry.target_entity}")
    valid, broken_at = audit_log.verify_chain()
    print(f"\nChain verification: valid={valid}, broken_at={broken_at}")

    _banner("Scenario Complete")
    print("All data was synthetic.")


if __name__ == "__main__":
    main()
