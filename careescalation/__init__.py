"""
Care Escalation Engine
======================

Clinical risk assessment and care escalation for at-risk pregnancies.
Each clinical check (an *observation*) is scored deterministically, the
score is classified into a severity tier, and the tier drives durable
consequences: the patient's current risk snapshot, staff alerts, and
auto-scheduled follow-up calls.  Every effect is recorded in an
append-only, hash-chained audit log.

DISCLAIMER: This software supports care coordination workflows run by
trained health staff.  Scores and severity tiers are triage aids, not
diagnoses; all alerts require review by a qualified clinician.
"""

__version__ = "0.1.0"
