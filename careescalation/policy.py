"""
Escalation Policy -- Severity Classification and Action Decisions.

Classifies a risk score into STABLE / MODERATE / SEVERE using the
thresholds of an ``EscalationConfig``, and decides what a classification
must trigger:

* MODERATE or SEVERE -- exactly one alert.
* SEVERE   -- auto follow-up ``severe_follow_up_days`` from today (2).
* MODERATE -- auto follow-up ``moderate_follow_up_days`` from today (5).
* STABLE   -- nothing.

A follow-up requested manually for the same observation always wins: it
suppresses the automatic one, so at most one follow-up is created per
observation.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from careescalation.config import DEFAULT_CONFIG, EscalationConfig
from careescalation.models import ClinicalFindings, Patient, RiskLevel
from careescalation.risk_scorer import score_observation


class RiskAssessment(BaseModel):
    """Score, tier and factors of one observation.  Immutable."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0)
    risk_level: RiskLevel = Field(...)
    risk_factors: tuple[str, ...] = Field(default=())

    def factors_text(self, separator: str = "; ") -> str:
        return separator.join(self.risk_factors)


class EscalationDecision(BaseModel):
    """What an assessment must trigger."""

    model_config = ConfigDict(frozen=True)

    raise_alert: bool = Field(...)
    alert_severity: Optional[RiskLevel] = Field(default=None)
    auto_follow_up_offset_days: Optional[int] = Field(default=None)


class EscalationPolicy:
    """Applies an ``EscalationConfig`` to risk scores."""

    def __init__(self, config: EscalationConfig = DEFAULT_CONFIG) -> None:
        self._config = config

    @property
    def config(self) -> EscalationConfig:
        return self._config

    def classify(self, score: int) -> RiskLevel:
        """Map a score to its tier.  Monotonic: a higher score never lowers the tier."""
        if score >= self._config.severe_threshold:
            return RiskLevel.SEVERE
        if score >= self._config.moderate_threshold:
            return RiskLevel.MODERATE
        return RiskLevel.STABLE

    def assess(self, observation: ClinicalFindings, patient: Patient) -> RiskAssessment:
        """Score an observation and classify the result."""
        result = score_observation(observation, patient)
        return RiskAssessment(
            score=result.score,
            risk_level=self.classify(result.score),
            risk_factors=result.risk_factors,
        )

    def decide_actions(
        self,
        assessment: RiskAssessment,
        manual_follow_up_requested: bool = False,
        auto_follow_up_enabled: bool = True,
    ) -> EscalationDecision:
        """Decide alerting and auto follow-up for an assessment.

        Args:
            assessment: The classified assessment.
            manual_follow_up_requested: The caller already asked for a
                follow-up for this observation; no automatic one is added.
            auto_follow_up_enabled: Caller-level switch; the config's
                ``auto_follow_up_enabled`` must also be on.

        Returns:
            An ``EscalationDecision``.
        """
        level = assessment.risk_level
        raise_alert = level in (RiskLevel.MODERATE, RiskLevel.SEVERE)

        offset: Optional[int] = None
        if (
            not manual_follow_up_requested
            and auto_follow_up_enabled
            and self._config.auto_follow_up_enabled
        ):
            if level == RiskLevel.SEVERE:
                offset = self._config.severe_follow_up_days
            elif level == RiskLevel.MODERATE:
                offset = self._config.moderate_follow_up_days

        return EscalationDecision(
            raise_alert=raise_alert,
            alert_severity=level if raise_alert else None,
            auto_follow_up_offset_days=offset,
        )
