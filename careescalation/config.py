"""
Escalation configuration for the Care Escalation Engine.

Severity thresholds and follow-up offsets are process-wide settings.  They
are carried by an explicit ``EscalationConfig`` value handed to
``EscalationPolicy`` at construction, so scoring stays pure and tests can
run with any thresholds they like.

Configuration can be loaded from YAML::

    escalation:
      moderate_threshold: 4
      severe_threshold: 7
      severe_follow_up_days: 2
      moderate_follow_up_days: 5
      auto_follow_up_enabled: true
      max_follow_up_chain_depth: null
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class EscalationConfig(BaseModel):
    """Thresholds and scheduling rules that turn a score into actions.

    A score at or above ``severe_threshold`` is SEVERE; at or above
    ``moderate_threshold`` it is MODERATE; anything lower is STABLE.
    """

    model_config = ConfigDict(frozen=True)

    moderate_threshold: int = Field(
        default=4,
        ge=0,
        description="Minimum score classified as MODERATE.",
    )
    severe_threshold: int = Field(
        default=7,
        ge=0,
        description="Minimum score classified as SEVERE.  Must be >= moderate_threshold.",
    )
    severe_follow_up_days: int = Field(
        default=2,
        gt=0,
        description="Days from today for the auto follow-up of a SEVERE observation.",
    )
    moderate_follow_up_days: int = Field(
        default=5,
        gt=0,
        description="Days from today for the auto follow-up of a MODERATE observation.",
    )
    auto_follow_up_enabled: bool = Field(
        default=True,
        description=(
            "Global switch for auto-scheduled follow-ups.  Callers can also "
            "disable them per observation."
        ),
    )
    max_follow_up_chain_depth: Optional[int] = Field(
        default=None,
        ge=1,
        description=(
            "Maximum number of chained follow-ups created through "
            "next_follow_up_date.  None leaves chains unbounded."
        ),
    )

    @field_validator("severe_threshold")
    @classmethod
    def severe_above_moderate(cls, v: int, info) -> int:
        moderate = info.data.get("moderate_threshold")
        if moderate is not None and v < moderate:
            raise ValueError(
                f"severe_threshold ({v}) must be >= moderate_threshold ({moderate})"
            )
        return v


DEFAULT_CONFIG = EscalationConfig()
"""Reference thresholds: MODERATE at 4, SEVERE at 7, follow-ups at 5 and 2 days."""


def load_config_from_yaml(path: str | Path) -> EscalationConfig:
    """Load an ``EscalationConfig`` from the ``escalation`` key of a YAML file.

    Keys that are absent keep their defaults.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If a value fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or "escalation" not in raw:
        raise ValueError("YAML file must contain a top-level 'escalation' mapping.")

    section = raw["escalation"] or {}
    if not isinstance(section, dict):
        raise ValueError("'escalation' must be a mapping of settings.")

    return EscalationConfig(**section)
