"""
Exception hierarchy for the Care Escalation Engine.

Input validation failures are raised by pydantic (``pydantic.ValidationError``)
when a request model is built, before any scoring starts.  The errors below
cover everything that can go wrong afterwards.
"""

from __future__ import annotations

from typing import Any, Optional


class CareEngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "CARE_ENGINE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a dictionary for transport layers."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(CareEngineError):
    """A referenced patient, user, observation, alert or follow-up does not exist."""

    def __init__(self, entity: str, entity_id: Optional[str]) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class BusinessRuleViolation(CareEngineError):
    """The request is well-formed but breaks a workflow rule."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, code="BUSINESS_RULE_VIOLATION", details=details)


class InvalidTransitionError(BusinessRuleViolation):
    """A follow-up status change is not permitted from its current status."""
    pass
