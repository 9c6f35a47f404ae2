"""
Structured errors raised by the document-control services.

Every error carries a short machine code, a human message and a ``context`` dict
(ids, step name, current status) so API clients can explain why an action failed
when several assignees act at the same time.
"""
from __future__ import annotations

from typing import Any


class DocumentControlError(RuntimeError):
    code = "document_control_error"
    http_status = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "context": self.context}


class ValidationError(DocumentControlError):
    code = "validation_error"
    http_status = 400


class AuthorizationError(DocumentControlError):
    code = "not_authorized"
    http_status = 403


class NotFoundError(DocumentControlError):
    code = "not_found"
    http_status = 404


class InvalidStateError(DocumentControlError):
    code = "invalid_state"
    http_status = 409


class ConflictError(DocumentControlError):
    code = "conflict"
    http_status = 409


class StepClosedError(ConflictError, InvalidStateError):
    """Decision attempted on a step (or workflow) that is no longer open."""

    code = "step_closed"


class OutOfTurnError(InvalidStateError):
    code = "out_of_turn"


class ExternalProviderError(DocumentControlError):
    code = "external_provider_error"
    http_status = 502


class TransitionRaceError(ConflictError):
    """A compare-and-swap lost against a concurrent transition; the unit is retried."""

    code = "transition_race"
