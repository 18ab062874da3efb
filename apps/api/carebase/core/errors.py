"""
Typed failures raised by the form engine.

Services raise these; the app maps them onto the error envelope
{error, message, request_id, details}. NotFound/Forbidden carry fixed
messages so a response never confirms records outside the caller's scope.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class EngineError(Exception):
    code = "engine_error"
    status_code = 400
    default_message = "request rejected"

    def __init__(self, message: Optional[str] = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class EditConflict(EngineError):
    code = "edit_conflict"
    status_code = 409
    default_message = "template cannot be edited in its current state"


class PublishRejected(EngineError):
    code = "publish_rejected"
    status_code = 422
    default_message = "template structure is not publishable"


class TemplateNotEnabled(EngineError):
    code = "template_not_enabled"
    status_code = 409
    default_message = "template not found or not enabled"


class ValidationFailed(EngineError):
    code = "validation_failed"
    status_code = 422
    default_message = "validation failed"

    def __init__(self, errors: Mapping[str, str], message: Optional[str] = None) -> None:
        self.errors: Dict[str, str] = dict(errors)
        super().__init__(message, details=dict(self.errors))


class AlreadyReviewed(EngineError):
    code = "already_reviewed"
    status_code = 409
    default_message = "visit note has already been reviewed"


class NotFound(EngineError):
    code = "not_found"
    status_code = 404
    default_message = "not found"

    def __init__(self, entity: str = "record") -> None:
        super().__init__(f"{entity} not found")


class Forbidden(EngineError):
    code = "forbidden"
    status_code = 403
    default_message = "forbidden"

    def __init__(self) -> None:
        super().__init__(self.default_message)


class Unauthenticated(EngineError):
    code = "unauthenticated"
    status_code = 401
    default_message = "missing authorization context"
