"""Service-layer exceptions.

Routers translate these into HTTP responses:

  NotFoundError         → 404
  AlreadyEnrolledError  → 409
  InvalidStateError     → 400

Computation ambiguities (no video duration, SHORT_ANSWER questions) are
not errors: they resolve to "incomplete" / zero points so aggregation
always produces a value.
"""

from __future__ import annotations


class ProgressError(Exception):
    """Base service error."""

    def __init__(self, message: str, code: str = "progress_error") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(ProgressError):
    def __init__(self, entity: str) -> None:
        super().__init__(f"{entity} not found", "not_found")
        self.entity = entity


class InvalidStateError(ProgressError):
    def __init__(self, message: str, code: str = "invalid_state") -> None:
        super().__init__(message, code)


class AlreadyEnrolledError(InvalidStateError):
    def __init__(self) -> None:
        super().__init__("user already enrolled in this course", "already_enrolled")
