"""
Error taxonomy shared by every lifecycle service.

Services raise these; the HTTP layer maps them to status codes in one place
(see ``ats.main``). ``context`` carries the structure a caller needs to react,
such as the offending field names or the current and target stage.
"""

from __future__ import annotations

from typing import Any


class LifecycleError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str, code: str | None = None, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(LifecycleError):
    code = "validation"
    status_code = 400


class NotFound(LifecycleError):
    code = "not-found"
    status_code = 404


class Forbidden(LifecycleError):
    code = "forbidden"
    status_code = 403


class InvalidOperation(LifecycleError):
    code = "invalid-operation"
    status_code = 400

    def __init__(self, message: str, code: str | None = None, context: dict[str, Any] | None = None):
        super().__init__(message, code, context)
        if self.code == "duplicate":
            self.status_code = 409


class Internal(LifecycleError):
    code = "internal"
    status_code = 500
