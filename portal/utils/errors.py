"""
Workflow error taxonomy.

Each error is an ``HTTPException`` so services can raise it directly and
FastAPI serialises it without extra handlers.  The ``detail`` body always
carries the error ``kind`` and a human-readable ``message`` so the UI can
explain why an action was blocked::

    {"detail": {"kind": "Conflict", "message": "..."}}
"""

from __future__ import annotations

from fastapi import HTTPException, status


class WorkflowError(HTTPException):
    kind: str = "WorkflowError"
    status_code_default: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(
            status_code=self.status_code_default,
            detail={"kind": self.kind, "message": message},
        )
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class NotFoundError(WorkflowError):
    kind = "NotFound"
    status_code_default = status.HTTP_404_NOT_FOUND


class UnauthorizedError(WorkflowError):
    kind = "Unauthorized"
    status_code_default = status.HTTP_403_FORBIDDEN


class ValidationError(WorkflowError):
    kind = "ValidationError"
    status_code_default = 422


class ConflictError(WorkflowError):
    """The record changed under the caller; reload before trying again."""

    kind = "Conflict"
    status_code_default = status.HTTP_409_CONFLICT
