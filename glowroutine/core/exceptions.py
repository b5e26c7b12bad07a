"""
glowroutine/core/exceptions.py
──────────────────────────────
Custom application exceptions with HTTP status mappings.
Raised inside stores/services; FastAPI turns them into JSON error
responses, and non-HTTP callers can catch them like any exception.
"""

from fastapi import HTTPException, status


class StepNotFoundError(HTTPException):
    def __init__(self, step_id: str) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Routine step '{step_id}' was not found.",
        )
        self.step_id = step_id


class PersistenceError(HTTPException):
    """A store could not read or write routine data."""

    def __init__(self, detail: str = "Routine storage is unavailable.") -> None:
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
        )
