from enum import Enum
from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class WriteOutcome(str, Enum):
    PERSISTED = "PERSISTED"
    # Primary write succeeded, but the mirror or the activity log did not.
    DEGRADED = "DEGRADED"


class Persisted(BaseModel, Generic[T]):
    """Result of a mutating service call."""

    data: T
    outcome: WriteOutcome = WriteOutcome.PERSISTED
    warnings: List[str] = []

    @classmethod
    def of(cls, data: T, warnings: Optional[List[str]] = None) -> "Persisted[T]":
        warnings = list(warnings or [])
        outcome = WriteOutcome.DEGRADED if warnings else WriteOutcome.PERSISTED
        return cls(data=data, outcome=outcome, warnings=warnings)


class ActionResponse(Persisted[T], Generic[T]):
    """Persisted result plus the view the client should navigate to."""

    redirect_to: Optional[str] = None


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    detail: str
    errors: List[FieldError] = []
