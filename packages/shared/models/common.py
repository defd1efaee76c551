from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    emirate: Optional[str] = None
    postal_code: Optional[str] = None


class Warning(BaseModel):
    code: str
    message: str
    system: Optional[str] = None


class IntegrationError(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class IntegrationResult(BaseModel):
    """
    Tagged outcome of one call into an external healthcare system.

    Exactly one of ``data`` (success) or ``error`` (failure) is meaningful;
    callers branch on ``success`` and never on the payload shape.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[IntegrationError] = None
    source: str = "unknown"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def ok(cls, data: Any = None, *, source: str) -> "IntegrationResult":
        return cls(success=True, data=data, source=source)

    @classmethod
    def fail(cls, code: str, message: str, *, source: str, details: Any = None) -> "IntegrationResult":
        return cls(
            success=False,
            error=IntegrationError(code=code, message=message, details=details),
            source=source,
        )

    @property
    def error_message(self) -> str:
        if self.error is None:
            return "Unknown error"
        return self.error.message or "Unknown error"
