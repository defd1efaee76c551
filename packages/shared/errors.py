"""
Domain exceptions shared by the API and the sync worker.
"""
from __future__ import annotations


class InvalidTransition(Exception):
    """Raised when a workflow or state-machine move is not allowed."""

    def __init__(self, current: str, target: str, kind: str = "status"):
        self.current = current
        self.target = target
        self.kind = kind
        super().__init__(f"Cannot move {kind} from '{current}' to '{target}'")


class PatientValidationError(Exception):
    def __init__(self, missing_fields: list[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(f"Missing required patient fields: {', '.join(self.missing_fields)}")


class SyncFailure(Exception):
    """A sync attempt failed; the message is what ends up on the session."""


class SyncCancelled(SyncFailure):
    def __init__(self, reason: str = "Sync cancelled"):
        self.reason = reason
        super().__init__(reason)


def error_text(exc: BaseException | None) -> str:
    if exc is None:
        return "Unknown error"
    return str(exc) or "Unknown error"
