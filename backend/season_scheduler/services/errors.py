"""Scheduler exceptions. HTTP mapping lives in main.py."""

from typing import Any, List, Optional


class SchedulerError(Exception):
    """Base exception for scheduler errors"""

    pass


class SpecValidationError(SchedulerError):
    """ProblemSpec failed validation; nothing was solved."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload = {"detail": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ConflictError(SchedulerError):
    """All-or-nothing apply aborted because at least one assignment was rejected."""

    def __init__(self, message: str, outcomes: Optional[List[Any]] = None):
        super().__init__(message)
        self.message = message
        self.outcomes = outcomes or []

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "outcomes": [o.model_dump(by_alias=True, exclude_none=True) for o in self.outcomes],
        }
