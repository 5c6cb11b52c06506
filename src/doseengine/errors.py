# src/doseengine/errors.py
from datetime import datetime, timedelta
from typing import Optional


class DoseEngineError(Exception):
    """Base class for errors raised by the dose engine."""


class ConfigurationError(DoseEngineError, ValueError):
    """A medication or scheduler setting is out of range (e.g. a non-positive interval)."""


class IneligibleDoseError(DoseEngineError):
    """
    A dose was recorded inside the minimum interval of the previous one.

    remaining       : how long until a dose may be confirmed
    next_allowed_at : the instant the wait ends
    """

    def __init__(self, medication_id: str, remaining: timedelta,
                 next_allowed_at: Optional[datetime] = None, reason: str = ""):
        self.medication_id = medication_id
        self.remaining = remaining
        self.next_allowed_at = next_allowed_at
        if not reason:
            when = next_allowed_at.isoformat() if next_allowed_at else "unknown"
            reason = f"next dose allowed at {when}"
        super().__init__(f"Cannot confirm dose for medication '{medication_id}' yet: {reason}.")


class DoseConflictError(DoseEngineError):
    """Another confirmation updated the medication between our read and our write."""

    def __init__(self, medication_id: str):
        self.medication_id = medication_id
        super().__init__(f"Medication '{medication_id}' was updated concurrently; re-read and check eligibility again.")
