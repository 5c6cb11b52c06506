# src/doseengine/interval.py
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .errors import ConfigurationError, IneligibleDoseError
from .types import NOTE_TYPES, DoseLog, DoseNote, DoseRecord, Medication

logger = logging.getLogger(__name__)


def minimum_interval(medication: Medication) -> timedelta:
    """The dose window of a medication as a timedelta."""
    _validate_medication(medication)
    return timedelta(hours=float(medication.minimum_interval_hours))


def is_eligible_for_dose(medication: Medication, now: datetime) -> bool:
    """
    True when a new dose may be confirmed at `now`.

    A medication that has never been dosed is always eligible. Otherwise at least
    minimum_interval_hours must have elapsed since last_dose_at.
    """
    interval = minimum_interval(medication)
    if medication.last_dose_at is None:
        return True
    return now - medication.last_dose_at >= interval


def next_allowed_at(medication: Medication) -> Optional[datetime]:
    """Earliest instant a new dose may be confirmed (None if never dosed)."""
    interval = minimum_interval(medication)
    if medication.last_dose_at is None:
        return None
    return medication.last_dose_at + interval


def time_until_eligible(medication: Medication, now: datetime) -> timedelta:
    """Remaining wait before is_eligible_for_dose turns True; never negative."""
    allowed = next_allowed_at(medication)
    if allowed is None:
        return timedelta(0)
    return max(timedelta(0), allowed - now)


def is_overdue(medication: Medication, now: datetime) -> bool:
    """Display-only urgency flag. Has no bearing on eligibility."""
    _validate_medication(medication)
    due = medication.next_dose_due_at
    return due is not None and due < now


def record_dose(medication: Medication, now: datetime) -> DoseRecord:
    """
    Compute what a dose confirmed at `now` changes.

    Callers check is_eligible_for_dose first, but the check is repeated here and
    an IneligibleDoseError raised rather than producing a double dose.

    was_on_time      : now <= next_dose_due_at (True when there was no due time)
    last_dose_at     : now
    next_dose_due_at : now + minimum_interval_hours

    Nothing is persisted; the caller writes the DoseLog and the Medication update.
    """
    interval = minimum_interval(medication)
    if not is_eligible_for_dose(medication, now):
        remaining = time_until_eligible(medication, now)
        logger.info("rejected dose for %s: %s remaining", medication.id, remaining)
        raise IneligibleDoseError(medication.id, remaining, next_allowed_at(medication))

    due = medication.next_dose_due_at
    was_on_time = True if due is None else now <= due
    next_due = now + interval
    updated = replace(medication, last_dose_at=now, next_dose_due_at=next_due)
    return DoseRecord(was_on_time=was_on_time, last_dose_at=now,
                      next_dose_due_at=next_due, medication=updated)


def build_dose_log(medication: Medication, record: DoseRecord, *,
                   administered_by: Optional[str] = None,
                   notes: Iterable[DoseNote] = (),
                   images: Iterable[str] = (),
                   log_id: Optional[str] = None) -> DoseLog:
    """
    Turn a DoseRecord into the immutable DoseLog row for it.
    Notes must use one of the known note types (vomit, delayed, refused, notes).
    """
    notes = tuple(notes)
    for n in notes:
        _validate_note(n)
    return DoseLog(
        id=log_id or uuid.uuid4().hex,
        medication_id=medication.id,
        patient_id=medication.patient_id,
        administered_at=record.last_dose_at,
        was_on_time=record.was_on_time,
        administered_by=administered_by,
        notes=notes,
        images=tuple(images),
    )


# --------------------------
# Small input validators
# --------------------------
def _validate_medication(medication: Medication) -> None:
    _validate_positive("frequency_per_day", medication.frequency_per_day, medication.id)
    _validate_positive("minimum_interval_hours", medication.minimum_interval_hours, medication.id)

def _validate_positive(name: str, x: float, medication_id: str) -> None:
    if x is None or not (x > 0):
        raise ConfigurationError(f"{name} must be > 0 for medication '{medication_id}' (got {x}).")

def _validate_note(note: DoseNote) -> None:
    if note.note_type not in NOTE_TYPES:
        raise ValueError(f"note_type must be one of {NOTE_TYPES} (got {note.note_type!r}).")
