# src/doseengine/types.py
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Tuple

# All intervals are configured in HOURS; timestamps are datetimes supplied by the caller.
NoteType = Literal["vomit", "delayed", "refused", "notes"]
NOTE_TYPES: Tuple[str, ...] = ("vomit", "delayed", "refused", "notes")


@dataclass(frozen=True)
class Medication:
    """
    One prescribed regimen for one patient.

    id                     : identifier of the medication record
    frequency_per_day      : expected doses per 24 h (positive int)
    minimum_interval_hours : minimum time between two confirmed doses (positive)
    is_active              : inactive medications are skipped everywhere
    last_dose_at           : when the most recent dose was confirmed, if ever
    next_dose_due_at       : deadline for the next expected dose, if known
    patient_id             : owning patient
    """
    id: str
    frequency_per_day: int
    minimum_interval_hours: float
    is_active: bool = True
    last_dose_at: Optional[datetime] = None
    next_dose_due_at: Optional[datetime] = None
    patient_id: Optional[str] = None
    name: str = ""
    dosage: str = ""
    instructions: str = ""


@dataclass(frozen=True)
class DoseNote:
    note_type: NoteType
    content: str = ""


@dataclass(frozen=True)
class DoseLog:
    """
    An administered dose. Written once, never updated.

    was_on_time is decided at confirmation time against the medication's
    next_dose_due_at as it was *before* the confirmation.
    """
    id: str
    medication_id: str
    patient_id: Optional[str]
    administered_at: datetime
    was_on_time: bool
    administered_by: Optional[str] = None
    status: str = "confirmed"
    notes: Tuple[DoseNote, ...] = ()
    images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DoseRecord:
    """Result of record_dose: what to stamp on the DoseLog and persist on the Medication."""
    was_on_time: bool
    last_dose_at: datetime
    next_dose_due_at: datetime
    medication: Medication


class AdherenceBand(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    NEEDS_IMPROVEMENT = "Needs Improvement"


@dataclass(frozen=True)
class DailyAdherence:
    expected: int
    confirmed: int
    percentage: int


@dataclass(frozen=True)
class PatientAdherence:
    """One row of the per-patient adherence overview."""
    patient_id: str
    patient_name: str
    total_medications: int
    total_doses_today: int
    confirmed_doses_today: int
    adherence_percentage: int
    last_7_days_percentage: int
    band: AdherenceBand


@dataclass(frozen=True)
class ReminderRunResult:
    processed: int
    notified: int
    skipped: int
    failed: int = 0
