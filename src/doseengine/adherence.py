# src/doseengine/adherence.py
from datetime import datetime, timedelta
from typing import Mapping, Optional, Sequence

import numpy as np

from .config import ADHERENCE_CONFIG
from .errors import ConfigurationError
from .helpers import split_logs_by_patient, split_medications_by_patient
from .types import AdherenceBand, DailyAdherence, DoseLog, Medication, PatientAdherence


def start_of_day(now: datetime) -> datetime:
    """Local midnight of the day containing `now` (tzinfo preserved)."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def trailing_window_start(now: datetime, days: int = ADHERENCE_CONFIG['trailing_days']) -> datetime:
    """Start of the trailing window used for the N-day percentage: now - days."""
    return now - timedelta(days=days)


def expected_daily_doses(medications: Sequence[Medication]) -> int:
    """
    Sum of frequency_per_day over active medications.
    Medications with a non-positive frequency contribute nothing; a frequency
    that is not a whole number raises ConfigurationError.
    """
    active = [m for m in medications if m.is_active]
    for m in active:
        _validate_int("frequency_per_day", m.frequency_per_day, m.id)
    freqs = np.array([m.frequency_per_day for m in active if m.frequency_per_day > 0], dtype=np.int64)
    return int(freqs.sum())


def confirmed_doses(dose_logs: Sequence[DoseLog], since: Optional[datetime] = None) -> int:
    """
    Number of dose logs administered at or after `since` (all of them if None).
    Timestamps are compared as datetimes, so mixing naive and aware values raises TypeError.
    """
    if since is None:
        return len(dose_logs)
    hits = np.fromiter((d.administered_at >= since for d in dose_logs), dtype=bool, count=len(dose_logs))
    return int(np.count_nonzero(hits))


def adherence_percentage(confirmed: int, expected: int) -> int:
    """
    round(100 * confirmed / expected), halves rounded up.
    Zero expected doses gives 0 so callers always have a number to show.
    """
    if expected <= 0:
        return 0
    return int(np.floor(100.0 * confirmed / expected + 0.5))


def compute_daily_adherence(medications: Sequence[Medication], dose_logs: Sequence[DoseLog],
                            start_of_day: Optional[datetime] = None) -> DailyAdherence:
    """
    Today's expected vs. confirmed doses for one patient.

    dose_logs are normally already restricted to today by the query; passing
    start_of_day filters them here as well.
    """
    expected = expected_daily_doses(medications)
    confirmed = confirmed_doses(dose_logs, since=start_of_day)
    return DailyAdherence(expected=expected, confirmed=confirmed,
                          percentage=adherence_percentage(confirmed, expected))


def compute_trailing_adherence(medications: Sequence[Medication], dose_logs: Sequence[DoseLog],
                               days: int = ADHERENCE_CONFIG['trailing_days'],
                               since: Optional[datetime] = None) -> int:
    """Adherence percentage over the last `days` days (expected = daily expected * days)."""
    if not (isinstance(days, int) and days > 0):
        raise ValueError(f"days must be a positive integer (got {days}).")
    expected_total = expected_daily_doses(medications) * days
    confirmed_total = confirmed_doses(dose_logs, since=since)
    return adherence_percentage(confirmed_total, expected_total)


def classify(percentage: float) -> AdherenceBand:
    """>= 80 Excellent, >= 60 Good, otherwise Needs Improvement."""
    if percentage >= ADHERENCE_CONFIG['excellent_min']:
        return AdherenceBand.EXCELLENT
    if percentage >= ADHERENCE_CONFIG['good_min']:
        return AdherenceBand.GOOD
    return AdherenceBand.NEEDS_IMPROVEMENT


def summarize_patients(patients: Mapping[str, str], medications: Sequence[Medication],
                       dose_logs: Sequence[DoseLog], now: datetime,
                       days: int = ADHERENCE_CONFIG['trailing_days']) -> list[PatientAdherence]:
    """
    Per-patient adherence rows.

    patients    : patient_id -> display name; one row per entry, in mapping order
    medications : medications of any patients (grouped by patient_id here)
    dose_logs   : logs covering at least the trailing window
    """
    meds_by_patient = split_medications_by_patient(medications)
    logs_by_patient = split_logs_by_patient(dose_logs)
    today = start_of_day(now)
    window_start = trailing_window_start(now, days)

    rows: list[PatientAdherence] = []
    for patient_id, name in patients.items():
        meds = [m for m in meds_by_patient.get(patient_id, []) if m.is_active]
        logs = logs_by_patient.get(patient_id, [])
        daily = compute_daily_adherence(meds, logs, start_of_day=today)
        trailing = compute_trailing_adherence(meds, logs, days=days, since=window_start)
        rows.append(PatientAdherence(
            patient_id=patient_id,
            patient_name=name,
            total_medications=len(meds),
            total_doses_today=daily.expected,
            confirmed_doses_today=daily.confirmed,
            adherence_percentage=daily.percentage,
            last_7_days_percentage=trailing,
            band=classify(daily.percentage),
        ))
    return rows


# --------------------------
# Small input validators
# --------------------------
def _validate_int(name: str, x, medication_id: str) -> None:
    if isinstance(x, bool) or not isinstance(x, (int, np.integer)):
        raise ConfigurationError(f"{name} must be a whole number for medication '{medication_id}' (got {x!r}).")
