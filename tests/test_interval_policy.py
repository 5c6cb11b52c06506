from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from doseengine.types import DoseNote, Medication
from doseengine.errors import ConfigurationError, IneligibleDoseError
from doseengine.interval import (
    build_dose_log, is_eligible_for_dose, is_overdue, next_allowed_at,
    record_dose, time_until_eligible,
)

T = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def _med(**kw) -> Medication:
    base = dict(id="med-1", frequency_per_day=3, minimum_interval_hours=8.0, patient_id="p-1")
    base.update(kw)
    return Medication(**base)


def test_first_dose_always_eligible():
    """A medication that was never dosed can be confirmed at any instant."""
    med = _med()
    for now in (T, T - timedelta(days=400), T + timedelta(days=400)):
        assert is_eligible_for_dose(med, now)
        assert time_until_eligible(med, now) == timedelta(0)
    assert next_allowed_at(med) is None


def test_minimum_interval_boundary():
    """
    8 h interval, last dose at T:
      T + 7h59m -> not eligible (1 minute left)
      T + 8h    -> eligible (boundary inclusive)
    """
    med = _med(last_dose_at=T)
    early = T + timedelta(hours=7, minutes=59)
    assert not is_eligible_for_dose(med, early)
    assert time_until_eligible(med, early) == timedelta(minutes=1)

    assert is_eligible_for_dose(med, T + timedelta(hours=8))
    assert time_until_eligible(med, T + timedelta(hours=8)) == timedelta(0)
    assert next_allowed_at(med) == T + timedelta(hours=8)


def test_wait_is_never_negative_and_zero_iff_eligible():
    med = _med(last_dose_at=T, minimum_interval_hours=2.5)
    for minutes in range(-60, 400, 7):
        now = T + timedelta(minutes=minutes)
        wait = time_until_eligible(med, now)
        assert wait >= timedelta(0)
        assert (wait == timedelta(0)) == is_eligible_for_dose(med, now)


def test_on_time_relative_to_due_time():
    """Confirmed 10 minutes late -> not on time; 10 minutes early -> on time."""
    med = _med(last_dose_at=T - timedelta(hours=9), next_dose_due_at=T)
    late = record_dose(med, T + timedelta(minutes=10))
    early = record_dose(med, T - timedelta(minutes=10))
    assert late.was_on_time is False
    assert early.was_on_time is True


def test_on_time_exactly_at_due_time():
    med = _med(last_dose_at=T - timedelta(hours=9), next_dose_due_at=T)
    assert record_dose(med, T).was_on_time is True


def test_record_dose_without_due_time_is_on_time():
    rec = record_dose(_med(), T)
    assert rec.was_on_time is True


def test_record_dose_updates_timestamps():
    """next due = now + interval; last dose = now; the input medication is untouched."""
    med = _med(minimum_interval_hours=6.0)
    rec = record_dose(med, T)
    assert rec.last_dose_at == T
    assert rec.next_dose_due_at == T + timedelta(hours=6)
    assert rec.medication.last_dose_at == T
    assert rec.medication.next_dose_due_at == T + timedelta(hours=6)
    assert rec.medication.next_dose_due_at >= rec.medication.last_dose_at
    assert med.last_dose_at is None


def test_record_dose_is_deterministic():
    med = _med(last_dose_at=T - timedelta(hours=9), next_dose_due_at=T - timedelta(hours=1))
    assert record_dose(med, T) == record_dose(med, T)


def test_record_dose_rejects_double_dose():
    med = _med(last_dose_at=T)
    with pytest.raises(IneligibleDoseError) as exc:
        record_dose(med, T + timedelta(hours=3))
    assert exc.value.remaining == timedelta(hours=5)
    assert exc.value.next_allowed_at == T + timedelta(hours=8)


def test_overdue_is_strict():
    med = _med(next_dose_due_at=T)
    assert not is_overdue(med, T)
    assert is_overdue(med, T + timedelta(seconds=1))
    assert not is_overdue(_med(), T)


@pytest.mark.parametrize("field,value", [
    ("frequency_per_day", 0),
    ("frequency_per_day", -2),
    ("minimum_interval_hours", 0.0),
    ("minimum_interval_hours", -1.5),
])
def test_non_positive_settings_raise(field, value):
    med = replace(_med(last_dose_at=T, next_dose_due_at=T), **{field: value})
    for fn in (is_eligible_for_dose, time_until_eligible, is_overdue, record_dose):
        with pytest.raises(ConfigurationError):
            fn(med, T)
    with pytest.raises(ConfigurationError):
        next_allowed_at(med)


def test_build_dose_log_carries_record():
    med = _med(next_dose_due_at=T - timedelta(minutes=5), last_dose_at=T - timedelta(hours=9))
    rec = record_dose(med, T)
    log = build_dose_log(med, rec, administered_by="cg-7",
                         notes=[DoseNote("delayed", "woke up late")], images=["img/1.jpg"])
    assert log.medication_id == "med-1"
    assert log.patient_id == "p-1"
    assert log.administered_at == T
    assert log.was_on_time is False
    assert log.status == "confirmed"
    assert log.notes == (DoseNote("delayed", "woke up late"),)
    assert log.images == ("img/1.jpg",)
    assert len(log.id) == 32


def test_build_dose_log_rejects_unknown_note_type():
    med = _med()
    with pytest.raises(ValueError):
        build_dose_log(med, record_dose(med, T), notes=[DoseNote("sneezed")])
