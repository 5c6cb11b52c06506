# src/doseengine/service.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from threading import RLock
from typing import Iterable, Optional, Protocol

from .errors import DoseConflictError, IneligibleDoseError
from .interval import build_dose_log, record_dose
from .types import DoseLog, DoseNote, Medication

logger = logging.getLogger(__name__)


class DoseStore(Protocol):
    """What confirm_dose needs from the persistent store."""

    def get_medication(self, medication_id: str) -> Medication: ...

    def update_medication_if(self, medication: Medication,
                             expected_last_dose_at: Optional[datetime]) -> bool:
        """Write `medication` only if the stored last_dose_at still equals expected_last_dose_at."""
        ...

    def insert_dose_log(self, log: DoseLog) -> None: ...


class InMemoryDoseStore:
    """Dict-backed DoseStore with the conditional write done under a lock."""

    def __init__(self, medications: Iterable[Medication] = ()):
        self._lock = RLock()
        self._medications: dict[str, Medication] = {m.id: m for m in medications}
        self._dose_logs: list[DoseLog] = []

    def add_medication(self, medication: Medication) -> None:
        with self._lock:
            self._medications[medication.id] = medication

    def get_medication(self, medication_id: str) -> Medication:
        with self._lock:
            med = self._medications.get(medication_id)
        if med is None:
            raise KeyError(f"Unknown medication_id '{medication_id}'.")
        return med

    def list_medications(self) -> list[Medication]:
        with self._lock:
            return list(self._medications.values())

    def update_medication_if(self, medication: Medication,
                             expected_last_dose_at: Optional[datetime]) -> bool:
        with self._lock:
            current = self._medications.get(medication.id)
            if current is None:
                raise KeyError(f"Unknown medication_id '{medication.id}'.")
            if current.last_dose_at != expected_last_dose_at:
                return False
            self._medications[medication.id] = medication
            return True

    def insert_dose_log(self, log: DoseLog) -> None:
        with self._lock:
            self._dose_logs.append(log)

    def list_dose_logs(self, patient_id: Optional[str] = None,
                       since: Optional[datetime] = None) -> list[DoseLog]:
        with self._lock:
            logs = list(self._dose_logs)
        if patient_id is not None:
            logs = [d for d in logs if d.patient_id == patient_id]
        if since is not None:
            logs = [d for d in logs if d.administered_at >= since]
        return logs


def confirm_dose(store: DoseStore, medication_id: str, now: datetime, *,
                 administered_by: Optional[str] = None,
                 notes: Iterable[DoseNote] = (),
                 images: Iterable[str] = ()) -> DoseLog:
    """
    Check eligibility, then persist one confirmed dose.

    The medication update is a conditional write keyed on the last_dose_at we
    read, so of two callers that both saw the medication as eligible only one
    wins. The loser gets DoseConflictError and no DoseLog is written for it.
    The DoseLog is inserted only after the medication update has landed; if the
    insert fails, the medication is conditionally restored to what was read and
    the insert error propagates.
    """
    medication = store.get_medication(medication_id)
    if not medication.is_active:
        raise IneligibleDoseError(medication_id, timedelta(0), reason="medication is inactive")

    record = record_dose(medication, now)
    log = build_dose_log(medication, record, administered_by=administered_by,
                         notes=notes, images=images)

    if not store.update_medication_if(record.medication, medication.last_dose_at):
        logger.warning("dose confirmation conflict on medication %s", medication_id)
        raise DoseConflictError(medication_id)
    try:
        store.insert_dose_log(log)
    except Exception:
        # put last/next dose back so an unrecorded dose does not block the next one
        if not store.update_medication_if(medication, record.last_dose_at):
            logger.error("could not roll back medication %s after failed dose log insert", medication_id)
        else:
            logger.warning("dose log insert failed for %s; medication rolled back", medication_id)
        raise

    logger.info("dose confirmed for %s at %s (on time: %s), next due %s",
                medication_id, now.isoformat(), record.was_on_time,
                record.next_dose_due_at.isoformat())
    return log
