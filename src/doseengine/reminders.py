# src/doseengine/reminders.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from threading import RLock
from typing import Callable, Hashable, Iterable, Optional, Sequence

import numpy as np

from . import config
from .errors import ConfigurationError
from .types import Medication, ReminderRunResult

logger = logging.getLogger(__name__)


def select_due_for_reminder(medications: Iterable[Medication], now: datetime,
                            window: Optional[timedelta] = None) -> list[Medication]:
    """
    Active medications whose next dose falls due within (now, now + window].

    Already-overdue medications are not reminders and are left out. The filter
    is read-only and keeps selecting a medication on every call until its due
    time passes; deduplication is the ReminderLedger's job.
    """
    if window is None:
        window = config.reminder_window()
    _validate_window("window", window)

    candidates = [m for m in medications if m.is_active and m.next_dose_due_at is not None]
    if not candidates:
        return []

    # seconds until due, vectorised so the full medication table scans in one pass
    lead_s = np.array([(m.next_dose_due_at - now).total_seconds() for m in candidates], dtype=float)
    mask = (lead_s > 0) & (lead_s <= window.total_seconds())
    return [m for m, keep in zip(candidates, mask) if keep]


def check_scan_interval(scan_interval: timedelta, window: timedelta) -> None:
    """A scheduler must scan strictly more often than the window, or windows get skipped."""
    _validate_window("scan_interval", scan_interval)
    _validate_window("window", window)
    if not scan_interval < window:
        raise ConfigurationError(
            f"scan_interval ({scan_interval}) must be shorter than the reminder window ({window}).")


def reminder_key(medication: Medication) -> tuple[str, Optional[datetime]]:
    return (medication.id, medication.next_dose_due_at)


class ReminderLedger:
    """
    "Already notified" markers keyed by (medication id, due timestamp).

    Confirming a dose moves next_dose_due_at, so the next due time gets a fresh
    key without anyone clearing the old one. Safe to share between overlapping
    reminder runs.
    """

    def __init__(self):
        self._lock = RLock()
        self._sent: dict[Hashable, Optional[datetime]] = {}

    def __contains__(self, medication: Medication) -> bool:
        with self._lock:
            return reminder_key(medication) in self._sent

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)

    def claim(self, medication: Medication) -> bool:
        """Mark as notified. Returns False if some earlier call already did."""
        key = reminder_key(medication)
        with self._lock:
            if key in self._sent:
                return False
            self._sent[key] = medication.next_dose_due_at
            return True

    def release(self, medication: Medication) -> None:
        with self._lock:
            self._sent.pop(reminder_key(medication), None)

    def prune(self, now: datetime) -> int:
        """Forget markers whose due time has passed. Returns how many were dropped."""
        with self._lock:
            stale = [k for k, due in self._sent.items() if due is None or due <= now]
            for k in stale:
                del self._sent[k]
            return len(stale)


def run_reminder_job(fetch_medications: Callable[[], Sequence[Medication]],
                     notify: Callable[[Medication], None],
                     ledger: ReminderLedger, now: datetime,
                     window: Optional[timedelta] = None) -> ReminderRunResult:
    """
    One scheduled reminder pass.

    fetch_medications : returns the full medication set, fetched fresh
    notify            : sends one reminder; if it raises, the claim is released
                        so the next pass retries, the failure is logged and
                        counted, and the pass moves on to the next medication
    """
    if window is None:
        # configured scan interval must fit inside the configured window
        check_scan_interval(config.scan_interval(), config.reminder_window())
    medications = fetch_medications()
    due = select_due_for_reminder(medications, now, window)
    notified = skipped = failed = 0
    try:
        for med in due:
            if not ledger.claim(med):
                skipped += 1
                continue
            try:
                notify(med)
            except Exception:
                ledger.release(med)
                failed += 1
                logger.exception("reminder for medication %s failed", med.id)
                continue
            notified += 1
    finally:
        dropped = ledger.prune(now)
    logger.info("reminder pass: %d due, %d notified, %d already sent, %d failed, %d markers pruned",
                len(due), notified, skipped, failed, dropped)
    return ReminderRunResult(processed=len(due), notified=notified, skipped=skipped, failed=failed)


# --------------------------
# Small input validators
# --------------------------
def _validate_window(name: str, x: timedelta) -> None:
    if not (x > timedelta(0)):
        raise ConfigurationError(f"{name} must be > 0 (got {x}).")
