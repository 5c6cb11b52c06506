from collections import defaultdict
from typing import Iterable, Optional

from .types import DoseLog, Medication


def split_medications_by_patient(medications: Iterable[Medication]) -> dict[Optional[str], list[Medication]]:
    """
    Group medications by patient_id.
    """
    buckets: dict[Optional[str], list[Medication]] = defaultdict(list)
    for m in medications:
        buckets[m.patient_id].append(m)
    return dict(buckets)


def split_logs_by_patient(dose_logs: Iterable[DoseLog]) -> dict[Optional[str], list[DoseLog]]:
    """
    Group dose logs by patient_id, each bucket sorted by administered_at.
    """
    buckets: dict[Optional[str], list[DoseLog]] = defaultdict(list)
    for d in dose_logs:
        buckets[d.patient_id].append(d)
    return {
        patient_id: sorted(ds, key=lambda x: x.administered_at)
        for patient_id, ds in buckets.items()
    }
