from __future__ import annotations

import hashlib
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from .report_model import Comparison, Difference, LogDocument, LogEntry, Severity

logger = logging.getLogger(__name__)

DATE_SHIFT_THRESHOLD_DAYS = 1.0
DATE_SHIFT_WARNING_DAYS = 3.0
DATE_SHIFT_CRITICAL_DAYS = 7.0

QUANTITY_CHANGE_THRESHOLD_PCT = Decimal("5")
QUANTITY_WARNING_PCT = Decimal("20")
QUANTITY_CRITICAL_PCT = Decimal("50")


def classify_date_shift(days: float) -> Optional[Severity]:
    """Severity for a date shift of ``days`` (sign ignored), or None below the threshold."""

    magnitude = abs(days)
    if magnitude <= DATE_SHIFT_THRESHOLD_DAYS:
        return None
    if magnitude > DATE_SHIFT_CRITICAL_DAYS:
        return "Critical"
    if magnitude > DATE_SHIFT_WARNING_DAYS:
        return "Warning"
    return "Info"


def classify_quantity_change(percent: Decimal) -> Optional[Severity]:
    """Severity for a quantity change of ``percent``, or None below the threshold."""

    if percent <= QUANTITY_CHANGE_THRESHOLD_PCT:
        return None
    if percent > QUANTITY_CRITICAL_PCT:
        return "Critical"
    if percent > QUANTITY_WARNING_PCT:
        return "Warning"
    return "Info"


def percent_change(old: Decimal, new: Decimal) -> Decimal:
    if old == 0:
        return Decimal(100) if new != 0 else Decimal(0)
    return abs(new - old) / abs(old) * 100


def format_quantity(quantity: Optional[Decimal]) -> str:
    if quantity is None:
        return "-"
    return format(quantity.normalize(), "f")


def _first_by_key(entries: Iterable[LogEntry], key_of) -> Dict[object, LogEntry]:
    first: Dict[object, LogEntry] = {}
    for entry in entries:
        key = key_of(entry)
        if key is not None and key not in first:
            first[key] = entry
    return first


def _job_changes(run_a: LogDocument, run_b: LogDocument) -> List[Difference]:
    jobs_a = _first_by_key(run_a.entries, lambda e: e.job_key)
    jobs_b = _first_by_key(run_b.entries, lambda e: e.job_key)

    differences: List[Difference] = []
    for key, entry in jobs_a.items():
        if key not in jobs_b:
            differences.append(
                Difference(
                    type="JobRemoved",
                    severity="Critical",
                    description=f"Job {entry.job_number} present in Run A but not in Run B",
                    job_number=entry.job_number,
                    part_number=entry.part_number,
                    entry_a=entry,
                )
            )
    for key, entry in jobs_b.items():
        if key not in jobs_a:
            differences.append(
                Difference(
                    type="JobAdded",
                    severity="Warning",
                    description=f"Job {entry.job_number} present in Run B but not in Run A",
                    job_number=entry.job_number,
                    part_number=entry.part_number,
                    entry_b=entry,
                )
            )
    return differences


def _dated_entries_by_job(document: LogDocument) -> Dict[str, List[LogEntry]]:
    grouped: Dict[str, List[LogEntry]] = {}
    for entry in document.entries:
        if entry.job_key and entry.date is not None:
            grouped.setdefault(entry.job_key, []).append(entry)
    return grouped


def _date_shifts(run_a: LogDocument, run_b: LogDocument) -> List[Difference]:
    dated_a = _dated_entries_by_job(run_a)
    dated_b = _dated_entries_by_job(run_b)

    differences: List[Difference] = []
    for job_key, entries_a in dated_a.items():
        entries_b = dated_b.get(job_key)
        if not entries_b:
            continue
        for entry_a, entry_b in zip(entries_a, entries_b):
            days = float((entry_b.date - entry_a.date).days)
            severity = classify_date_shift(days)
            if severity is None:
                continue
            differences.append(
                Difference(
                    type="DateShifted",
                    severity=severity,
                    description=(
                        f"Job {entry_a.job_number} date moved from {entry_a.date.isoformat()} "
                        f"to {entry_b.date.isoformat()} ({days:+g} days)"
                    ),
                    job_number=entry_a.job_number,
                    part_number=entry_a.part_number or entry_b.part_number,
                    entry_a=entry_a,
                    entry_b=entry_b,
                    details={
                        "days_difference": days,
                        "original_date": entry_a.date,
                        "new_date": entry_b.date,
                    },
                )
            )
            break
    return differences


def _quantity_key(entry: LogEntry) -> Optional[Tuple[str, str]]:
    if entry.quantity is None or not (entry.job_key or entry.part_key):
        return None
    return (entry.job_key or "", entry.part_key or "")


def _describe_subject(entry: LogEntry) -> str:
    parts = []
    if entry.job_number:
        parts.append(f"Job {entry.job_number}")
    if entry.part_number:
        parts.append(f"Part {entry.part_number}")
    return " / ".join(parts)


def _quantity_changes(run_a: LogDocument, run_b: LogDocument) -> List[Difference]:
    quantities_a = _first_by_key(run_a.entries, _quantity_key)
    quantities_b = _first_by_key(run_b.entries, _quantity_key)

    differences: List[Difference] = []
    for key, entry_a in quantities_a.items():
        entry_b = quantities_b.get(key)
        if entry_b is None:
            continue
        pct = percent_change(entry_a.quantity, entry_b.quantity)
        severity = classify_quantity_change(pct)
        if severity is None:
            continue
        differences.append(
            Difference(
                type="QuantityChanged",
                severity=severity,
                description=(
                    f"{_describe_subject(entry_a)} quantity changed from "
                    f"{format_quantity(entry_a.quantity)} to {format_quantity(entry_b.quantity)} "
                    f"({float(pct):.1f}%)"
                ),
                job_number=entry_a.job_number,
                part_number=entry_a.part_number,
                entry_a=entry_a,
                entry_b=entry_b,
                details={
                    "percent_change": round(float(pct), 2),
                    "original_quantity": entry_a.quantity,
                    "new_quantity": entry_b.quantity,
                },
            )
        )
    return differences


def _error_key(entry: LogEntry) -> Optional[Tuple[str, str, str]]:
    if not entry.is_error:
        return None
    digest = hashlib.sha1(entry.raw_text.strip().encode("utf-8")).hexdigest()
    return (entry.job_key or "", entry.part_key or "", digest)


def _error_subject(entry: LogEntry) -> str:
    subject = _describe_subject(entry)
    return f" ({subject})" if subject else ""


def _error_changes(run_a: LogDocument, run_b: LogDocument) -> List[Difference]:
    errors_a = _first_by_key(run_a.entries, _error_key)
    errors_b = _first_by_key(run_b.entries, _error_key)

    differences: List[Difference] = []
    for key, entry in errors_b.items():
        if key not in errors_a:
            differences.append(
                Difference(
                    type="ErrorAppeared",
                    severity="Critical",
                    description=f"New error in Run B{_error_subject(entry)}: {entry.raw_text.strip()}",
                    job_number=entry.job_number,
                    part_number=entry.part_number,
                    entry_b=entry,
                )
            )
    for key, entry in errors_a.items():
        if key not in errors_b:
            differences.append(
                Difference(
                    type="ErrorResolved",
                    severity="Info",
                    description=f"Error from Run A no longer present{_error_subject(entry)}: {entry.raw_text.strip()}",
                    job_number=entry.job_number,
                    part_number=entry.part_number,
                    entry_a=entry,
                )
            )
    return differences


def _part_changes(run_a: LogDocument, run_b: LogDocument) -> List[Difference]:
    parts_a = _first_by_key(run_a.entries, lambda e: e.part_key)
    parts_b = _first_by_key(run_b.entries, lambda e: e.part_key)

    differences: List[Difference] = []
    for key, entry in parts_a.items():
        if key not in parts_b:
            differences.append(
                Difference(
                    type="PartRemoved",
                    severity="Warning",
                    description=f"Part {entry.part_number} present in Run A but not in Run B",
                    job_number=entry.job_number,
                    part_number=entry.part_number,
                    entry_a=entry,
                )
            )
    for key, entry in parts_b.items():
        if key not in parts_a:
            differences.append(
                Difference(
                    type="PartAppeared",
                    severity="Warning",
                    description=f"Part {entry.part_number} present in Run B but not in Run A",
                    job_number=entry.job_number,
                    part_number=entry.part_number,
                    entry_b=entry,
                )
            )
    return differences


DETECTION_PASSES = (
    ("jobs", _job_changes),
    ("dates", _date_shifts),
    ("quantities", _quantity_changes),
    ("errors", _error_changes),
    ("parts", _part_changes),
)


def compare_runs(run_a: LogDocument, run_b: LogDocument) -> Comparison:
    """Diff two parsed runs.

    Every detection pass runs; differences keep pass order and, within a
    pass, the order entries were first seen in the logs.
    """

    differences: List[Difference] = []
    for name, detect in DETECTION_PASSES:
        found = detect(run_a, run_b)
        logger.debug("Pass %s found %d differences", name, len(found))
        differences.extend(found)

    comparison = Comparison(run_a=run_a, run_b=run_b, differences=tuple(differences))
    logger.info(
        "Compared %s vs %s: %d differences",
        run_a.source_id,
        run_b.source_id,
        comparison.summary.total,
    )
    return comparison
