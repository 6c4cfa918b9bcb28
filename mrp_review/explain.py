from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .compare import format_quantity
from .report_model import (
    Comparison,
    Difference,
    Explanation,
    ExplanationFact,
    ExplanationInference,
    LogDocument,
    LogEntry,
    max_severity,
)

logger = logging.getLogger(__name__)

# Differences itemized as facts per explanation; the rest are summarized in one line.
MAX_ITEMIZED_PER_GROUP = 5

GROUP_TYPES: Dict[str, tuple] = {
    "jobs": ("JobRemoved", "JobAdded"),
    "dates": ("DateShifted",),
    "quantities": ("QuantityChanged",),
    "errors": ("ErrorAppeared", "ErrorResolved"),
    "parts": ("PartRemoved", "PartAppeared"),
}

NO_CHANGES_TITLE = "No Significant Changes"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _entry_fact(statement: str, entry: Optional[LogEntry], source: str) -> ExplanationFact:
    if entry is None:
        return ExplanationFact(statement=statement, source=source)
    return ExplanationFact(
        statement=statement,
        line_number=entry.line_number,
        evidence=entry.raw_text,
        source=source,
    )


def _overflow_fact(total: int) -> List[ExplanationFact]:
    hidden = total - MAX_ITEMIZED_PER_GROUP
    if hidden <= 0:
        return []
    return [ExplanationFact(statement=f"...and {hidden} more not itemized here")]


def _first_error_for_job(document: LogDocument, job_key: Optional[str]) -> Optional[LogEntry]:
    if not job_key:
        return None
    for entry in document.entries:
        if entry.is_error and entry.job_key == job_key:
            return entry
    return None


def _explain_jobs(diffs: List[Difference], comparison: Comparison) -> Explanation:
    removed = [d for d in diffs if d.type == "JobRemoved"]
    added = [d for d in diffs if d.type == "JobAdded"]

    facts = [
        ExplanationFact(
            statement=f"{_plural(len(removed), 'job')} removed and {_plural(len(added), 'job')} added between runs"
        )
    ]
    for diff in diffs[:MAX_ITEMIZED_PER_GROUP]:
        if diff.type == "JobRemoved":
            facts.append(
                _entry_fact(
                    f"Job {diff.job_number} present in Run A at line {diff.entry_a.line_number}, not found in Run B",
                    diff.entry_a,
                    "Run A",
                )
            )
        else:
            facts.append(
                _entry_fact(
                    f"Job {diff.job_number} found in Run B at line {diff.entry_b.line_number}, not present in Run A",
                    diff.entry_b,
                    "Run B",
                )
            )
    facts.extend(_overflow_fact(len(diffs)))

    inferences = [
        ExplanationInference(
            statement="Job changes may indicate a schedule or demand change between runs",
            confidence=0.75,
            reasons=(
                "Jobs were created or removed between runs",
                f"Run B was a {comparison.run_b.run_type} run",
            ),
        )
    ]

    errored = []
    for diff in removed:
        error_entry = _first_error_for_job(comparison.run_a, diff.entry_a.job_key)
        if error_entry is not None:
            errored.append(diff.job_number)
            facts.append(_entry_fact(f"Run A logged an error for Job {diff.job_number}", error_entry, "Run A"))
    if errored:
        inferences.append(
            ExplanationInference(
                statement=f"Job(s) {', '.join(errored)} may have been removed because of errors in Run A",
                confidence=0.70,
                reasons=("Run A logged an error for the removed job", "Failed jobs are often cleaned up before the next run"),
            )
        )

    next_steps = ["Check Job Tracker for deletion history"]
    if added:
        next_steps.append("Check Time Phase Inquiry for new demand sources")
    next_steps.append("Review Job Entry screen for manual changes")

    return Explanation(
        summary=f"Job changes between runs: {len(removed)} removed, {len(added)} added",
        group="jobs",
        related_severity=max_severity(d.severity for d in diffs),
        difference_count=len(diffs),
        facts=tuple(facts),
        inferences=tuple(inferences),
        next_steps=tuple(next_steps),
    )


def _explain_dates(diffs: List[Difference], comparison: Comparison) -> Explanation:
    facts: List[ExplanationFact] = []
    for diff in diffs[:MAX_ITEMIZED_PER_GROUP]:
        details = diff.details
        facts.append(
            _entry_fact(
                f"Job {diff.job_number} due date was {details['original_date'].isoformat()} in Run A",
                diff.entry_a,
                "Run A",
            )
        )
        facts.append(
            _entry_fact(
                f"Job {diff.job_number} due date is {details['new_date'].isoformat()} in Run B "
                f"({details['days_difference']:+g} days)",
                diff.entry_b,
                "Run B",
            )
        )
    facts.extend(_overflow_fact(len(diffs)))

    requantified = {
        d.entry_a.job_key
        for d in comparison.differences
        if d.type == "QuantityChanged" and d.entry_a is not None and d.entry_a.job_key
    }
    if any(d.entry_a.job_key in requantified for d in diffs):
        inference = ExplanationInference(
            statement="Date shift likely caused by a quantity change and capacity constraints",
            confidence=0.80,
            reasons=("Quantity change detected for the same job", "More capacity is needed to meet the new quantity"),
        )
    else:
        inference = ExplanationInference(
            statement="Date shift may be due to resource availability or scheduling changes",
            confidence=0.65,
            reasons=("No quantity change detected for the shifted jobs", "Suggests a resource or calendar constraint"),
        )

    return Explanation(
        summary=f"{_plural(len(diffs), 'job due date')} shifted",
        group="dates",
        related_severity=max_severity(d.severity for d in diffs),
        difference_count=len(diffs),
        facts=tuple(facts),
        inferences=(inference,),
        next_steps=(
            "Check Resource Scheduling for capacity conflicts",
            "Review Load Leveling settings",
            "Check job routing for operation duration changes",
        ),
    )


def _subject(diff: Difference) -> str:
    parts = []
    if diff.job_number:
        parts.append(f"Job {diff.job_number}")
    if diff.part_number:
        parts.append(f"Part {diff.part_number}")
    return " / ".join(parts)


def _explain_quantities(diffs: List[Difference], comparison: Comparison) -> Explanation:
    facts: List[ExplanationFact] = []
    for diff in diffs[:MAX_ITEMIZED_PER_GROUP]:
        details = diff.details
        facts.append(
            _entry_fact(
                f"{_subject(diff)} quantity was {format_quantity(details['original_quantity'])} in Run A",
                diff.entry_a,
                "Run A",
            )
        )
        facts.append(
            _entry_fact(
                f"{_subject(diff)} quantity is {format_quantity(details['new_quantity'])} in Run B "
                f"({details['percent_change']:.1f}% change)",
                diff.entry_b,
                "Run B",
            )
        )
    facts.extend(_overflow_fact(len(diffs)))

    increases = sum(1 for d in diffs if d.details["new_quantity"] > d.details["original_quantity"])
    decreases = len(diffs) - increases
    if increases and not decreases:
        inference = ExplanationInference(
            statement="Quantity increase likely due to additional demand from sales orders or forecast",
            confidence=0.80,
            reasons=("Quantities increased between runs", "Suggests new or increased customer demand"),
        )
    elif decreases and not increases:
        inference = ExplanationInference(
            statement="Quantity decrease may be due to demand reduction or order cancellation",
            confidence=0.75,
            reasons=("Quantities decreased between runs", "Suggests a reduced forecast or cancelled orders"),
        )
    else:
        inference = ExplanationInference(
            statement="Mixed quantity changes suggest demand was rebalanced between jobs",
            confidence=0.60,
            reasons=(f"{increases} increased and {decreases} decreased",),
        )

    return Explanation(
        summary="1 quantity changed" if len(diffs) == 1 else f"{len(diffs)} quantities changed",
        group="quantities",
        related_severity=max_severity(d.severity for d in diffs),
        difference_count=len(diffs),
        facts=tuple(facts),
        inferences=(inference,),
        next_steps=(
            "Check Time Phase Inquiry for demand source changes",
            "Review Sales Order Entry for order modifications",
            "Check Forecast Entry for forecast adjustments",
        ),
    )


def _explain_errors(diffs: List[Difference], comparison: Comparison) -> Optional[Explanation]:
    appeared = [d for d in diffs if d.type == "ErrorAppeared"]
    resolved = [d for d in diffs if d.type == "ErrorResolved"]
    if not appeared:
        return None

    facts = [
        ExplanationFact(
            statement=f"{_plural(len(appeared), 'error')} appeared in Run B and {len(resolved)} resolved since Run A"
        )
    ]
    for diff in appeared[:MAX_ITEMIZED_PER_GROUP]:
        facts.append(_entry_fact(f"Run B logged error: {diff.entry_b.raw_text.strip()}", diff.entry_b, "Run B"))
    facts.extend(_overflow_fact(len(appeared)))

    if any(d.severity == "Critical" for d in appeared):
        inferences = [
            ExplanationInference(
                statement="New errors may be caused by missing parts or invalid BOMs",
                confidence=0.85,
                reasons=("Critical errors appeared that Run A did not log", "Recent part master or BOM changes are common causes"),
            )
        ]
    else:
        inferences = [
            ExplanationInference(
                statement="New errors may be caused by missing parts or invalid BOMs",
                confidence=0.65,
                reasons=("Errors appeared that Run A did not log",),
            )
        ]
    if any("timeout" in d.entry_b.raw_text.lower() for d in appeared):
        inferences.append(
            ExplanationInference(
                statement="Timeout likely caused by network latency or database performance",
                confidence=0.75,
                reasons=("Timeout errors are often infrastructure related",),
            )
        )

    return Explanation(
        summary=f"{_plural(len(appeared), 'new error')} in Run B",
        group="errors",
        related_severity=max_severity(d.severity for d in diffs),
        difference_count=len(diffs),
        facts=tuple(facts),
        inferences=tuple(inferences),
        next_steps=(
            "Check System Monitor for performance issues",
            "Review Part Master for recent changes",
            "Verify BOM and routing data integrity",
        ),
    )


def _explain_parts(diffs: List[Difference], comparison: Comparison) -> Explanation:
    removed = [d for d in diffs if d.type == "PartRemoved"]
    appeared = [d for d in diffs if d.type == "PartAppeared"]

    facts = [
        ExplanationFact(
            statement=f"{_plural(len(removed), 'part')} removed and {_plural(len(appeared), 'part')} appeared between runs"
        )
    ]
    for diff in diffs[:MAX_ITEMIZED_PER_GROUP]:
        if diff.type == "PartRemoved":
            facts.append(_entry_fact(f"Part {diff.part_number} only processed in Run A", diff.entry_a, "Run A"))
        else:
            facts.append(_entry_fact(f"Part {diff.part_number} only processed in Run B", diff.entry_b, "Run B"))
    facts.extend(_overflow_fact(len(diffs)))

    return Explanation(
        summary=f"Part changes between runs: {len(removed)} removed, {len(appeared)} appeared",
        group="parts",
        related_severity=max_severity(d.severity for d in diffs),
        difference_count=len(diffs),
        facts=tuple(facts),
        inferences=(
            ExplanationInference(
                statement="Part list changes may reflect BOM revisions or changed demand",
                confidence=0.60,
                reasons=("A part alone is a weak signal without a matching job change",),
            ),
        ),
        next_steps=(
            "Review BOM revisions for the affected parts",
            "Verify the parts are active in Part Master",
        ),
    )


GROUP_EXPLAINERS = {
    "jobs": _explain_jobs,
    "dates": _explain_dates,
    "quantities": _explain_quantities,
    "errors": _explain_errors,
    "parts": _explain_parts,
}


def _no_changes(comparison: Comparison) -> Explanation:
    return Explanation(
        summary=NO_CHANGES_TITLE,
        group="none",
        related_severity="Info",
        difference_count=comparison.summary.total,
        facts=(ExplanationFact(statement=f"Total differences detected: {comparison.summary.total}"),),
        inferences=(
            ExplanationInference(
                statement="Both runs produced equivalent planning output",
                confidence=0.90,
                reasons=("No differences were detected between the runs",),
            ),
        ),
        next_steps=("Confirm both logs cover the same site and planning horizon",),
    )


def explain(comparison: Comparison) -> List[Explanation]:
    """Build at most one explanation per difference group.

    Groups are visited in a fixed order (jobs, dates, quantities, errors,
    parts). A comparison with no differences at all gets a single "No
    Significant Changes" explanation; a group with nothing to explain (only
    resolved errors) is simply skipped.
    """

    explanations: List[Explanation] = []
    for group, types in GROUP_TYPES.items():
        diffs = [d for d in comparison.differences if d.type in types]
        if not diffs:
            continue
        explanation = GROUP_EXPLAINERS[group](diffs, comparison)
        if explanation is not None:
            explanations.append(explanation)

    if not comparison.differences:
        explanations.append(_no_changes(comparison))

    logger.info("Generated %d explanations", len(explanations))
    return explanations
