from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from functools import cached_property
from typing import Any, Dict, Literal, Optional, Tuple

RunType = Literal["Regeneration", "NetChange", "Unknown"]
RunStatus = Literal["Success", "Failed", "Incomplete", "Uncertain"]
EntryType = Literal["Job", "Part", "Demand", "Supply", "Error", "Other"]
Severity = Literal["Info", "Warning", "Critical"]
DifferenceType = Literal[
    "JobAdded",
    "JobRemoved",
    "DateShifted",
    "QuantityChanged",
    "ErrorAppeared",
    "ErrorResolved",
    "PartAppeared",
    "PartRemoved",
]

HEALTH_FLAGS: Tuple[str, ...] = ("error", "timeout", "abandoned", "defunct", "failed")

SEVERITIES: Tuple[Severity, ...] = ("Info", "Warning", "Critical")
SEVERITY_RANK: Dict[str, int] = {"Info": 0, "Warning": 1, "Critical": 2}

DIFFERENCE_TYPES: Tuple[DifferenceType, ...] = (
    "JobAdded",
    "JobRemoved",
    "DateShifted",
    "QuantityChanged",
    "ErrorAppeared",
    "ErrorResolved",
    "PartAppeared",
    "PartRemoved",
)
DIFFERENCE_TYPE_ORDER: Dict[str, int] = {name: idx for idx, name in enumerate(DIFFERENCE_TYPES)}


def max_severity(severities) -> Severity:
    ranked = sorted(severities, key=lambda s: SEVERITY_RANK[s])
    return ranked[-1] if ranked else "Info"


@dataclass(frozen=True)
class LogEntry:
    line_number: int
    raw_text: str
    entry_type: EntryType = "Other"
    job_number: Optional[str] = None
    part_number: Optional[str] = None
    date: Optional[date] = None
    quantity: Optional[Decimal] = None
    is_error: bool = False

    @property
    def job_key(self) -> Optional[str]:
        return self.job_number.upper() if self.job_number else None

    @property
    def part_key(self) -> Optional[str]:
        return self.part_number.upper() if self.part_number else None


@dataclass(frozen=True)
class ParsingError:
    line_number: int
    reason: str


def _distinct_case_insensitive(values) -> Tuple[str, ...]:
    seen: Dict[str, str] = {}
    for value in values:
        if value and value.upper() not in seen:
            seen[value.upper()] = value
    return tuple(seen.values())


@dataclass(frozen=True)
class LogDocument:
    source_id: str
    run_type: RunType = "Unknown"
    status: RunStatus = "Uncertain"
    site: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    health_flags: Tuple[str, ...] = ()
    entries: Tuple[LogEntry, ...] = ()
    parsing_errors: Tuple[ParsingError, ...] = ()
    line_count: int = 0

    @property
    def duration(self) -> Optional[timedelta]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def error_count(self) -> int:
        return sum(1 for entry in self.entries if entry.is_error)

    @property
    def job_numbers(self) -> Tuple[str, ...]:
        return _distinct_case_insensitive(entry.job_number for entry in self.entries)

    @property
    def part_numbers(self) -> Tuple[str, ...]:
        return _distinct_case_insensitive(entry.part_number for entry in self.entries)


@dataclass(frozen=True)
class Difference:
    type: DifferenceType
    severity: Severity
    description: str
    job_number: Optional[str] = None
    part_number: Optional[str] = None
    entry_a: Optional[LogEntry] = None
    entry_b: Optional[LogEntry] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ComparisonSummary:
    total: int
    by_severity: Dict[str, int]
    by_type: Dict[str, int]

    @property
    def critical(self) -> int:
        return self.by_severity.get("Critical", 0)

    @property
    def warning(self) -> int:
        return self.by_severity.get("Warning", 0)

    @property
    def info(self) -> int:
        return self.by_severity.get("Info", 0)

    @property
    def jobs_added(self) -> int:
        return self.by_type.get("JobAdded", 0)

    @property
    def jobs_removed(self) -> int:
        return self.by_type.get("JobRemoved", 0)

    @property
    def date_shifts(self) -> int:
        return self.by_type.get("DateShifted", 0)

    @property
    def quantity_changes(self) -> int:
        return self.by_type.get("QuantityChanged", 0)

    @property
    def new_errors(self) -> int:
        return self.by_type.get("ErrorAppeared", 0)

    @property
    def resolved_errors(self) -> int:
        return self.by_type.get("ErrorResolved", 0)

    @property
    def parts_appeared(self) -> int:
        return self.by_type.get("PartAppeared", 0)

    @property
    def parts_removed(self) -> int:
        return self.by_type.get("PartRemoved", 0)


def summarize(differences) -> ComparisonSummary:
    """Count differences per severity and per type.

    Every severity and type key is present, so an empty comparison reports
    explicit zeros rather than missing keys.
    """

    by_severity = {severity: 0 for severity in SEVERITIES}
    by_type = {diff_type: 0 for diff_type in DIFFERENCE_TYPES}
    total = 0
    for diff in differences:
        total += 1
        by_severity[diff.severity] += 1
        by_type[diff.type] += 1
    return ComparisonSummary(total=total, by_severity=by_severity, by_type=by_type)


@dataclass(frozen=True)
class Comparison:
    run_a: LogDocument
    run_b: LogDocument
    differences: Tuple[Difference, ...] = ()

    @cached_property
    def summary(self) -> ComparisonSummary:
        return summarize(self.differences)


@dataclass(frozen=True)
class ExplanationFact:
    statement: str
    line_number: Optional[int] = None
    evidence: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class ExplanationInference:
    statement: str
    confidence: float
    reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Explanation:
    summary: str
    group: str
    related_severity: Severity
    difference_count: int = 0
    facts: Tuple[ExplanationFact, ...] = ()
    inferences: Tuple[ExplanationInference, ...] = ()
    next_steps: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RunInputs:
    path_a: str
    path_b: str
