from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple

from .report_model import (
    HEALTH_FLAGS,
    EntryType,
    LogDocument,
    LogEntry,
    ParsingError,
    RunStatus,
    RunType,
)

logger = logging.getLogger(__name__)

JOB_RE = re.compile(r"\bJob\b\s*:?\s*(?P<job>\d+)", re.IGNORECASE)
JOB_SHORT_RE = re.compile(r"\bJ:\s*(?P<job>\d+)", re.IGNORECASE)
JOB_MARKER_RE = re.compile(r"\bJob\s*:", re.IGNORECASE)

PART_RE = re.compile(r"\bPart\b\s*:?\s*(?P<part>[A-Z0-9][A-Z0-9-]*)", re.IGNORECASE)
PART_SHORT_RE = re.compile(r"\bP:\s*(?P<part>[A-Z0-9][A-Z0-9-]*)", re.IGNORECASE)

DATE_RE = re.compile(
    r"(?<!\d)(?:(?P<iso>(?P<y>\d{4})-(?P<m>\d{2})-(?P<d>\d{2}))|(?P<us>(?P<um>\d{1,2})/(?P<ud>\d{1,2})/(?P<uy>\d{4})))(?!\d)"
)
QUANTITY_RE = re.compile(r"\b(?:Quantity|Qty|Q)\s*:?\s*(?P<qty>\d+(?:\.\d+)?)", re.IGNORECASE)
ERROR_RE = re.compile(r"\b(?:ERROR|timeout|abandoned|defunct|failed|cannot)\b", re.IGNORECASE)
SUPPLY_RE = re.compile(r"\bSupply\b", re.IGNORECASE)
DEMAND_RE = re.compile(r"\bDemand\b", re.IGNORECASE)
SUPPLY_DEMAND_MARKER_RE = re.compile(r"\b(?:Supply|Demand)\s*:", re.IGNORECASE)

EXPLICIT_TIME_RE = re.compile(
    r"\b(?P<which>Start|End)\s+Time:\s*"
    r"(?P<date>\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4})\s+"
    r"(?P<time>\d{1,2}:\d{2}(?::\d{2})?)\s*(?:UTC)?",
    re.IGNORECASE,
)
BARE_TIMESTAMP_RE = re.compile(r"^\s*(?P<h>\d{2}):(?P<m>\d{2}):(?P<s>\d{2})\b")
LONG_DATE_HEADER_RE = re.compile(r"^\s*[A-Za-z]+,\s+(?P<month>[A-Za-z]+)\s+(?P<day>\d{1,2}),\s+(?P<year>\d{4})")
CONTEXT_DATE_RE = re.compile(r"\bDate:\s*(?P<date>\d{1,2}/\d{1,2}/\d{4})")

SITE_RE = re.compile(r"\bSite:\s*(?P<site>[A-Za-z0-9_-]+)", re.IGNORECASE)
SITE_LIST_RE = re.compile(r"\bSite List\s*->\s*(?P<site>[A-Za-z0-9_-]+)", re.IGNORECASE)

REGEN_RE = re.compile(r"\bRegeneration\b|\bMRP\s+Regen\b", re.IGNORECASE)
NET_CHANGE_RE = re.compile(r"\bNet\s+Change\b|\bNetChange\b", re.IGNORECASE)
PEGGING_RE = re.compile(r"\bBuilding\s+Pegging\b", re.IGNORECASE)
PROCESSING_PART_RE = re.compile(r"\bStart\s+Processing\s+Part\b", re.IGNORECASE)
COMPLETION_RE = re.compile(r"completed successfully|process\b.*\bcomplete", re.IGNORECASE)

HEALTH_FLAG_RES = [(flag, re.compile(rf"\b{flag}\b", re.IGNORECASE)) for flag in HEALTH_FLAGS]
FAILURE_FLAGS = frozenset({"error", "failed", "abandoned"})


def _is_noise(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("#")


def _parse_date_match(match: re.Match) -> Optional[date]:
    try:
        if match.group("iso"):
            return date(int(match.group("y")), int(match.group("m")), int(match.group("d")))
        return date(int(match.group("uy")), int(match.group("um")), int(match.group("ud")))
    except ValueError:
        return None


def _parse_date_literal(text: str) -> Optional[date]:
    match = DATE_RE.search(text)
    return _parse_date_match(match) if match else None


def extract_job_number(line: str) -> Optional[str]:
    match = JOB_RE.search(line) or JOB_SHORT_RE.search(line)
    return match.group("job") if match else None


def extract_part_number(line: str) -> Optional[str]:
    match = PART_RE.search(line) or PART_SHORT_RE.search(line)
    return match.group("part") if match else None


def extract_date(line: str) -> Optional[date]:
    """Return the first date literal in the line, or None if it is not a real date."""
    return _parse_date_literal(line)


def extract_quantity(line: str) -> Optional[Decimal]:
    match = QUANTITY_RE.search(line)
    if not match:
        return None
    try:
        return Decimal(match.group("qty"))
    except InvalidOperation:
        return None


def is_error_line(line: str) -> bool:
    return ERROR_RE.search(line) is not None


def _entry_type(line: str, *, job: Optional[str], part: Optional[str], is_error: bool) -> EntryType:
    if is_error:
        return "Error"
    if job:
        return "Job"
    if part:
        return "Part"
    if SUPPLY_RE.search(line):
        return "Supply"
    if DEMAND_RE.search(line):
        return "Demand"
    return "Other"


def parse_entry(line: str, line_number: int) -> Tuple[Optional[LogEntry], List[ParsingError]]:
    """Extract one entry from a raw line.

    Returns the entry (None for noise lines) plus any parsing issues the line
    produced. A line can yield both: an error line without job/part context
    is kept as an entry and also reported.
    """

    issues: List[ParsingError] = []
    if _is_noise(line):
        return None, issues

    job = extract_job_number(line)
    part = extract_part_number(line)
    entry_date = extract_date(line)
    quantity = extract_quantity(line)
    error = is_error_line(line)

    if job is None and JOB_MARKER_RE.search(line):
        issues.append(ParsingError(line_number, "job marker without a numeric job number"))

    if not (job or part or entry_date or error):
        if SUPPLY_DEMAND_MARKER_RE.search(line):
            issues.append(ParsingError(line_number, "supply/demand line without job, part, date or quantity"))
        return None, issues

    if error and not job and not part:
        issues.append(ParsingError(line_number, "error line has no job or part reference"))

    entry = LogEntry(
        line_number=line_number,
        raw_text=line.rstrip("\r\n"),
        entry_type=_entry_type(line, job=job, part=part, is_error=error),
        job_number=job,
        part_number=part,
        date=entry_date,
        quantity=quantity,
        is_error=error,
    )
    return entry, issues


def _explicit_times(lines: Sequence[str]) -> Tuple[Optional[datetime], Optional[datetime]]:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    for line in lines:
        match = EXPLICIT_TIME_RE.search(line)
        if not match:
            continue
        day = _parse_date_literal(match.group("date"))
        if day is None:
            continue
        parts = [int(p) for p in match.group("time").split(":")]
        try:
            moment = datetime.combine(day, time(*parts))
        except ValueError:
            continue
        if match.group("which").lower() == "start" and start is None:
            start = moment
        elif match.group("which").lower() == "end" and end is None:
            end = moment
    return start, end


def _contextual_date(lines: Sequence[str]) -> Optional[date]:
    for line in lines:
        match = LONG_DATE_HEADER_RE.match(line)
        if not match:
            continue
        try:
            header = f"{match.group('month')} {match.group('day')} {match.group('year')}"
            return datetime.strptime(header, "%B %d %Y").date()
        except ValueError:
            continue
    for line in lines:
        match = CONTEXT_DATE_RE.search(line)
        if match:
            parsed = _parse_date_literal(match.group("date"))
            if parsed is not None:
                return parsed
    return None


def _inferred_times(lines: Sequence[str], context: date) -> Tuple[Optional[datetime], Optional[datetime]]:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    previous: Optional[time] = None
    day_offset = 0
    for line in lines:
        match = BARE_TIMESTAMP_RE.match(line)
        if not match:
            continue
        try:
            clock = time(int(match.group("h")), int(match.group("m")), int(match.group("s")))
        except ValueError:
            continue
        if previous is not None and clock < previous:
            day_offset += 1
        previous = clock
        moment = datetime.combine(context + timedelta(days=day_offset), clock)
        if start is None:
            start = moment
        else:
            end = moment
    return start, end


def _run_times(lines: Sequence[str]) -> Tuple[Optional[datetime], Optional[datetime]]:
    start, end = _explicit_times(lines)
    # explicit and inferred times are never mixed
    if start is not None or end is not None:
        return start, end
    context = _contextual_date(lines)
    if context is None:
        return None, None
    return _inferred_times(lines, context)


def _site(lines: Sequence[str]) -> Optional[str]:
    for line in lines:
        match = SITE_RE.search(line) or SITE_LIST_RE.search(line)
        if match:
            return match.group("site")
    return None


def _run_type(lines: Sequence[str]) -> RunType:
    for line in lines:
        if REGEN_RE.search(line):
            return "Regeneration"
        if NET_CHANGE_RE.search(line):
            return "NetChange"
    if any(PEGGING_RE.search(line) for line in lines):
        return "Regeneration"
    if any(PROCESSING_PART_RE.search(line) for line in lines):
        return "NetChange"
    return "Unknown"


def _health_flags(lines: Sequence[str]) -> Tuple[str, ...]:
    found = {flag for line in lines for flag, pattern in HEALTH_FLAG_RES if pattern.search(line)}
    return tuple(flag for flag in HEALTH_FLAGS if flag in found)


def _status(
    lines: Sequence[str],
    *,
    flags: Tuple[str, ...],
    start: Optional[datetime],
    end: Optional[datetime],
) -> RunStatus:
    if FAILURE_FLAGS.intersection(flags):
        return "Failed"
    if start is not None and end is None:
        return "Incomplete"
    if any(COMPLETION_RE.search(line) for line in lines):
        return "Success"
    if start is not None and end is not None and not flags:
        return "Success"
    return "Uncertain"


def parse_lines(lines: Iterable[str], source_id: str) -> LogDocument:
    """Parse the lines of one MRP run log into a LogDocument.

    Malformed content never raises; lines that look structured but yield no
    usable fields are reported in ``parsing_errors``.
    """

    line_list = [line.rstrip("\r\n") for line in lines]
    entries: List[LogEntry] = []
    parsing_errors: List[ParsingError] = []

    for index, line in enumerate(line_list, start=1):
        entry, issues = parse_entry(line, index)
        parsing_errors.extend(issues)
        if entry is not None:
            entries.append(entry)

    start, end = _run_times(line_list)
    flags = _health_flags(line_list)
    document = LogDocument(
        source_id=source_id,
        run_type=_run_type(line_list),
        status=_status(line_list, flags=flags, start=start, end=end),
        site=_site(line_list),
        start_time=start,
        end_time=end,
        health_flags=flags,
        entries=tuple(entries),
        parsing_errors=tuple(parsing_errors),
        line_count=len(line_list),
    )
    logger.debug(
        "Parsed %s: %d lines, %d entries, %d parsing issues",
        source_id,
        document.line_count,
        len(document.entries),
        len(document.parsing_errors),
    )
    return document


def read_log_lines(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8-sig", errors="replace") as handle:
        return [raw_line.rstrip("\r\n") for raw_line in handle]


def parse_log(path: str) -> LogDocument:
    return parse_lines(read_log_lines(path), source_id=path)
