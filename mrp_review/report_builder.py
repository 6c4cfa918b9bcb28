from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .compare import compare_runs
from .explain import explain
from .parse_log import parse_log
from .report_model import (
    Comparison,
    Difference,
    Explanation,
    LogDocument,
    LogEntry,
    RunInputs,
)

logger = logging.getLogger(__name__)


class RunLoadError(Exception):
    pass


def _load_one(label: str, path: str) -> LogDocument:
    try:
        return parse_log(path)
    except FileNotFoundError as exc:
        raise RunLoadError(f"{label} log not found: {path}") from exc
    except OSError as exc:
        raise RunLoadError(f"{label} log could not be read: {path} ({exc})") from exc


def load_runs(inputs: RunInputs) -> Tuple[LogDocument, LogDocument]:
    """Parse both run logs; the two parses share nothing and run side by side."""

    with ThreadPoolExecutor(max_workers=2) as executor:
        future_a = executor.submit(_load_one, "Run A", inputs.path_a)
        future_b = executor.submit(_load_one, "Run B", inputs.path_b)
        run_a = future_a.result()
        run_b = future_b.result()
    logger.info(
        "Loaded runs: %s (%d entries), %s (%d entries)",
        run_a.source_id,
        len(run_a.entries),
        run_b.source_id,
        len(run_b.entries),
    )
    return run_a, run_b


def build_review(run_a: LogDocument, run_b: LogDocument) -> Tuple[Comparison, List[Explanation]]:
    comparison = compare_runs(run_a, run_b)
    return comparison, explain(comparison)


def _scalar(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def entry_to_dict(entry: Optional[LogEntry]) -> Optional[Dict]:
    if entry is None:
        return None
    return {
        "line_number": entry.line_number,
        "raw_text": entry.raw_text,
        "entry_type": entry.entry_type,
        "job_number": entry.job_number,
        "part_number": entry.part_number,
        "date": _scalar(entry.date),
        "quantity": _scalar(entry.quantity),
        "is_error": entry.is_error,
    }


def document_to_dict(document: LogDocument) -> Dict:
    duration = document.duration
    return {
        "source_id": document.source_id,
        "run_type": document.run_type,
        "status": document.status,
        "site": document.site,
        "start_time": _scalar(document.start_time),
        "end_time": _scalar(document.end_time),
        "duration_seconds": duration.total_seconds() if duration is not None else None,
        "health_flags": list(document.health_flags),
        "line_count": document.line_count,
        "error_count": document.error_count,
        "job_numbers": list(document.job_numbers),
        "part_numbers": list(document.part_numbers),
        "entries": [entry_to_dict(e) for e in document.entries],
        "parsing_errors": [
            {"line_number": issue.line_number, "reason": issue.reason} for issue in document.parsing_errors
        ],
    }


def difference_to_dict(diff: Difference) -> Dict:
    return {
        "type": diff.type,
        "severity": diff.severity,
        "description": diff.description,
        "job_number": diff.job_number,
        "part_number": diff.part_number,
        "entry_a": entry_to_dict(diff.entry_a),
        "entry_b": entry_to_dict(diff.entry_b),
        "details": {key: _scalar(value) for key, value in diff.details.items()},
    }


def comparison_to_dict(comparison: Comparison) -> Dict:
    summary = comparison.summary
    return {
        "run_a": document_to_dict(comparison.run_a),
        "run_b": document_to_dict(comparison.run_b),
        "differences": [difference_to_dict(d) for d in comparison.differences],
        "summary": {
            "total": summary.total,
            "by_severity": dict(summary.by_severity),
            "by_type": dict(summary.by_type),
        },
    }


def explanation_to_dict(explanation: Explanation) -> Dict:
    return {
        "summary": explanation.summary,
        "group": explanation.group,
        "related_severity": explanation.related_severity,
        "difference_count": explanation.difference_count,
        "facts": [
            {
                "statement": fact.statement,
                "line_number": fact.line_number,
                "evidence": fact.evidence,
                "source": fact.source,
            }
            for fact in explanation.facts
        ],
        "inferences": [
            {
                "statement": inference.statement,
                "confidence": inference.confidence,
                "reasons": list(inference.reasons),
            }
            for inference in explanation.inferences
        ],
        "next_steps": list(explanation.next_steps),
    }
