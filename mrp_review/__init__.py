"""Offline comparison of MRP run logs.

Parses two run logs, diffs them, explains the significant changes and renders a
report (markdown, plain text, HTML or JSON).
"""

TOOL_VERSION = "0.1.0"

from .compare import compare_runs
from .explain import explain
from .parse_log import parse_lines, parse_log
from .render_report import ReportOptions, UnsupportedFormatError, render_report
from .report_builder import RunLoadError, build_review, load_runs
from .report_model import Comparison, Difference, Explanation, LogDocument, LogEntry, RunInputs

__all__ = [
    "TOOL_VERSION",
    "Comparison",
    "Difference",
    "Explanation",
    "LogDocument",
    "LogEntry",
    "ReportOptions",
    "RunInputs",
    "RunLoadError",
    "UnsupportedFormatError",
    "build_review",
    "compare_runs",
    "explain",
    "load_runs",
    "parse_lines",
    "parse_log",
    "render_report",
]
