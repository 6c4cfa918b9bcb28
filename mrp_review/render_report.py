from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional, Sequence

from . import TOOL_VERSION
from .report_builder import comparison_to_dict, explanation_to_dict
from .report_model import (
    DIFFERENCE_TYPE_ORDER,
    DIFFERENCE_TYPES,
    SEVERITY_RANK,
    Comparison,
    Difference,
    Explanation,
    ExplanationInference,
    LogDocument,
)

ReportFormat = Literal["markdown", "plaintext", "html", "json"]

_FORMAT_ALIASES: Dict[str, ReportFormat] = {
    "markdown": "markdown",
    "md": "markdown",
    "plaintext": "plaintext",
    "plain": "plaintext",
    "text": "plaintext",
    "txt": "plaintext",
    "html": "html",
    "json": "json",
}

FORMAT_EXTENSIONS: Dict[str, str] = {
    "markdown": "md",
    "plaintext": "txt",
    "html": "html",
    "json": "json",
}

REPORT_TITLE = "MRP Log Comparison Report"
NO_DIFFERENCES = "No differences detected."
NO_EXPLANATIONS = "No explanations available."
NO_EVIDENCE = "No log evidence available."
EVIDENCE_OMITTED = "*Raw log evidence omitted from this report.*"
NO_NEXT_CHECKS = "No follow-up checks suggested."

ESCAPED_STAR = "\\*"

MUST_CHECK_KEYWORDS = ("job tracker", "system monitor")
SHOULD_CHECK_KEYWORDS = ("review", "check")


class UnsupportedFormatError(ValueError):
    def __init__(self, format_name: str):
        super().__init__(
            f"Unsupported report format: {format_name!r} (expected one of: markdown, plaintext, html, json)"
        )
        self.format_name = format_name


def parse_report_format(value: str) -> ReportFormat:
    key = (value or "").strip().lower()
    if key not in _FORMAT_ALIASES:
        raise UnsupportedFormatError(value)
    return _FORMAT_ALIASES[key]


@dataclass(frozen=True)
class ReportOptions:
    format: str = "markdown"
    max_differences: int = 10
    include_raw_evidence: bool = True
    generated_at: Optional[datetime] = None

    def validate(self) -> ReportFormat:
        if self.max_differences < 0:
            raise ValueError(f"max_differences must be >= 0 (got {self.max_differences})")
        return parse_report_format(self.format)


def _md_text(text: str) -> str:
    """Escape asterisks in log-derived text so they never read as emphasis."""
    return text.replace("*", ESCAPED_STAR)


def _fmt_timestamp(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "n/a"


def _fmt_duration(value: Optional[timedelta]) -> str:
    if value is None:
        return "n/a"
    total = int(value.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{sign}{hours}h {minutes}m {seconds}s"
    if minutes:
        return f"{sign}{minutes}m {seconds}s"
    return f"{sign}{seconds}s"


def confidence_label(confidence: float) -> str:
    if confidence >= 0.8:
        return "High"
    if confidence >= 0.6:
        return "Medium"
    return "Low"


def sort_differences(differences: Sequence[Difference]) -> List[Difference]:
    return sorted(
        differences,
        key=lambda d: (-SEVERITY_RANK[d.severity], DIFFERENCE_TYPE_ORDER[d.type]),
    )


def sort_explanations(explanations: Sequence[Explanation]) -> List[Explanation]:
    return sorted(explanations, key=lambda e: -SEVERITY_RANK[e.related_severity])


def _run_summary_lines(label: str, document: LogDocument) -> List[str]:
    return [
        f"### {label}",
        "",
        f"- **Source:** {document.source_id}",
        f"- **Run Type:** {document.run_type}",
        f"- **Status:** {document.status}",
        f"- **Site:** {document.site or 'n/a'}",
        f"- **Start:** {_fmt_timestamp(document.start_time)}",
        f"- **End:** {_fmt_timestamp(document.end_time)}",
        f"- **Duration:** {_fmt_duration(document.duration)}",
        f"- **Entries:** {len(document.entries)}",
        f"- **Errors:** {document.error_count}",
        f"- **Parts:** {len(document.part_numbers)}",
        f"- **Jobs:** {len(document.job_numbers)}",
        f"- **Health Flags:** {', '.join(document.health_flags) or 'none'}",
        f"- **Parsing Issues:** {len(document.parsing_errors)}",
        "",
    ]


def _difference_tags(diff: Difference) -> str:
    tags = []
    if diff.job_number:
        tags.append(f"Job: {diff.job_number}")
    if diff.part_number:
        tags.append(f"Part: {diff.part_number}")
    return f" ({', '.join(tags)})" if tags else ""


def _what_changed_lines(comparison: Comparison, max_differences: int) -> List[str]:
    summary = comparison.summary
    lines = ["## B) What Changed", ""]
    if not summary.total:
        return lines + [NO_DIFFERENCES, ""]

    lines.append(
        f"**Total Differences:** {summary.total} "
        f"(Critical: {summary.critical}, Warning: {summary.warning}, Info: {summary.info})"
    )
    lines.append("")
    ranked = sort_differences(comparison.differences)
    for diff in ranked[:max_differences]:
        lines.append(f"- **[{diff.severity}] {diff.type}:** {_md_text(diff.description + _difference_tags(diff))}")
    hidden = len(ranked) - max_differences
    if hidden > 0:
        lines.append("")
        lines.append(f"*...and {hidden} more differences*")
    lines.append("")
    lines.append("### By Type")
    lines.append("")
    for diff_type in DIFFERENCE_TYPES:
        count = summary.by_type.get(diff_type, 0)
        if count:
            lines.append(f"- {diff_type}: {count}")
    lines.append("")
    return lines


def _inference_line(inference: ExplanationInference) -> str:
    line = (
        f"- [{confidence_label(inference.confidence)} confidence, {inference.confidence:.2f}] "
        f"{_md_text(inference.statement)}"
    )
    if inference.reasons:
        line += f" (because: {_md_text('; '.join(inference.reasons))})"
    return line


def _fact_line(fact) -> str:
    if fact.line_number is not None and fact.source:
        return f"- {_md_text(fact.statement)} [{fact.source} line {fact.line_number}]"
    return f"- {_md_text(fact.statement)}"


def _why_lines(explanations: Sequence[Explanation]) -> List[str]:
    lines = ["## C) Most Likely Why", ""]
    if not explanations:
        return lines + [NO_EXPLANATIONS, ""]
    for index, explanation in enumerate(explanations, start=1):
        lines.append(f"### {index}. {_md_text(explanation.summary)} [{explanation.related_severity}]")
        lines.append("")
        if explanation.facts:
            lines.append("**Facts:**")
            lines.append("")
            lines.extend(_fact_line(fact) for fact in explanation.facts)
            lines.append("")
        if explanation.inferences:
            lines.append("**Inferences:**")
            lines.append("")
            lines.extend(_inference_line(inference) for inference in explanation.inferences)
            lines.append("")
    return lines


def _evidence_lines(explanations: Sequence[Explanation], include_raw_evidence: bool) -> List[str]:
    lines = ["## D) Log Evidence", ""]
    if not include_raw_evidence:
        return lines + [EVIDENCE_OMITTED, ""]
    emitted = False
    for explanation in explanations:
        evidence = [fact for fact in explanation.facts if fact.evidence]
        if not evidence:
            continue
        emitted = True
        lines.append(f"### {_md_text(explanation.summary)}")
        lines.append("")
        lines.append("```")
        for fact in evidence:
            prefix = f"{fact.source} line {fact.line_number}" if fact.source else f"line {fact.line_number}"
            lines.append(f"{prefix}: {fact.evidence}")
        lines.append("```")
        lines.append("")
    if not emitted:
        lines += [NO_EVIDENCE, ""]
    return lines


def bucket_next_steps(explanations: Sequence[Explanation]) -> Dict[str, List[str]]:
    """Deduplicate next steps (case-insensitive, first wording kept) and bucket them by keyword."""

    buckets: Dict[str, List[str]] = {"Must Check": [], "Should Check": [], "Optional": []}
    seen = set()
    for explanation in explanations:
        for step in explanation.next_steps:
            key = step.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            if any(word in key for word in MUST_CHECK_KEYWORDS):
                buckets["Must Check"].append(step.strip())
            elif any(word in key for word in SHOULD_CHECK_KEYWORDS):
                buckets["Should Check"].append(step.strip())
            else:
                buckets["Optional"].append(step.strip())
    return buckets


def _next_check_lines(explanations: Sequence[Explanation]) -> List[str]:
    lines = ["## E) Next Checks", ""]
    buckets = bucket_next_steps(explanations)
    if not any(buckets.values()):
        return lines + [NO_NEXT_CHECKS, ""]
    for name, steps in buckets.items():
        if not steps:
            continue
        lines.append(f"### {name}")
        lines.append("")
        lines.extend(f"- {_md_text(step)}" for step in steps)
        lines.append("")
    return lines


def render_markdown(comparison: Comparison, explanations: Sequence[Explanation], options: ReportOptions) -> str:
    lines = [f"# {REPORT_TITLE}", ""]
    if options.generated_at is not None:
        lines += [f"**Generated:** {_fmt_timestamp(options.generated_at)}", ""]

    lines += ["## A) Run Summary", ""]
    lines += _run_summary_lines("Run A", comparison.run_a)
    lines += _run_summary_lines("Run B", comparison.run_b)

    lines += _what_changed_lines(comparison, options.max_differences)

    shown = sort_explanations(explanations)[: options.max_differences]
    lines += _why_lines(shown)
    lines += _evidence_lines(shown, options.include_raw_evidence)
    lines += _next_check_lines(explanations)

    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines) + "\n"


_STRONG_RE = re.compile(r"\*\*(.+?)\*\*")
_EM_RE = re.compile(r"(?<![\*\w])\*(?!\s)(.+?)(?<!\s)\*(?![\*\w])")


def _strip_inline_markup(text: str) -> str:
    parts = text.split(ESCAPED_STAR)
    return "*".join(_EM_RE.sub(r"\1", _STRONG_RE.sub(r"\1", part)) for part in parts)


def markdown_to_plaintext(markdown: str) -> str:
    out: List[str] = []
    in_fence = False
    for line in markdown.splitlines():
        if line.startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            out.append(f"    {line}")
        elif line.startswith("# "):
            title = line[2:].upper()
            out += [title, "=" * len(title)]
        elif line.startswith("## "):
            title = line[3:].upper()
            out += [title, "-" * len(title)]
        elif line.startswith("### "):
            out.append(_strip_inline_markup(line[4:]))
        else:
            out.append(_strip_inline_markup(line))
    return "\n".join(out) + "\n"


def _inline_html(text: str) -> str:
    rendered = []
    for part in text.split(ESCAPED_STAR):
        escaped = _STRONG_RE.sub(r"<strong>\1</strong>", html.escape(part))
        rendered.append(_EM_RE.sub(r"<em>\1</em>", escaped))
    return "*".join(rendered)


_HTML_STYLE = """
    body { font-family: system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif; margin: 1.5rem; color: #111827; }
    h1 { font-size: 1.4rem; }
    h2 { border-bottom: 1px solid #e5e7eb; padding-bottom: 0.2rem; }
    pre { background: #0b1220; color: #e5e7eb; padding: 0.75rem; border-radius: 10px; overflow: auto; white-space: pre-wrap; }
    code, pre { font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, 'Liberation Mono', monospace; }
"""


def markdown_to_html(markdown: str) -> str:
    """Re-render the Markdown report as HTML, one output line per content line."""

    body: List[str] = []
    in_fence = False
    in_list = False
    for line in markdown.splitlines():
        if in_fence:
            if line.startswith("```"):
                body.append("</code></pre>")
                in_fence = False
            else:
                body.append(html.escape(line))
            continue
        if in_list and not line.startswith("- "):
            body.append("</ul>")
            in_list = False
        if line.startswith("```"):
            body.append("<pre><code>")
            in_fence = True
        elif line.startswith("### "):
            body.append(f"<h3>{_inline_html(line[4:])}</h3>")
        elif line.startswith("## "):
            body.append(f"<h2>{_inline_html(line[3:])}</h2>")
        elif line.startswith("# "):
            body.append(f"<h1>{_inline_html(line[2:])}</h1>")
        elif line.startswith("- "):
            if not in_list:
                body.append("<ul>")
                in_list = True
            body.append(f"<li>{_inline_html(line[2:])}</li>")
        elif line.strip():
            body.append(f"<p>{_inline_html(line)}</p>")
    if in_list:
        body.append("</ul>")
    if in_fence:
        body.append("</code></pre>")

    body_html = "\n".join(body)
    return (
        "<!doctype html>\n"
        "<html>\n"
        "<head>\n"
        '<meta charset="utf-8" />\n'
        f"<title>{html.escape(REPORT_TITLE)}</title>\n"
        f"<style>{_HTML_STYLE}</style>\n"
        "</head>\n"
        "<body>\n"
        f"{body_html}\n"
        "</body>\n"
        "</html>\n"
    )


def render_json(comparison: Comparison, explanations: Sequence[Explanation], options: ReportOptions) -> str:
    payload = {
        "generated_at": options.generated_at.isoformat() if options.generated_at else None,
        "tool_version": TOOL_VERSION,
        "comparison": comparison_to_dict(comparison),
        "explanations": [explanation_to_dict(e) for e in explanations],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def render_report(
    comparison: Comparison,
    explanations: Sequence[Explanation],
    options: Optional[ReportOptions] = None,
) -> str:
    options = options or ReportOptions()
    report_format = options.validate()
    if report_format == "json":
        return render_json(comparison, explanations, options)
    markdown = render_markdown(comparison, explanations, options)
    if report_format == "plaintext":
        return markdown_to_plaintext(markdown)
    if report_format == "html":
        return markdown_to_html(markdown)
    return markdown
