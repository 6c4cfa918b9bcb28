from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime

from .config import ReviewConfig, load_review_config
from .demo import DEMO_OUTPUT, demo_documents
from .logging_utils import setup_logging
from .parse_log import parse_log
from .render_report import FORMAT_EXTENSIONS, ReportOptions, parse_report_format, render_report
from .report_builder import RunLoadError, build_review, document_to_dict, load_runs
from .report_model import Comparison, LogDocument, RunInputs


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def default_output_path(path_a: str, path_b: str, report_format: str, output_dir: str = ".") -> str:
    stem_a = os.path.splitext(os.path.basename(path_a))[0] or "run_a"
    stem_b = os.path.splitext(os.path.basename(path_b))[0] or "run_b"
    filename = f"{stem_a}_vs_{stem_b}_comparison.{FORMAT_EXTENSIONS[report_format]}"
    return os.path.join(output_dir, filename)


def _warn_parsing_issues(document: LogDocument) -> None:
    count = len(document.parsing_errors)
    if count:
        print(f"mrp_review: warning: {count} lines in {document.source_id} could not be parsed")


def _print_comparison_summary(comparison: Comparison) -> None:
    summary = comparison.summary
    print(
        "mrp_review:",
        f"differences={summary.total}",
        f"critical={summary.critical}",
        f"warning={summary.warning}",
        f"info={summary.info}",
    )


def _report_options(args, config: ReviewConfig) -> ReportOptions:
    report_format = parse_report_format(args.format or config.report.format)
    max_differences = args.max_differences if args.max_differences is not None else config.report.max_differences
    include_raw_evidence = config.report.include_raw_evidence and not getattr(args, "no_evidence", False)
    options = ReportOptions(
        format=report_format,
        max_differences=max_differences,
        include_raw_evidence=include_raw_evidence,
        generated_at=datetime.now().replace(microsecond=0),
    )
    options.validate()
    return options


def _write_report(comparison: Comparison, explanations, options: ReportOptions, output_path: str) -> None:
    print(f"mrp_review: generating {options.format} report...")
    report = render_report(comparison, explanations, options)
    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as handle:
        handle.write(report)


def run_compare(args, config: ReviewConfig) -> int:
    options = _report_options(args, config)
    inputs = RunInputs(args.run_a, args.run_b)

    print(f"mrp_review: parsing Run A: {inputs.path_a}")
    print(f"mrp_review: parsing Run B: {inputs.path_b}")
    run_a, run_b = load_runs(inputs)
    _warn_parsing_issues(run_a)
    _warn_parsing_issues(run_b)

    print("mrp_review: comparing runs...")
    comparison, explanations = build_review(run_a, run_b)
    _print_comparison_summary(comparison)
    print(f"mrp_review: {len(explanations)} explanations")

    output_path = args.output or default_output_path(
        inputs.path_a, inputs.path_b, options.format, config.report.output_dir
    )
    _write_report(comparison, explanations, options, output_path)
    print(f"mrp_review: comparison complete, report written to: {output_path}")
    return 0


def _print_log_summary(document: LogDocument) -> None:
    start = document.start_time.strftime("%Y-%m-%d %H:%M:%S") if document.start_time else "Unknown"
    end = document.end_time.strftime("%Y-%m-%d %H:%M:%S") if document.end_time else "Unknown"
    print("MRP Log Summary")
    print("===============")
    print(f"File: {document.source_id}")
    print(f"Run Type: {document.run_type}")
    print(f"Status: {document.status}")
    print(f"Start Time: {start}")
    print(f"End Time: {end}")
    print(f"Site: {document.site or 'Unknown'}")
    print(f"Total Entries: {len(document.entries)}")
    print(f"Parts: {len(document.part_numbers)}")
    print(f"Jobs: {len(document.job_numbers)}")
    print(f"Errors: {document.error_count}")
    print(f"Health Flags: {', '.join(document.health_flags) or 'none'}")
    print(f"Parsing Issues: {len(document.parsing_errors)}")


def run_parse(args) -> int:
    try:
        document = parse_log(args.log)
    except FileNotFoundError:
        return _error(f"File not found: {args.log}")
    if args.format == "json":
        print(json.dumps(document_to_dict(document), indent=2, ensure_ascii=False))
    else:
        _print_log_summary(document)
    return 0


def run_demo(args, config: ReviewConfig) -> int:
    options = _report_options(args, config)
    run_a, run_b = demo_documents()
    comparison, explanations = build_review(run_a, run_b)
    _print_comparison_summary(comparison)

    output_path = args.output
    if not output_path:
        stem = os.path.splitext(DEMO_OUTPUT)[0]
        output_path = os.path.join(config.report.output_dir, f"{stem}.{FORMAT_EXTENSIONS[options.format]}")
    _write_report(comparison, explanations, options, output_path)
    print(f"mrp_review: demo report generated: {output_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", dest="config", help="YAML config file (defaults to $MRP_REVIEW_CONFIG)")
    common.add_argument("--verbose", action="store_true", dest="verbose")
    common.add_argument("--log-file", dest="log_file")

    parser = argparse.ArgumentParser(prog="mrp-review", description="Compare two MRP run logs and explain what changed")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compare = subparsers.add_parser("compare", parents=[common], help="Compare two run logs and write a report")
    compare.add_argument("run_a", help="Log of the earlier run (Run A)")
    compare.add_argument("run_b", help="Log of the later run (Run B)")
    compare.add_argument("--output", "-o", dest="output")
    compare.add_argument("--format", "-f", dest="format", help="markdown, plaintext, html or json")
    compare.add_argument("--max-differences", type=int, dest="max_differences")
    compare.add_argument("--no-evidence", action="store_true", dest="no_evidence")

    parse = subparsers.add_parser("parse", parents=[common], help="Summarize a single run log")
    parse.add_argument("log")
    parse.add_argument("--format", "-f", dest="format", choices=("summary", "json"), default="summary")

    demo = subparsers.add_parser("demo", parents=[common], help="Generate a report from built-in sample logs")
    demo.add_argument("--output", "-o", dest="output")
    demo.add_argument("--format", "-f", dest="format")
    demo.set_defaults(max_differences=None)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_review_config(args.config)
    except FileNotFoundError as exc:
        return _error(f"Config file not found: {exc.filename or args.config}")
    except ValueError as exc:
        return _error(str(exc))
    except OSError as exc:
        return _error(f"Could not read config: {exc}")

    try:
        setup_logging("DEBUG" if args.verbose else config.log_level, log_file=args.log_file)
    except OSError as exc:
        return _error(f"Could not open log file: {exc}")

    try:
        if args.command == "compare":
            return run_compare(args, config)
        if args.command == "parse":
            return run_parse(args)
        return run_demo(args, config)
    except (RunLoadError, ValueError) as exc:
        return _error(str(exc))
    except OSError as exc:
        return _error(f"Could not write report: {exc}")


if __name__ == "__main__":
    raise SystemExit(main())
