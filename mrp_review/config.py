from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from .render_report import parse_report_format

CONFIG_ENV_VAR = "MRP_REVIEW_CONFIG"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_SCHEMA: Mapping[str, Any] = {
    "report": {
        "format": None,
        "max_differences": None,
        "include_raw_evidence": None,
        "output_dir": None,
    },
    "logging": {
        "level": None,
    },
}


@dataclass(frozen=True)
class ReportConfig:
    format: str = "markdown"
    max_differences: int = 10
    include_raw_evidence: bool = True
    output_dir: str = "."


@dataclass(frozen=True)
class ReviewConfig:
    report: ReportConfig = field(default_factory=ReportConfig)
    log_level: str = "WARNING"


_TRUE_WORDS = frozenset({"true", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "no", "off"})


def parse_bool(value: Any, path: str) -> bool:
    """YAML booleans, or the quoted words true/false, yes/no and on/off."""

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"Invalid boolean for {path}: {value!r}")


def parse_int(value: Any, path: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise ValueError(f"Invalid config value for {path}: expected a whole number, got {value!r}")


def parse_str(value: Any, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid config value for {path}: must be a non-empty string")
    return value.strip()


def _collect_unknown_keys(mapping: Any, schema: Mapping[str, Any], *, prefix: str) -> list[str]:
    if not isinstance(mapping, Mapping):
        return []
    unknown: list[str] = []
    for key, value in mapping.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if key not in schema:
            unknown.append(path)
            continue
        subschema = schema[key]
        if isinstance(subschema, Mapping):
            if value is not None and not isinstance(value, Mapping):
                raise ValueError(f"Invalid config type for {path}: expected a mapping")
            unknown.extend(_collect_unknown_keys(value, subschema, prefix=path))
    return unknown


def _load_yaml_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def review_config_from_mapping(cfg: Mapping[str, Any]) -> ReviewConfig:
    unknown_keys = _collect_unknown_keys(cfg, _SCHEMA, prefix="")
    if unknown_keys:
        raise ValueError("Unknown config keys: " + ", ".join(sorted(set(unknown_keys))))

    report_cfg = cfg.get("report") or {}
    logging_cfg = cfg.get("logging") or {}
    defaults = ReportConfig()

    report_format = defaults.format
    if "format" in report_cfg:
        raw_format = parse_str(report_cfg["format"], "report.format")
        try:
            report_format = parse_report_format(raw_format)
        except ValueError as exc:
            raise ValueError(f"Invalid config value for report.format: {raw_format!r}") from exc

    max_differences = defaults.max_differences
    if "max_differences" in report_cfg:
        max_differences = parse_int(report_cfg["max_differences"], "report.max_differences")
        if max_differences < 0:
            raise ValueError("Invalid config value for report.max_differences: must be >= 0")

    include_raw_evidence = defaults.include_raw_evidence
    if "include_raw_evidence" in report_cfg:
        include_raw_evidence = parse_bool(report_cfg["include_raw_evidence"], "report.include_raw_evidence")

    output_dir = defaults.output_dir
    if "output_dir" in report_cfg:
        output_dir = os.path.expanduser(parse_str(report_cfg["output_dir"], "report.output_dir"))

    log_level = ReviewConfig.log_level
    if "level" in logging_cfg:
        log_level = parse_str(logging_cfg["level"], "logging.level").upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid config value for logging.level: {log_level!r}")

    return ReviewConfig(
        report=ReportConfig(
            format=report_format,
            max_differences=max_differences,
            include_raw_evidence=include_raw_evidence,
            output_dir=output_dir,
        ),
        log_level=log_level,
    )


def load_review_config(path: str | None = None) -> ReviewConfig:
    """Load the YAML config at ``path``, or from $MRP_REVIEW_CONFIG when no path is given.

    With neither set, the defaults are returned.
    """

    config_path = path or os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        return ReviewConfig()
    cfg = _load_yaml_mapping(config_path)
    config = review_config_from_mapping(cfg)
    logging.getLogger(__name__).debug("Loaded config from %s", config_path)
    return config
