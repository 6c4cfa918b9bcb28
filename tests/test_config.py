from pathlib import Path

import pytest

from mrp_review.config import (
    CONFIG_ENV_VAR,
    ReviewConfig,
    load_review_config,
    parse_bool,
    parse_int,
    review_config_from_mapping,
)


def _write_config(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults_without_path_or_env(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    config = load_review_config()
    assert config == ReviewConfig()
    assert config.report.format == "markdown"
    assert config.report.max_differences == 10
    assert config.report.include_raw_evidence is True
    assert config.log_level == "WARNING"


def test_loads_yaml_file(tmp_path: Path):
    path = _write_config(
        tmp_path / "review.yaml",
        "\n".join(
            [
                "report:",
                "  format: HTML",
                "  max_differences: 25",
                "  include_raw_evidence: 'no'",
                f"  output_dir: '{tmp_path.as_posix()}'",
                "logging:",
                "  level: debug",
                "",
            ]
        ),
    )

    config = load_review_config(str(path))

    assert config.report.format == "html"
    assert config.report.max_differences == 25
    assert config.report.include_raw_evidence is False
    assert config.report.output_dir == tmp_path.as_posix()
    assert config.log_level == "DEBUG"


def test_env_var_points_at_config(tmp_path: Path, monkeypatch):
    path = _write_config(tmp_path / "env.yaml", "report:\n  format: txt\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    assert load_review_config().report.format == "plaintext"


def test_empty_file_gives_defaults(tmp_path: Path):
    path = _write_config(tmp_path / "empty.yaml", "")
    assert load_review_config(str(path)) == ReviewConfig()


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_review_config(str(tmp_path / "nope.yaml"))


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError, match=r"Unknown config keys: report\.colour, theme"):
        review_config_from_mapping({"report": {"colour": "red"}, "theme": "dark"})


def test_section_must_be_a_mapping():
    with pytest.raises(ValueError, match=r"report: expected a mapping"):
        review_config_from_mapping({"report": "markdown"})


def test_invalid_values_are_rejected():
    with pytest.raises(ValueError, match=r"report\.format"):
        review_config_from_mapping({"report": {"format": "pdf"}})
    with pytest.raises(ValueError, match=r"report\.max_differences"):
        review_config_from_mapping({"report": {"max_differences": -1}})
    with pytest.raises(ValueError, match=r"report\.max_differences"):
        review_config_from_mapping({"report": {"max_differences": True}})
    with pytest.raises(ValueError, match=r"logging\.level"):
        review_config_from_mapping({"logging": {"level": "LOUD"}})


def test_invalid_yaml_is_a_value_error(tmp_path: Path):
    path = _write_config(tmp_path / "bad.yaml", "report: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_review_config(str(path))


def test_non_mapping_yaml_is_rejected(tmp_path: Path):
    path = _write_config(tmp_path / "list.yaml", "- one\n- two\n")
    with pytest.raises(ValueError, match="must contain a YAML mapping"):
        load_review_config(str(path))


@pytest.mark.parametrize("value, expected", [(True, True), (False, False), ("TRUE", True), (" no ", False), ("Off", False)])
def test_parse_bool_accepts(value, expected):
    assert parse_bool(value, "x") is expected


@pytest.mark.parametrize("value", ["false-ish", 0, 1, "1", None, 0.5])
def test_parse_bool_rejects(value):
    with pytest.raises(ValueError, match="Invalid boolean for x"):
        parse_bool(value, "x")


@pytest.mark.parametrize("value, expected", [(7, 7), ("12", 12), (" 3 ", 3)])
def test_parse_int_accepts(value, expected):
    assert parse_int(value, "report.max_differences") == expected


@pytest.mark.parametrize("value", [True, "ten", "-1", "", 2.5, None])
def test_parse_int_rejects(value):
    with pytest.raises(ValueError, match=r"report\.max_differences"):
        parse_int(value, "report.max_differences")
