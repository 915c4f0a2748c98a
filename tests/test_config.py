"""
Test: report defaults (rules.json + environment) and JSON helpers.
"""
import json
import gradereport.config as config
from gradereport.config import load_report_defaults, REPORT_DEFAULTS
from gradereport.utils import load_json, norm_text, is_blank


def test_shipped_rules_match_builtins():
    out = load_report_defaults()
    assert out == {**REPORT_DEFAULTS, "passing": 40.0, "merit": 60.0, "distinction": 70.0}


def test_rules_file_overrides(tmp_path, monkeypatch):
    (tmp_path / "rules.json").write_text(
        json.dumps({"report": {"passing": 50, "title": "Midterm"}}), encoding="utf-8"
    )
    monkeypatch.setattr(config, "DEFAULT_DATA_DIR", tmp_path)
    out = load_report_defaults()
    assert out["passing"] == 50.0
    assert out["merit"] == 60.0
    assert out["title"] == "Midterm"


def test_env_overrides_rules(monkeypatch):
    monkeypatch.setenv("GRADEREPORT_DISTINCTION", "85")
    monkeypatch.setenv("GRADEREPORT_AUTHOR", "Exams Office")
    out = load_report_defaults()
    assert out["distinction"] == 85.0
    assert out["author"] == "Exams Office"


def test_invalid_threshold_falls_back(monkeypatch, caplog):
    monkeypatch.setenv("GRADEREPORT_MERIT", "sixty")
    out = load_report_defaults()
    assert out["merit"] == 60.0
    assert "merit" in caplog.text


def test_broken_rules_file(tmp_path, monkeypatch):
    (tmp_path / "rules.json").write_text("{not json", encoding="utf-8")
    monkeypatch.setattr(config, "DEFAULT_DATA_DIR", tmp_path)
    assert load_report_defaults()["passing"] == 40.0


def test_load_json_default(tmp_path):
    assert load_json(tmp_path / "missing.json", {"a": 1}) == {"a": 1}


def test_norm_text():
    assert norm_text('  "Final   Score" ') == "final score"
    assert norm_text(None) == ""


def test_is_blank():
    assert is_blank(None)
    assert is_blank(float("nan"))
    assert is_blank(" nan ")
    assert not is_blank(0)


def test_invalid_passing_env_value_is_ignored(monkeypatch, caplog):
    monkeypatch.setenv("GRADEREPORT_PASSING", "forty")
    monkeypatch.setenv("GRADEREPORT_DISTINCTION", "75")
    out = load_report_defaults()
    assert out["passing"] == 40.0
    assert out["distinction"] == 75.0
    assert "passing" in caplog.text
