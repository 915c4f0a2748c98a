from __future__ import annotations

import os
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"

_env_dir = os.environ.get("GRADEREPORT_DATA_DIR", "").strip()
APPDATA = os.environ.get("APPDATA")
if _env_dir:
    USER_DATA_DIR = Path(_env_dir)
elif APPDATA:
    USER_DATA_DIR = Path(APPDATA) / "GradeReport" / "data"
else:
    USER_DATA_DIR = DEFAULT_DATA_DIR  # fallback

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Grade Report Generator"
APP_VERSION = "0.3.0"

PDF_FILE_NAME = "Grade_Report.pdf"
XLSX_FILE_NAME = "Grade_Report.xlsx"

# ---------------------------------------------------------------------------
# Report defaults
#
# Built-in values, overridden by data/rules.json ("report" section) and then
# by GRADEREPORT_* environment variables.
# ---------------------------------------------------------------------------

REPORT_DEFAULTS: Dict[str, Any] = {
    "passing": 40.0,
    "merit": 60.0,
    "distinction": 70.0,
    "title": "Grade Report",
    "author": "",
}

_NUMERIC_KEYS = ("passing", "merit", "distinction")


def load_report_defaults() -> Dict[str, Any]:
    # local import: utils imports the paths defined above
    from .utils import load_json, rules_path

    out = dict(REPORT_DEFAULTS)

    rules = load_json(rules_path(), {})
    section = rules.get("report", {}) if isinstance(rules, dict) else {}
    if isinstance(section, dict):
        for k in REPORT_DEFAULTS:
            if k in section and section[k] is not None:
                out[k] = section[k]

    for k in REPORT_DEFAULTS:
        raw = os.getenv(f"GRADEREPORT_{k.upper()}")
        if raw is None or not raw.strip():
            continue
        out[k] = raw.strip()

    for k in _NUMERIC_KEYS:
        try:
            out[k] = float(out[k])
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid %s threshold %r", k, out[k])
            out[k] = float(REPORT_DEFAULTS[k])

    out["title"] = str(out["title"] or REPORT_DEFAULTS["title"])
    out["author"] = str(out["author"] or "")
    return out


def configure_logging() -> None:
    level_name = os.getenv("GRADEREPORT_LOG_LEVEL", "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
