from __future__ import annotations
import re
import json
import hashlib
import logging
from pathlib import Path
from typing import Any

from . import config

logger = logging.getLogger(__name__)

ORIGIN_COL = "_origin_row"


def load_json(path: Path, default: Any):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read %s (%s), using defaults", path, e)
        return default

def save_json(path: Path, obj: Any):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)

_DASH_CHARS_RE = re.compile(r"[\u2010\u2011\u2012\u2013\u2014\u2212]")
_NBSP_RE = re.compile(r"[\u00A0\u2007\u202F]")  # NBSP variants


def norm_text(s: Any) -> str:
    """
    Generic text normalisation used for headers and labels:
    - BOM / non-breaking spaces
    - outer quotes
    - lower case
    - every dash variant -> '-'
    - collapsed whitespace
    """
    if s is None:
        return ""

    s = str(s)

    # invisible characters that CSV/Excel exports like to carry
    s = s.replace("\ufeff", "")
    s = _NBSP_RE.sub(" ", s)
    s = s.strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ('"', "'"):
        s = s[1:-1].strip()
    s = s.lower()
    s = _DASH_CHARS_RE.sub("-", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s

def is_blank(v: Any) -> bool:
    # None, NaN, pd.NA and whitespace-only strings
    if v is None:
        return True
    if isinstance(v, float) and v != v:
        return True
    t = norm_text(v)
    return t in ("", "nan", "none", "<na>", "nat")

def column_signature(columns) -> str:
    # header signature, used as the key of remembered column choices
    joined = "||".join([norm_text(c) for c in columns])
    return hashlib.md5(joined.encode("utf-8")).hexdigest()

def rules_path() -> Path:
    return config.DEFAULT_DATA_DIR / "rules.json"

def profiles_path() -> Path:
    config.USER_DATA_DIR.mkdir(parents=True, exist_ok=True)
    p = config.USER_DATA_DIR / "profiles.json"
    if not p.exists():
        save_json(p, {})
    return p
