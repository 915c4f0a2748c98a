from __future__ import annotations
import re
import logging
from typing import Dict, Any, List, Optional, Tuple
import pandas as pd
from rapidfuzz import fuzz
from .stats import parse_grade
from .utils import ORIGIN_COL, norm_text, is_blank, column_signature, profiles_path, load_json, save_json

logger = logging.getLogger(__name__)


# Whole-word hits, taken in column order. A keyword also matches its plural
# and "-age" forms (marks, percentage) but not longer words (remarks, classification).
SYN = {
    "grade": ["grade", "score", "mark", "result", "total", "points", "percent", "%"],
    "group": ["group", "section", "class", "cohort", "stream", "tutorial", "seminar"],
}

FUZZY_THRESHOLD = 80
NUMERIC_RATIO_THRESHOLD = 0.6
KEYWORD_SUFFIXES = ("", "s", "es", "age")
_TOKEN_RE = re.compile(r"[^\W_]+|%")
# =========================

# Helpers
# =========================
def _make_unique(cols):
    seen = {}
    used = set()
    out = []
    for c in cols:
        base = str(c).strip()
        if base == "" or base.lower() == "nan":
            base = "col"
        name = base
        n = seen.get(base, 1)
        # a header may already be spelled like a generated name (a__2)
        while name in used:
            n += 1
            name = f"{base}__{n}"
        seen[base] = n
        used.add(name)
        out.append(name)
    return out

def _tokens(header: str) -> List[str]:
    return _TOKEN_RE.findall(norm_text(header))

def _clean_header_cell(v: Any) -> str:
    if v is None:
        return ""
    s = str(v).replace("\ufeff", "").strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ('"', "'"):
        s = s[1:-1].strip()
    return s

def _best_match(col: str, targets: List[str]) -> int:
    # per word, so "remarks" is not a near-match for "mark"
    return max(
        (int(fuzz.ratio(tok, t)) for tok in _tokens(col) for t in targets if len(t) > 1),
        default=0,
    )

def _keyword_in(header: str, keywords: List[str]) -> bool:
    for tok in _tokens(header):
        for k in keywords:
            if tok.startswith(k) and tok[len(k):] in KEYWORD_SUFFIXES:
                return True
    return False

def data_columns(df: pd.DataFrame) -> List[str]:
    return [c for c in df.columns if c != ORIGIN_COL]

def build_dataframe_with_headers(df_raw: pd.DataFrame, header_row: int = 0) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """
    Uses row `header_row` (0-based) of the raw matrix as the header line.
    Blank header cells become col_N, duplicates get a __N suffix, and data rows
    with no value at all are dropped.
    """
    if df_raw is None or df_raw.empty:
        return pd.DataFrame(columns=[ORIGIN_COL]), {"header_row": 1, "columns": []}

    start = max(0, min(int(header_row), len(df_raw) - 1))

    header_cells = df_raw.iloc[start, 1:].tolist()
    headers = []
    for c, v in enumerate(header_cells):
        s = _clean_header_cell(v)
        headers.append(s if s and s.lower() != "nan" else f"col_{c+1}")

    headers = _make_unique(headers)
    df = df_raw.iloc[start + 1:, :].copy()
    df.columns = [ORIGIN_COL] + headers

    if len(df):
        body = df[headers]
        keep = ~body.apply(lambda col: col.map(is_blank)).all(axis=1)
        df = df[keep]
    df = df.reset_index(drop=True)

    meta = {"header_row": int(start) + 1, "columns": headers}
    return df, meta
# =========================

# Column classification
# =========================
def load_profiles() -> Dict[str, Any]:
    return load_json(profiles_path(), {})

def save_profiles(profiles: Dict[str, Any]) -> None:
    save_json(profiles_path(), profiles)

def remember_columns(df: pd.DataFrame, grade_col: Optional[str], group_col: Optional[str]) -> None:
    # Stores the user's choice for this header layout
    cols = data_columns(df)
    sig = column_signature(cols)
    profiles = load_profiles()
    profiles[sig] = {"grade": grade_col or None, "group": group_col or None}
    save_profiles(profiles)
    logger.info("Remembered column choice for header signature %s", sig)

def _numeric_ratio(series: pd.Series, limit: int = 250) -> float:
    ok = 0
    tot = 0
    for v in series.head(limit).tolist():
        if is_blank(v):
            continue
        tot += 1
        if parse_grade(v) is not None:
            ok += 1
    return ok / max(1, tot)

def _keyword_hit(cols: List[str], key: str, exclude: set[str]) -> Optional[str]:
    for c in cols:
        if c in exclude:
            continue
        if _keyword_in(c, SYN[key]):
            return c
    return None

def _fuzzy_hit(cols: List[str], key: str, exclude: set[str]) -> Optional[str]:
    scored = [(c, _best_match(c, SYN[key])) for c in cols if c not in exclude]
    scored.sort(key=lambda x: x[1], reverse=True)
    if scored and scored[0][1] >= FUZZY_THRESHOLD:
        return scored[0][0]
    return None

def _guess_grade(df: pd.DataFrame, cols: List[str], exclude: set[str]) -> Optional[str]:
    c = _keyword_hit(cols, "grade", exclude) or _fuzzy_hit(cols, "grade", exclude)
    if c:
        return c

    # no header hint: the most numeric column
    ratios = [(c, _numeric_ratio(df[c])) for c in cols if c not in exclude]
    ratios = [r for r in ratios if r[1] >= NUMERIC_RATIO_THRESHOLD]
    if not ratios:
        return None
    ratios.sort(key=lambda x: x[1], reverse=True)
    return ratios[0][0]

def _guess_group(df: pd.DataFrame, cols: List[str], exclude: set[str]) -> Optional[str]:
    return _keyword_hit(cols, "group", exclude) or _fuzzy_hit(cols, "group", exclude)

def guess_columns(df: pd.DataFrame) -> Dict[str, Optional[str]]:
    """
    Suggests the grade and the group column of a roster.

    A remembered choice for the same header layout wins when its columns still
    exist. Otherwise: header keywords, then fuzzy header similarity, and for the
    grade column the share of numeric cells as a last resort. Both suggestions
    never name the same column.
    """
    cols = data_columns(df)
    if not cols:
        return {"grade": None, "group": None}

    sig = column_signature(cols)
    prof = load_profiles().get(sig)
    if isinstance(prof, dict):
        g = prof.get("grade") if prof.get("grade") in cols else None
        grp = prof.get("group") if prof.get("group") in cols else None
        if g or grp:
            return {"grade": g, "group": grp if grp != g else None}

    group = _guess_group(df, cols, exclude=set())
    grade = _guess_grade(df, cols, exclude={group} if group else set())

    # "Group score" style headers can hit both keyword lists
    if group and grade is None and _numeric_ratio(df[group]) >= NUMERIC_RATIO_THRESHOLD:
        other = _guess_group(df, cols, exclude={group})
        grade, group = group, other

    return {"grade": grade, "group": group}
