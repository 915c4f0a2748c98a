from __future__ import annotations
import math
import re
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Tuple
import numpy as np
import pandas as pd
from .utils import is_blank, ORIGIN_COL

logger = logging.getLogger(__name__)

GROUP_SENTINEL = "(No group)"

SUMMARY_COLUMNS = [
    "N",
    "Pass",
    "Fail",
    "Passing Rate (%)",
    "Merit Rate (%)",
    "Distinction Rate (%)",
    "Mean",
    "SD",
    "Max",
    "Min",
]
GROUP_COLUMNS = ["Group"] + SUMMARY_COLUMNS

RECORD_COLUMNS = [ORIGIN_COL, "group", "grade"]
EXCLUDED_COLUMNS = [ORIGIN_COL, "group", "value", "reason"]

EXCLUSION_REASONS = {
    "missing_grade": "Grade cell is empty.",
    "non_numeric_grade": "Grade is not a number; the row is left out of every statistic.",
}

_NBSP_RE = re.compile(r"[\u00A0\u2007\u2009\u202F]")
# separators between digit groups: 1,234 / 1 234 / 1'234 / 1_234
_THOUSANDS_RE = re.compile(r"(?<=\d)[ '_](?=\d{3})")


class SummaryError(Exception):
    """Raised when a summary cannot be computed from the chosen columns."""


@dataclass(frozen=True)
class Thresholds:
    """Rate cutoffs. No ordering between them is enforced."""
    passing: float = 40.0
    merit: float = 60.0
    distinction: float = 70.0

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Thresholds":
        base = cls()
        return cls(
            passing=float(params.get("passing", base.passing)),
            merit=float(params.get("merit", base.merit)),
            distinction=float(params.get("distinction", base.distinction)),
        )

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)
# =========================

# Row parsing
# =========================
def parse_grade(value: Any) -> float | None:
    """
    Lenient grade parsing: numbers pass through, strings lose thousands
    separators and percent signs. Anything else is non-numeric (None).
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None

    if isinstance(value, (int, float, np.integer, np.floating)):
        f = float(value)
        return f if math.isfinite(f) else None

    s = str(value).replace("\ufeff", "")
    s = _NBSP_RE.sub(" ", s).strip()
    s = s.replace("%", "").strip()
    s = s.replace(",", "")
    s = _THOUSANDS_RE.sub("", s)
    if not s:
        return None

    try:
        f = float(s)
    except ValueError:
        return None
    return f if math.isfinite(f) else None

def parse_group(value: Any) -> str:
    # only real gaps; a group called "None" or "NaN" stays a group
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return GROUP_SENTINEL

    # Excel hands integral group numbers back as floats
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))

    s = _NBSP_RE.sub(" ", str(value))
    s = re.sub(r"\s+", " ", s).strip()
    return s or GROUP_SENTINEL

def prepare_records(df: pd.DataFrame, grade_col: str, group_col: str) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Splits the roster into parsed records (numeric grade) and excluded rows.

    records:  _origin_row, group, grade
    excluded: _origin_row, group, value, reason
    """
    if not grade_col or grade_col not in df.columns:
        raise SummaryError(f"Grade column not found: {grade_col!r}")
    if not group_col or group_col not in df.columns:
        raise SummaryError(f"Group column not found: {group_col!r}")
    if grade_col == group_col:
        raise SummaryError("The grade column and the group column must be different.")

    if ORIGIN_COL in df.columns:
        origin = df[ORIGIN_COL].tolist()
    else:
        origin = list(range(1, len(df) + 1))

    records: List[Dict[str, Any]] = []
    excluded: List[Dict[str, Any]] = []

    for org, raw, grp in zip(origin, df[grade_col].tolist(), df[group_col].tolist()):
        group = parse_group(grp)
        grade = parse_grade(raw)
        if grade is None:
            excluded.append({
                ORIGIN_COL: org,
                "group": group,
                "value": "" if is_blank(raw) else str(raw),
                "reason": "missing_grade" if is_blank(raw) else "non_numeric_grade",
            })
            continue
        records.append({ORIGIN_COL: org, "group": group, "grade": grade})

    records_df = pd.DataFrame(records, columns=RECORD_COLUMNS)
    excluded_df = pd.DataFrame(excluded, columns=EXCLUDED_COLUMNS)
    if len(excluded_df):
        logger.info("Excluded %d of %d rows without a numeric grade", len(excluded_df), len(df))
    return records_df, excluded_df
# =========================

# Aggregation
# =========================
def _round_half_up(x: float, places: int) -> float:
    # ties go up (6.25 -> 6.3), on the shortest decimal form of the float
    q = Decimal(1).scaleb(-places)
    return float(Decimal(str(float(x))).quantize(q, rounding=ROUND_HALF_UP))

def _plain_number(x: float) -> int | float:
    x = float(x)
    return int(x) if x.is_integer() else x

def _rate(count: int, n: int) -> float:
    return _round_half_up(count / n * 100, 1)

def summarize(grades: Iterable[float], thresholds: Thresholds) -> Dict[str, Any]:
    g = np.asarray(list(grades), dtype=float)
    n = int(g.size)
    if n == 0:
        raise SummaryError("No numeric grades to summarise.")

    passed = int((g >= thresholds.passing).sum())
    merit = int((g >= thresholds.merit).sum())
    distinction = int((g >= thresholds.distinction).sum())

    return {
        "N": n,
        "Pass": passed,
        "Fail": n - passed,
        "Passing Rate (%)": _rate(passed, n),
        "Merit Rate (%)": _rate(merit, n),
        "Distinction Rate (%)": _rate(distinction, n),
        "Mean": _round_half_up(g.mean(), 2),
        # population SD (divide by N)
        "SD": _round_half_up(g.std(ddof=0), 2),
        "Max": _plain_number(g.max()),
        "Min": _plain_number(g.min()),
    }

def compute_summaries(records: pd.DataFrame, thresholds: Thresholds) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Overall summary (one row) and one row per group, in first-seen group order."""
    if records is None or records.empty:
        raise SummaryError("No numeric grades found in the selected grade column.")

    overall_df = pd.DataFrame([summarize(records["grade"], thresholds)], columns=SUMMARY_COLUMNS)

    rows = []
    for grp, block in records.groupby("group", sort=False):
        rows.append({"Group": grp, **summarize(block["grade"], thresholds)})
    group_df = pd.DataFrame(rows, columns=GROUP_COLUMNS)

    logger.info("Summarised %d grades across %d groups", len(records), len(group_df))
    return overall_df, group_df

def threshold_warnings(thresholds: Thresholds) -> List[str]:
    out = []
    if thresholds.merit < thresholds.passing:
        out.append(f"Merit threshold ({thresholds.merit:g}) is below the passing threshold ({thresholds.passing:g}).")
    if thresholds.distinction < thresholds.merit:
        out.append(f"Distinction threshold ({thresholds.distinction:g}) is below the merit threshold ({thresholds.merit:g}).")
    if thresholds.distinction < thresholds.passing:
        out.append(f"Distinction threshold ({thresholds.distinction:g}) is below the passing threshold ({thresholds.passing:g}).")
    return out
