"""
Charts for the grade report.

plotly figures are rendered in the Streamlit page; the PDF gets static PNG
renditions of the same charts drawn with matplotlib.
"""
from __future__ import annotations
import io
import logging
from typing import List, Tuple
import matplotlib
matplotlib.use("Agg")  # non-interactive backend
import matplotlib.pyplot as plt
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from .stats import Thresholds

logger = logging.getLogger(__name__)

THRESHOLD_STYLE = [
    ("passing", "Passing", "#d62728"),
    ("merit", "Merit", "#ff7f0e"),
    ("distinction", "Distinction", "#2ca02c"),
]
BAR_COLOR = "#003366"


def _group_order(records: pd.DataFrame) -> List[str]:
    return list(dict.fromkeys(records["group"].astype(str).tolist()))

def grade_histogram(records: pd.DataFrame, thresholds: Thresholds) -> go.Figure:
    fig = px.histogram(
        records,
        x="grade",
        nbins=20,
        title="Grade Distribution",
        labels={"grade": "Grade"},
        color_discrete_sequence=[BAR_COLOR],
    )
    for key, label, color in THRESHOLD_STYLE:
        fig.add_vline(
            x=getattr(thresholds, key),
            line_dash="dash",
            line_color=color,
            annotation_text=label,
            annotation_position="top",
        )
    fig.update_layout(yaxis_title="Students", bargap=0.05)
    return fig

def group_boxplot(records: pd.DataFrame) -> go.Figure:
    fig = px.box(
        records,
        x="group",
        y="grade",
        points="all",
        title="Grades by Group",
        labels={"group": "Group", "grade": "Grade"},
        category_orders={"group": _group_order(records)},
    )
    fig.update_xaxes(type="category")
    return fig
# =========================

# Static images for the PDF
# =========================
def _figure_png(fig) -> bytes:
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight", facecolor="white", edgecolor="none")
    plt.close(fig)
    return buf.getvalue()

def _histogram_png(records: pd.DataFrame, thresholds: Thresholds) -> bytes:
    grades = records["grade"].astype(float)
    fig, ax = plt.subplots(figsize=(7, 3.5))
    ax.hist(grades, bins=min(20, max(5, int(grades.nunique()))), color=BAR_COLOR, edgecolor="white")
    for key, label, color in THRESHOLD_STYLE:
        value = getattr(thresholds, key)
        ax.axvline(value, color=color, linestyle="--", linewidth=1, label=f"{label} ({value:g})")
    ax.set_xlabel("Grade")
    ax.set_ylabel("Students")
    ax.set_title("Grade Distribution")
    ax.legend(fontsize=8)
    fig.tight_layout()
    return _figure_png(fig)

def _boxplot_png(records: pd.DataFrame) -> bytes:
    groups = _group_order(records)
    data = [records.loc[records["group"].astype(str) == g, "grade"].astype(float).tolist() for g in groups]
    fig, ax = plt.subplots(figsize=(7, 3.5))
    ax.boxplot(data)
    ax.set_xticks(range(1, len(groups) + 1))
    if len(groups) > 6:
        ax.set_xticklabels(groups, rotation=30, ha="right", fontsize=8)
    else:
        ax.set_xticklabels(groups)
    ax.set_xlabel("Group")
    ax.set_ylabel("Grade")
    ax.set_title("Grades by Group")
    fig.tight_layout()
    return _figure_png(fig)

def render_chart_images(records: pd.DataFrame, thresholds: Thresholds) -> List[Tuple[str, bytes]]:
    """(title, PNG bytes) for each chart; empty when there are no grades."""
    if records is None or records.empty:
        return []
    out = [
        ("Grade Distribution", _histogram_png(records, thresholds)),
        ("Grades by Group", _boxplot_png(records)),
    ]
    logger.info("Rendered %d chart images", len(out))
    return out
