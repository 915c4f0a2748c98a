"""
This package contains:
- roster loading (CSV/XLSX)
- header building and grade/group column suggestions
- grade parsing and overall/group statistics
- charts
- PDF and Excel report export
"""
from .ingest import load_tables_from_uploads, RosterError
from .infer import build_dataframe_with_headers, guess_columns, remember_columns
from .stats import (Thresholds, SummaryError, parse_grade, parse_group, prepare_records, summarize, compute_summaries, threshold_warnings)
from .charts import grade_histogram, group_boxplot, render_chart_images
from .export import export_to_pdf_bytes, export_to_excel_bytes, ExportError

__all__ = [
    "load_tables_from_uploads",
    "RosterError",
    "build_dataframe_with_headers",
    "guess_columns",
    "remember_columns",
    "Thresholds",
    "SummaryError",
    "parse_grade",
    "parse_group",
    "prepare_records",
    "summarize",
    "compute_summaries",
    "threshold_warnings",
    "grade_histogram",
    "group_boxplot",
    "render_chart_images",
    "export_to_pdf_bytes",
    "export_to_excel_bytes",
    "ExportError",
]
