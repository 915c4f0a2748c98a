from __future__ import annotations
import hashlib
import logging
from datetime import date
import streamlit as st
import pandas as pd
from gradereport.config import APP_NAME, APP_VERSION, PDF_FILE_NAME, XLSX_FILE_NAME, configure_logging, load_report_defaults
from gradereport.ingest import load_tables_from_uploads, RosterError
from gradereport.infer import build_dataframe_with_headers, guess_columns, remember_columns, data_columns
from gradereport.stats import (Thresholds, SummaryError, EXCLUSION_REASONS, prepare_records, compute_summaries, threshold_warnings)
from gradereport.charts import grade_histogram, group_boxplot, render_chart_images
from gradereport.export import export_to_pdf_bytes, export_to_excel_bytes

configure_logging()
logger = logging.getLogger("gradereport.app")

DEFAULTS = load_report_defaults()
st.set_page_config(page_title=APP_NAME, layout="wide")
st.title(APP_NAME)
st.caption(f"Version {APP_VERSION}")
# =========================

# Helpers
# =========================
RESULT_KEYS = [
    "result_ready",
    "result_sig",
    "overall_df",
    "group_df",
    "records",
    "excluded",
    "thresholds",
    "chart_images",
]
SETTING_KEYS = ["title", "author", "report_date", "passing", "merit", "distinction"]


def _safe_key_prefix(src_key: str) -> str:
    # widget keys must survive any characters in file/sheet names
    return hashlib.md5(src_key.encode("utf-8")).hexdigest()

def _init_state() -> None:
    st.session_state.setdefault("uploader_nonce", 0)
    st.session_state.setdefault("title", DEFAULTS["title"])
    st.session_state.setdefault("author", DEFAULTS["author"])
    st.session_state.setdefault("report_date", date.today())
    st.session_state.setdefault("passing", float(DEFAULTS["passing"]))
    st.session_state.setdefault("merit", float(DEFAULTS["merit"]))
    st.session_state.setdefault("distinction", float(DEFAULTS["distinction"]))
    for k in RESULT_KEYS:
        st.session_state.setdefault(k, None)

def _reset_all() -> None:
    # back to configured defaults; a new uploader key drops the uploaded file
    nonce = int(st.session_state.get("uploader_nonce", 0)) + 1
    for k in list(st.session_state.keys()):
        del st.session_state[k]
    st.session_state["uploader_nonce"] = nonce
    logger.info("Session reset")

def _result_signature(src_key: str, header_row: int, grade_col: str, group_col: str, thresholds: Thresholds) -> str:
    parts = [src_key, header_row, grade_col, group_col] + list(thresholds.as_dict().values())
    raw = "|".join(str(p) for p in parts)
    return hashlib.md5(raw.encode("utf-8")).hexdigest()

def _index_of(options: list, value) -> int:
    return options.index(value) if value in options else 0

_init_state()
# =========================

# Report settings
# =========================
st.subheader("Report settings")
s1, s2, s3 = st.columns(3)
with s1:
    st.text_input("Report title", key="title")
with s2:
    st.text_input("Prepared by", key="author")
with s3:
    st.date_input("Report date", key="report_date")

t1, t2, t3 = st.columns(3)
with t1:
    st.number_input("Passing threshold", step=1.0, key="passing")
with t2:
    st.number_input("Merit threshold", step=1.0, key="merit")
with t3:
    st.number_input("Distinction threshold", step=1.0, key="distinction")

thresholds = Thresholds.from_params({k: st.session_state[k] for k in ("passing", "merit", "distinction")})
for w in threshold_warnings(thresholds):
    st.warning(w)

st.button("Reset", on_click=_reset_all)
# =========================

# Upload
# =========================
upload = st.file_uploader(
    "Upload a grade roster (CSV/XLSX/XLSM)",
    type=["csv", "xlsx", "xlsm"],
    accept_multiple_files=False,
    key=f"roster_upload_{st.session_state['uploader_nonce']}",
)

if not upload:
    st.info("Upload a roster to begin.")
    st.stop()

try:
    tables = load_tables_from_uploads([upload])
except RosterError as e:
    st.error(str(e))
    st.stop()

if not tables:
    st.error("No sheets were found in the uploaded file.")
    st.stop()

labels = [f'{t["source_name"]} / {t["sheet_name"]}' for t in tables]
if len(tables) > 1:
    chosen = st.selectbox("Sheet", labels, index=0)
    table = tables[labels.index(chosen)]
else:
    table = tables[0]

df_raw = table["df_raw"]
src_key = f'{table["source_name"]}::{table["sheet_name"]}'
kp = _safe_key_prefix(src_key)

header_row = st.number_input(
    "Header row",
    min_value=1,
    max_value=max(1, len(df_raw)),
    value=1,
    key=f"{kp}__header_row",
)

df, meta = build_dataframe_with_headers(df_raw, header_row=int(header_row) - 1)
cols = data_columns(df)
if not cols or df.empty:
    st.error("The selected sheet has no data rows below the header row.")
    st.stop()
# =========================

# Column classification
# =========================
st.subheader("Columns")
guess = guess_columns(df)
options = [""] + cols

c1, c2 = st.columns(2)
with c1:
    grade_col = st.selectbox(
        "Grade column",
        options,
        index=_index_of(options, guess.get("grade") or ""),
        key=f"{kp}__{header_row}__grade",
    )
with c2:
    group_col = st.selectbox(
        "Group column",
        options,
        index=_index_of(options, guess.get("group") or ""),
        key=f"{kp}__{header_row}__group",
    )

if st.button("Remember column choice for this layout", disabled=not (grade_col and group_col)):
    remember_columns(df, grade_col, group_col)
    st.success("Saved.")

with st.expander("Preview", expanded=False):
    st.write(f"Header: row {meta['header_row']}, {len(df)} data rows")
    st.dataframe(df.head(8), width="stretch")
# =========================

# Generate
# =========================
st.divider()
sig = _result_signature(src_key, int(header_row), grade_col, group_col, thresholds)

if st.button("Generate report", type="primary"):
    if not grade_col or not group_col:
        st.error("Select both a grade column and a group column.")
    elif grade_col == group_col:
        st.error("The grade column and the group column must be different.")
    else:
        try:
            records, excluded = prepare_records(df, grade_col, group_col)
            overall_df, group_df = compute_summaries(records, thresholds)
        except SummaryError as e:
            st.session_state["result_ready"] = False
            st.error(str(e))
        else:
            st.session_state["result_ready"] = True
            st.session_state["result_sig"] = sig
            st.session_state["overall_df"] = overall_df
            st.session_state["group_df"] = group_df
            st.session_state["records"] = records
            st.session_state["excluded"] = excluded
            st.session_state["thresholds"] = thresholds
            st.session_state["chart_images"] = None
            logger.info("Report generated for %s", src_key)

if st.session_state.get("result_ready") and st.session_state.get("result_sig") != sig:
    st.info("Settings changed since the last report. Press \"Generate report\" again.")

elif st.session_state.get("result_ready"):
    overall_df = st.session_state["overall_df"]
    group_df = st.session_state["group_df"]
    records = st.session_state["records"]
    excluded = st.session_state["excluded"]
    used = st.session_state["thresholds"]

    st.subheader("Overall Summary")
    st.dataframe(overall_df, width="stretch", hide_index=True)

    st.subheader("Group Summary")
    st.dataframe(group_df, width="stretch", hide_index=True)

    if excluded is not None and not excluded.empty:
        with st.expander(f"Excluded rows ({len(excluded)})", expanded=False):
            view = excluded.copy()
            view["message"] = view["reason"].map(EXCLUSION_REASONS).fillna("")
            st.dataframe(view, width="stretch", hide_index=True)

    st.subheader("Grade Distribution")
    st.plotly_chart(grade_histogram(records, used))

    st.subheader("Grades by Group")
    st.plotly_chart(group_boxplot(records))

    # Downloads
    if st.session_state.get("chart_images") is None:
        st.session_state["chart_images"] = render_chart_images(records, used)

    d1, d2 = st.columns(2)
    with d1:
        try:
            pdf_bytes = export_to_pdf_bytes(
                overall_df,
                group_df,
                title=st.session_state["title"],
                author=st.session_state["author"],
                report_date=st.session_state["report_date"],
                thresholds=used,
                charts=st.session_state["chart_images"],
                excluded_count=0 if excluded is None else len(excluded),
            )
        except Exception as e:
            logger.exception("PDF export failed")
            st.error(f"PDF export failed: {type(e).__name__}: {e}")
        else:
            st.download_button("Download PDF", data=pdf_bytes, file_name=PDF_FILE_NAME, mime="application/pdf")
    with d2:
        try:
            xbytes = export_to_excel_bytes(overall_df, group_df, records, excluded, thresholds=used)
        except Exception as e:
            logger.exception("Excel export failed")
            st.error(f"Excel export failed: {type(e).__name__}: {e}")
        else:
            st.download_button(
                "Download Excel",
                data=xbytes,
                file_name=XLSX_FILE_NAME,
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )
