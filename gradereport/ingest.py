from __future__ import annotations
import csv
import zipfile
import logging
from io import BytesIO
from typing import List, Dict, Any, Optional
import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = (".csv",)
EXCEL_EXTENSIONS = (".xlsx", ".xlsm")


class RosterError(Exception):
    """Raised when an uploaded roster cannot be read."""

# =========================

# Excel: sheet as a matrix, merged cells unrolled
# =========================
def _sheet_to_matrix_with_merged(ws, max_rows: Optional[int] = None) -> List[List[Any]]:
    merged_map = {}
    for r in ws.merged_cells.ranges:
        min_col, min_row, max_col, max_row = r.bounds
        top_val = ws.cell(min_row, min_col).value
        for rr in range(min_row, max_row + 1):
            for cc in range(min_col, max_col + 1):
                merged_map[(rr, cc)] = top_val

    rows = []
    max_r = ws.max_row
    max_c = ws.max_column
    if max_rows is not None:
        max_r = min(max_r, max_rows)

    for r in range(1, max_r + 1):
        row_vals = []
        for c in range(1, max_c + 1):
            v = ws.cell(r, c).value
            if (r, c) in merged_map and (v is None or str(v).strip() == ""):
                v = merged_map[(r, c)]
            row_vals.append(v)
        rows.append(row_vals)

    return rows
# =========================

# CSV: tolerant reading from bytes (LMS / spreadsheet exports)
# =========================
def _decode_sample(data: bytes, enc: str, limit: int = 65536) -> str:
    try:
        return data[:limit].decode(enc, errors="replace")
    except LookupError:
        return data[:limit].decode("utf-8", errors="replace")


def _guess_delimiter(sample_text: str) -> str:
    # ',' for en-US exports, ';' for locales with decimal commas, sometimes tabs
    try:
        dialect = csv.Sniffer().sniff(sample_text, delimiters=";,\t|")
        if dialect.delimiter:
            return dialect.delimiter
    except csv.Error:
        pass

    # fallback: average count per line over the first lines
    candidates = [";", ",", "\t", "|"]
    lines = [ln for ln in sample_text.splitlines() if ln.strip()][:20]
    if not lines:
        return ","

    scores = {}
    for d in candidates:
        cnts = [ln.count(d) for ln in lines]
        scores[d] = sum(cnts) / max(1, len(cnts))

    best = max(scores.items(), key=lambda x: x[1])[0]
    return best if scores.get(best, 0) > 0 else ","


def _read_csv_bytes(data: bytes) -> pd.DataFrame:
    # header=None: the header line stays in df_raw as an ordinary row
    encodings = ["utf-8-sig", "utf-8", "cp1251"]
    last_err: Exception | None = None

    for enc in encodings:
        try:
            sample = _decode_sample(data, enc)
            delim = _guess_delimiter(sample)

            # only empty cells are missing; "None", "NA" and the like stay text
            df = pd.read_csv(
                BytesIO(data),
                header=None,
                sep=delim,
                engine="python",
                encoding=enc,
                skip_blank_lines=True,
                dtype=object,
                keep_default_na=False,
                na_values=[""],
            )

            # read as a single column: retry the other delimiters
            if df.shape[1] == 1:
                for d2 in [";", ",", "\t", "|"]:
                    if d2 == delim:
                        continue
                    df2 = pd.read_csv(
                        BytesIO(data),
                        header=None,
                        sep=d2,
                        engine="python",
                        encoding=enc,
                        skip_blank_lines=True,
                        dtype=object,
                        keep_default_na=False,
                        na_values=[""],
                    )
                    if df2.shape[1] > 1:
                        df = df2
                        break

            return df

        except pd.errors.EmptyDataError as e:
            raise RosterError("The CSV file is empty.") from e
        except (UnicodeDecodeError, pd.errors.ParserError, ValueError) as e:
            last_err = e
            continue

    raise RosterError(f"Could not parse the CSV file: {last_err}") from last_err


def _read_excel_bytes(data: bytes) -> List[tuple[str, pd.DataFrame]]:
    try:
        wb = load_workbook(BytesIO(data), read_only=False, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise RosterError(f"Could not open the workbook: {e}") from e

    out = []
    for ws in wb.worksheets:
        matrix = _sheet_to_matrix_with_merged(ws)
        out.append((ws.title, pd.DataFrame(matrix, dtype=object)))
    return out
# =========================

# Main: uploads -> tables
# =========================
def load_tables_from_uploads(uploads) -> List[Dict[str, Any]]:
    """
    Returns one entry per table:
      {
        "source_name": <file name>,
        "sheet_name": <sheet, or 'CSV'>,
        "df_raw": DataFrame  (first column is _origin_row),
      }

    df_raw is a header-less matrix: CSV is read with header=None, Excel sheets
    cell by cell (merged cells carry their top-left value). _origin_row is the
    1-based line number in the source.
    """
    tables: List[Dict[str, Any]] = []

    for up in uploads:
        if up is None:
            continue
        name = up.name
        data = up.getvalue()
        low = name.lower()

        if not data:
            raise RosterError(f"{name}: the file is empty.")

        if low.endswith(CSV_EXTENSIONS):
            df = _read_csv_bytes(data)
            df = df.reset_index(drop=True)
            df.insert(0, "_origin_row", range(1, len(df) + 1))
            tables.append({"source_name": name, "sheet_name": "CSV", "df_raw": df})
            logger.info("Loaded %s: %d rows x %d columns", name, df.shape[0], df.shape[1] - 1)
            continue

        if not low.endswith(EXCEL_EXTENSIONS):
            raise RosterError(f"{name}: unsupported file type (expected .csv or .xlsx).")

        for sheet, df_raw in _read_excel_bytes(data):
            df_raw.insert(0, "_origin_row", range(1, len(df_raw) + 1))
            tables.append({"source_name": name, "sheet_name": sheet, "df_raw": df_raw})
            logger.info("Loaded %s / %s: %d rows x %d columns", name, sheet, df_raw.shape[0], df_raw.shape[1] - 1)

    return tables
