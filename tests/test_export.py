"""
Test: PDF and Excel report export.
"""
import re
from datetime import date
from io import BytesIO
import pandas as pd
import pytest
from gradereport.ingest import load_tables_from_uploads
from gradereport.infer import build_dataframe_with_headers
from gradereport.stats import Thresholds, SUMMARY_COLUMNS, prepare_records, compute_summaries
from gradereport.charts import render_chart_images
from gradereport.export import export_to_pdf_bytes, export_to_excel_bytes, ExportError, _fmt_cell


@pytest.fixture
def report_parts(roster_upload):
    df_raw = load_tables_from_uploads([roster_upload])[0]["df_raw"]
    df, _ = build_dataframe_with_headers(df_raw)
    records, excluded = prepare_records(df, "Score", "Section")
    overall_df, group_df = compute_summaries(records, Thresholds())
    return overall_df, group_df, records, excluded


class TestFormatting:
    def test_rates_one_decimal(self):
        assert _fmt_cell("Passing Rate (%)", 80) == "80.0"

    def test_mean_two_decimals(self):
        assert _fmt_cell("Mean", 56.9) == "56.90"

    def test_plain_values(self):
        assert _fmt_cell("Max", 85) == "85"
        assert _fmt_cell("Min", 39.5) == "39.5"
        assert _fmt_cell("Group", "(No group)") == "(No group)"
        assert _fmt_cell("SD", None) == ""


class TestPdfExport:
    def test_document(self, report_parts):
        overall_df, group_df, _, excluded = report_parts
        pdf = export_to_pdf_bytes(
            overall_df,
            group_df,
            title="Physics 101 <Midterm>",
            author="Dr. Smith",
            report_date=date(2024, 3, 1),
            thresholds=Thresholds(),
            excluded_count=len(excluded),
        )
        assert pdf.startswith(b"%PDF-")
        # cover, overall, groups
        counts = [int(n) for n in re.findall(rb"/Count\s+(\d+)", pdf)]
        assert max(counts) == 3

    def test_with_charts(self, report_parts):
        overall_df, group_df, records, _ = report_parts
        charts = render_chart_images(records, Thresholds())
        plain = export_to_pdf_bytes(overall_df, group_df, title="Report")
        with_charts = export_to_pdf_bytes(overall_df, group_df, title="Report", charts=charts)
        assert with_charts.startswith(b"%PDF-")
        assert len(with_charts) > len(plain)

    def test_blank_title_and_author(self, report_parts):
        overall_df, group_df, _, _ = report_parts
        pdf = export_to_pdf_bytes(overall_df, group_df, title="  ", author="")
        assert pdf.startswith(b"%PDF-")

    def test_empty_summary(self):
        with pytest.raises(ExportError):
            export_to_pdf_bytes(pd.DataFrame(columns=SUMMARY_COLUMNS), None, title="Report")


class TestExcelExport:
    def test_sheets(self, report_parts):
        overall_df, group_df, records, excluded = report_parts
        data = export_to_excel_bytes(overall_df, group_df, records, excluded, thresholds=Thresholds())
        sheets = pd.read_excel(BytesIO(data), sheet_name=None)
        assert list(sheets) == ["Overall", "By group", "Grades", "Excluded rows"]
        assert sheets["Overall"]["N"].iloc[0] == 5
        assert sheets["By group"]["Group"].tolist() == ["A", "B", "(No group)"]
        assert list(sheets["Grades"].columns) == ["Row", "Group", "Grade"]
        assert sheets["Excluded rows"]["Row"].tolist() == [5, 7]
        assert sheets["Excluded rows"]["Message"].notna().all()

    def test_no_excluded_sheet(self, report_parts):
        overall_df, group_df, records, _ = report_parts
        data = export_to_excel_bytes(overall_df, group_df, records, None)
        sheets = pd.read_excel(BytesIO(data), sheet_name=None)
        assert "Excluded rows" not in sheets

    def test_empty_summary(self, report_parts):
        _, group_df, records, _ = report_parts
        with pytest.raises(ExportError):
            export_to_excel_bytes(pd.DataFrame(columns=SUMMARY_COLUMNS), group_df, records)
