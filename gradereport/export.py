from __future__ import annotations
import logging
from datetime import date
from io import BytesIO
from typing import List, Optional, Tuple
from xml.sax.saxutils import escape
import pandas as pd
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak, Image
from .stats import EXCLUSION_REASONS, Thresholds
from .utils import ORIGIN_COL

logger = logging.getLogger(__name__)

RATE_COLUMNS = {"Passing Rate (%)", "Merit Rate (%)", "Distinction Rate (%)"}
TWO_DECIMAL_COLUMNS = {"Mean", "SD"}

HEADER_BG = colors.HexColor("#1F3864")
ROW_ALT_BG = colors.HexColor("#F2F2F2")


class ExportError(Exception):
    """Raised when a report document cannot be produced."""


def _fmt_cell(col: str, v) -> str:
    if v is None or (isinstance(v, float) and v != v):
        return ""
    if col in RATE_COLUMNS:
        return f"{float(v):.1f}"
    if col in TWO_DECIMAL_COLUMNS:
        return f"{float(v):.2f}"
    if isinstance(v, float):
        return f"{v:.2f}".rstrip("0").rstrip(".")
    return str(v)
# =========================

# PDF (reportlab)
# =========================
def _summary_table(df: pd.DataFrame, width: float, header_style: ParagraphStyle) -> Table:
    cols = list(df.columns)
    head = [Paragraph(f"<b>{escape(str(c))}</b>", header_style) for c in cols]
    body = [[_fmt_cell(c, row[c]) for c in cols] for _, row in df.iterrows()]

    # the group label gets a wider first column
    if cols and cols[0] == "Group":
        first = width * 0.16
        rest = (width - first) / max(1, len(cols) - 1)
        col_widths = [first] + [rest] * (len(cols) - 1)
    else:
        col_widths = [width / max(1, len(cols))] * len(cols)

    table = Table([head] + body, colWidths=col_widths, repeatRows=1)
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (0, 1), (-1, -1), "CENTER"),
        ("FONTNAME", (0, 1), (-1, -1), "Times-Roman"),
        ("FONTSIZE", (0, 1), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for i in range(2, len(body) + 1, 2):
        style.append(("BACKGROUND", (0, i), (-1, i), ROW_ALT_BG))
    table.setStyle(TableStyle(style))
    return table

def _chart_image(png: bytes, max_width: float) -> Image:
    iw, ih = ImageReader(BytesIO(png)).getSize()
    w = max_width
    h = w * (ih / float(iw)) if iw else w * 0.5
    img = Image(BytesIO(png), width=w, height=h)
    img.hAlign = "CENTER"
    return img

def export_to_pdf_bytes(
    overall_df: pd.DataFrame,
    group_df: pd.DataFrame,
    *,
    title: str,
    author: str = "",
    report_date: Optional[date] = None,
    thresholds: Optional[Thresholds] = None,
    charts: Optional[List[Tuple[str, bytes]]] = None,
    excluded_count: int = 0,
) -> bytes:
    """
    Multi-page report:
      1. cover page (title, prepared by, date, thresholds)
      2. overall summary
      3. group summary
      4. charts, when given
    """
    if overall_df is None or overall_df.empty:
        raise ExportError("There is no summary to export. Generate the report first.")

    title = (title or "").strip() or "Grade Report"
    author = (author or "").strip()
    report_date = report_date or date.today()
    thresholds = thresholds or Thresholds()

    bio = BytesIO()
    doc = SimpleDocTemplate(
        bio,
        pagesize=A4,
        leftMargin=0.6 * inch,
        rightMargin=0.6 * inch,
        topMargin=0.8 * inch,
        bottomMargin=0.8 * inch,
        title=title,
        author=author,
    )

    styles = getSampleStyleSheet()
    cover_title = ParagraphStyle(
        "CoverTitle", parent=styles["Title"], fontName="Times-Bold", fontSize=26, leading=32,
        alignment=TA_CENTER, textColor=HEADER_BG, spaceAfter=24,
    )
    cover_line = ParagraphStyle(
        "CoverLine", parent=styles["Normal"], fontName="Times-Roman", fontSize=13, leading=18, alignment=TA_CENTER,
    )
    heading = ParagraphStyle(
        "Heading", parent=styles["Heading1"], fontName="Times-Bold", fontSize=16, textColor=HEADER_BG, spaceAfter=12,
    )
    body = ParagraphStyle("Body", parent=styles["Normal"], fontName="Times-Roman", fontSize=10, leading=13)
    table_head = ParagraphStyle(
        "TableHead", parent=styles["Normal"], fontName="Times-Bold", fontSize=8, leading=10,
        alignment=TA_CENTER, textColor=colors.white,
    )

    story = []

    # Cover
    story.append(Spacer(1, 2.4 * inch))
    story.append(Paragraph(escape(title), cover_title))
    if author:
        story.append(Paragraph(f"Prepared by: {escape(author)}", cover_line))
    story.append(Paragraph(f"Date: {report_date.strftime('%d %B %Y')}", cover_line))
    story.append(Spacer(1, 0.6 * inch))
    legend = Table(
        [
            ["Passing threshold", f"{thresholds.passing:g}"],
            ["Merit threshold", f"{thresholds.merit:g}"],
            ["Distinction threshold", f"{thresholds.distinction:g}"],
        ],
        colWidths=[2.2 * inch, 1.0 * inch],
    )
    legend.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, -1), "Times-Roman"),
        ("FONTSIZE", (0, 0), (-1, -1), 11),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.grey),
    ]))
    story.append(legend)
    story.append(PageBreak())

    # Overall
    story.append(Paragraph("Overall Summary", heading))
    story.append(_summary_table(overall_df, doc.width, table_head))
    if excluded_count:
        story.append(Spacer(1, 10))
        story.append(Paragraph(
            f"{excluded_count} row(s) without a numeric grade were left out of every statistic.", body
        ))
    story.append(PageBreak())

    # By group
    story.append(Paragraph("Group Summary", heading))
    if group_df is None or group_df.empty:
        story.append(Paragraph("No group statistics available.", body))
    else:
        story.append(_summary_table(group_df, doc.width, table_head))

    if charts:
        story.append(PageBreak())
        story.append(Paragraph("Charts", heading))
        for chart_title, png in charts:
            story.append(Paragraph(f"<b>{escape(chart_title)}</b>", body))
            story.append(Spacer(1, 4))
            story.append(_chart_image(png, doc.width * 0.9))
            story.append(Spacer(1, 0.25 * inch))

    def _cover_page(canvas, _doc):
        canvas.saveState()
        canvas.setStrokeColor(HEADER_BG)
        canvas.setLineWidth(3)
        w, h = A4
        canvas.line(0.6 * inch, h - 0.6 * inch, w - 0.6 * inch, h - 0.6 * inch)
        canvas.line(0.6 * inch, 0.6 * inch, w - 0.6 * inch, 0.6 * inch)
        canvas.restoreState()

    def _footer(canvas, _doc):
        canvas.saveState()
        canvas.setFont("Times-Roman", 9)
        canvas.setFillColor(colors.grey)
        w, _h = A4
        canvas.drawString(0.6 * inch, 0.5 * inch, title)
        canvas.drawRightString(w - 0.6 * inch, 0.5 * inch, f"Page {_doc.page}")
        canvas.restoreState()

    doc.build(story, onFirstPage=_cover_page, onLaterPages=_footer)
    data = bio.getvalue()
    logger.info("PDF report built: %d bytes, %d chart(s)", len(data), len(charts or []))
    return data
# =========================

# Excel (xlsxwriter)
# =========================
def export_to_excel_bytes(
    overall_df: pd.DataFrame,
    group_df: pd.DataFrame,
    records: pd.DataFrame,
    excluded: Optional[pd.DataFrame] = None,
    *,
    thresholds: Optional[Thresholds] = None,
) -> bytes:
    if overall_df is None or overall_df.empty:
        raise ExportError("There is no summary to export. Generate the report first.")

    grades_df = records.rename(columns={ORIGIN_COL: "Row", "group": "Group", "grade": "Grade"})

    excluded_df = None
    if excluded is not None and not excluded.empty:
        excluded_df = excluded.rename(columns={ORIGIN_COL: "Row", "group": "Group", "value": "Value", "reason": "Reason"})
        excluded_df["Message"] = excluded_df["Reason"].map(EXCLUSION_REASONS).fillna("")

    bio = BytesIO()

    with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
        overall_df.to_excel(writer, index=False, sheet_name="Overall")
        if group_df is not None and not group_df.empty:
            group_df.to_excel(writer, index=False, sheet_name="By group")
        grades_df.to_excel(writer, index=False, sheet_name="Grades")
        if excluded_df is not None:
            excluded_df.to_excel(writer, index=False, sheet_name="Excluded rows")

        wb = writer.book

        fmt_header = wb.add_format({"bold": True, "bg_color": "#F2F2F2", "border": 1, "valign": "vcenter", "text_wrap": True})
        fmt_fail = wb.add_format({"bg_color": "#FCE8E6"})
        fmt_dist = wb.add_format({"bg_color": "#E6F4EA"})

        def format_df_sheet(sheet_name: str, df: pd.DataFrame, default_width: int = 14, max_width: int = 40):
            ws = writer.sheets.get(sheet_name)
            if ws is None:
                return
            ws.freeze_panes(1, 0)
            ws.autofilter(0, 0, max(1, len(df)), max(0, len(df.columns) - 1))
            for col, name in enumerate(df.columns):
                ws.write(0, col, name, fmt_header)
                w = max(10, min(max_width, int(len(str(name)) * 1.1) + 2))
                ws.set_column(col, col, max(default_width, w))

        format_df_sheet("Overall", overall_df)
        if group_df is not None and not group_df.empty:
            format_df_sheet("By group", group_df)
        format_df_sheet("Grades", grades_df, default_width=12)
        if excluded_df is not None:
            format_df_sheet("Excluded rows", excluded_df, default_width=14, max_width=60)
            wse = writer.sheets["Excluded rows"]
            wse.set_column(len(excluded_df.columns) - 1, len(excluded_df.columns) - 1, 60)

        if thresholds is not None and len(grades_df):
            wsg = writer.sheets["Grades"]
            jg = list(grades_df.columns).index("Grade")
            last_row = len(grades_df)
            wsg.conditional_format(1, jg, last_row, jg, {
                "type": "cell",
                "criteria": "<",
                "value": thresholds.passing,
                "format": fmt_fail,
            })
            wsg.conditional_format(1, jg, last_row, jg, {
                "type": "cell",
                "criteria": ">=",
                "value": thresholds.distinction,
                "format": fmt_dist,
            })

    data = bio.getvalue()
    logger.info("Excel report built: %d bytes", len(data))
    return data
