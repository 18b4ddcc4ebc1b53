import io
import logging
from datetime import date

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)

CSV_MIME = "text/csv"
PDF_MIME = "application/pdf"
EXCEL_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MAX_CELL_CHARS = 50


def export_filename(prefix: str, ext: str, today: date | None = None) -> str:
    return f"{prefix}_{(today or date.today()).isoformat()}.{ext}"


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


def _cell(value) -> str:
    s = "" if pd.isna(value) else " ".join(str(value).split())
    return s if len(s) <= MAX_CELL_CHARS else s[: MAX_CELL_CHARS - 3] + "..."


def to_pdf_bytes(df: pd.DataFrame, title: str = "Report") -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=landscape(A4), leftMargin=1 * cm, rightMargin=1 * cm, topMargin=1 * cm, bottomMargin=1 * cm
    )
    styles = getSampleStyleSheet()
    story = [Paragraph(f"<b>{title}</b>", styles["Title"]), Spacer(1, 12)]

    if df.empty:
        story.append(Paragraph("No records to export.", styles["Normal"]))
    else:
        data = [[str(c) for c in df.columns]]
        data += [[_cell(v) for v in row] for row in df.itertuples(index=False)]
        page_width = landscape(A4)[0] - doc.leftMargin - doc.rightMargin
        col_width = max(3 * cm, page_width / max(1, len(df.columns)))
        table = Table(data, colWidths=[col_width] * len(df.columns), repeatRows=1)
        table.setStyle(TableStyle([
            ("GRID", (0, 0), (-1, -1), 0.3, colors.grey),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f2f2f2")),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("FONTSIZE", (0, 0), (-1, -1), 7),
        ]))
        story.append(table)

    doc.build(story)
    return buffer.getvalue()


def to_excel_bytes(sheets: dict[str, pd.DataFrame]) -> bytes:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        for name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=name[:31], index=False)
    return output.getvalue()


def dashboard_export_frame(employees: list[dict]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Name": e["name"],
                "Role": e.get("role") or "",
                "Department": e.get("department") or "",
                "Retention Score": "" if e.get("retention_score") is None else f"{e['retention_score']}%",
                "Risk Level": e.get("risk_level") or "",
            }
            for e in employees
        ],
        columns=["Name", "Role", "Department", "Retention Score", "Risk Level"],
    )


def predictions_export_frame(results: list[dict]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Employee": r["employee"],
                "Department": r.get("department", "Unknown"),
                "Risk Level": r["risk"],
                "Score": r["score"],
                "Timestamp": r.get("timestamp", ""),
            }
            for r in results
        ],
        columns=["Employee", "Department", "Risk Level", "Score", "Timestamp"],
    )


def handle_export(df: pd.DataFrame, fmt: str, title: str, prefix: str = "thrive_dashboard_export") -> tuple[bytes, str, str]:
    if fmt == "pdf":
        return to_pdf_bytes(df, title), export_filename(prefix, "pdf"), PDF_MIME
    if fmt == "excel":
        return to_excel_bytes({title: df}), export_filename(prefix, "xlsx"), EXCEL_MIME
    if fmt != "csv":
        logger.warning("Unknown export format %r, falling back to CSV", fmt)
    return to_csv_bytes(df), export_filename(prefix, "csv"), CSV_MIME
