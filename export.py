from __future__ import annotations

import io
import json
import logging
from datetime import datetime, timezone
from typing import Any, Sequence
from xml.sax.saxutils import escape

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from logic import DueStats, MatchRecord, completion_percent, format_currency

logger = logging.getLogger(__name__)

# Base-14 PDF fonts have no rupee glyph.
PDF_CURRENCY_SYMBOL = "Rs "

DUE_COLUMNS = [
    "Student",
    "Student ID",
    "Course",
    "Year",
    "Semester",
    "Branch",
    "Issued",
    "Pending",
    "Pending Items",
    "Issued Value",
    "Pending Value",
    "Completion %",
]


def _safe_text(value: Any) -> str:
    if value is None or value == "":
        return "-"
    return str(value)


def _para_text(value: Any) -> str:
    return escape(_safe_text(value))


def due_records_frame(records: Sequence[MatchRecord]) -> pd.DataFrame:
    rows = []
    for record in records:
        student = record.student
        rows.append(
            {
                "Student": student.name,
                "Student ID": student.student_id,
                "Course": (student.course or "").upper(),
                "Year": student.year,
                "Semester": student.semester,
                "Branch": student.branch or "",
                "Issued": record.issued_count,
                "Pending": len(record.pending_items),
                "Pending Items": ", ".join(item.name for item in record.pending_items),
                "Issued Value": round(record.issued_value, 2),
                "Pending Value": round(record.pending_value, 2),
                "Completion %": completion_percent(record),
            }
        )
    return pd.DataFrame(rows, columns=DUE_COLUMNS)


def build_due_csv(records: Sequence[MatchRecord]) -> bytes:
    return due_records_frame(records).to_csv(index=False).encode("utf-8")


def summary_lines(stats: DueStats, currency_symbol: str = "₹") -> list[str]:
    return [
        f"Students with dues: {stats.total_students}",
        f"Pending items: {stats.total_pending_items}",
        f"Total pending amount: {format_currency(stats.total_pending_amount, currency_symbol)}",
        f"Impacted courses: {stats.impacted_course_count}",
    ]


def build_due_pdf_report(
    records: Sequence[MatchRecord],
    stats: DueStats | None = None,
    title: str = "Student Due Report",
    filters: dict[str, Any] | None = None,
    currency_symbol: str = PDF_CURRENCY_SYMBOL,
) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=title)
    styles = getSampleStyleSheet()
    normal = styles["BodyText"]
    heading = styles["Heading2"]

    story = []
    story.append(Paragraph(escape(title), styles["Title"]))
    story.append(Paragraph(f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M')} UTC", normal))
    active_filters = {key: value for key, value in (filters or {}).items() if value not in (None, "")}
    if active_filters:
        story.append(Paragraph("Filters: " + escape(", ".join(f"{k}={v}" for k, v in active_filters.items())), normal))
    story.append(Spacer(1, 12))

    if stats is not None:
        story.append(Paragraph("Summary", heading))
        for line in summary_lines(stats, currency_symbol):
            story.append(Paragraph(line, normal))
        story.append(Spacer(1, 8))

    story.append(Paragraph("Students With Pending Items", heading))
    if not records:
        story.append(Paragraph("No students have pending items for the selected filters.", normal))
    else:
        table_rows = [["#", "Student", "Student ID", "Course / Year", "Pending", "Pending Amount"]]
        for idx, record in enumerate(records, start=1):
            student = record.student
            table_rows.append(
                [
                    str(idx),
                    Paragraph(_para_text(student.name), normal),
                    _safe_text(student.student_id),
                    f"{_safe_text((student.course or '').upper())} / {_safe_text(student.year)}",
                    str(len(record.pending_items)),
                    format_currency(record.pending_value, currency_symbol),
                ]
            )
        table = Table(table_rows, repeatRows=1, colWidths=[24, 140, 70, 95, 45, 77])
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#6D28D9")),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("ALIGN", (4, 1), (-1, -1), "RIGHT"),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F3F4F6")]),
                ]
            )
        )
        story.append(table)

    doc.build(story)
    buffer.seek(0)
    payload = buffer.read()
    logger.info("Built due PDF with %d rows (%d bytes)", len(records), len(payload))
    return payload


def build_json_summary(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=True).encode("utf-8")
