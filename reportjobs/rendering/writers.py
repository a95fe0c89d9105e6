"""File writers for each export format. All writers return the file's bytes."""

import io
import json
from dataclasses import asdict
from typing import Callable, Dict
from xml.sax.saxutils import escape

from docx import Document
from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from reportjobs.jobs.models import ExportFormat
from reportjobs.rendering.sections import ReportDocument


def render_markdown(doc: ReportDocument) -> bytes:
    lines = [f"# {doc.title}", "", f"_{doc.subtitle}_", ""]
    for section in doc.sections:
        lines.append(f"## {section.heading}")
        lines.append("")
        for para in section.paragraphs:
            if para.strip():
                lines.append(para)
                lines.append("")
        if section.table is not None:
            lines.append("| " + " | ".join(section.table.headers) + " |")
            lines.append("|" + "---|" * len(section.table.headers))
            for row in section.table.rows:
                cells = [c.replace("|", "\\|").replace("\n", " ") for c in row]
                lines.append("| " + " | ".join(cells) + " |")
            lines.append("")
    return "\n".join(lines).encode("utf-8")


def render_json(doc: ReportDocument) -> bytes:
    payload = {
        "company": doc.title,
        "reportType": doc.subtitle,
        "sections": [asdict(s) for s in doc.sections],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def render_xlsx(doc: ReportDocument) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = doc.subtitle[:31]
    bold = Font(bold=True)

    ws.append([doc.title])
    ws.cell(row=ws.max_row, column=1).font = Font(bold=True, size=14)
    ws.append([doc.subtitle])
    for section in doc.sections:
        ws.append([])
        ws.append([section.heading])
        ws.cell(row=ws.max_row, column=1).font = bold
        for para in section.paragraphs:
            if para.strip():
                ws.append([para])
        if section.table is not None:
            ws.append(section.table.headers)
            for col in range(1, len(section.table.headers) + 1):
                ws.cell(row=ws.max_row, column=col).font = bold
            for row in section.table.rows:
                ws.append(row)

    # Auto-size columns based on content
    for column in ws.columns:
        width = max((len(str(c.value)) for c in column if c.value is not None), default=10)
        ws.column_dimensions[column[0].column_letter].width = min(width + 2, 60)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def render_docx(doc: ReportDocument) -> bytes:
    document = Document()
    document.add_heading(doc.title, 0)
    document.add_paragraph(doc.subtitle)
    for section in doc.sections:
        document.add_heading(section.heading, level=1)
        for para in section.paragraphs:
            if para.strip():
                document.add_paragraph(para)
        if section.table is not None:
            table = document.add_table(rows=1, cols=len(section.table.headers))
            table.style = "Table Grid"
            for cell, header in zip(table.rows[0].cells, section.table.headers):
                cell.text = header
            for row in section.table.rows:
                cells = table.add_row().cells
                for cell, value in zip(cells, row):
                    cell.text = value

    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def render_pdf(doc: ReportDocument) -> bytes:
    buf = io.BytesIO()
    pdf = SimpleDocTemplate(
        buf,
        pagesize=letter,
        title=f"{doc.title} - {doc.subtitle}",
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
    )
    styles = getSampleStyleSheet()
    story = [
        Paragraph(escape(doc.title), styles["Title"]),
        Paragraph(escape(doc.subtitle), styles["Heading3"]),
        Spacer(1, 0.2 * inch),
    ]
    for section in doc.sections:
        story.append(Paragraph(escape(section.heading), styles["Heading2"]))
        for para in section.paragraphs:
            if para.strip():
                story.append(Paragraph(escape(para), styles["BodyText"]))
        if section.table is not None:
            cell_style = styles["BodyText"]
            data = [[Paragraph(escape(h), cell_style) for h in section.table.headers]]
            data += [[Paragraph(escape(c), cell_style) for c in row] for row in section.table.rows]
            table = Table(data, repeatRows=1)
            table.setStyle(TableStyle([
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]))
            story.append(table)
        story.append(Spacer(1, 0.15 * inch))
    pdf.build(story)
    return buf.getvalue()


RENDERERS: Dict[ExportFormat, Callable[[ReportDocument], bytes]] = {
    ExportFormat.MD: render_markdown,
    ExportFormat.JSON: render_json,
    ExportFormat.XLSX: render_xlsx,
    ExportFormat.DOCX: render_docx,
    ExportFormat.PDF: render_pdf,
}


def render(doc: ReportDocument, fmt: ExportFormat) -> bytes:
    return RENDERERS[fmt](doc)
