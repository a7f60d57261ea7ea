from __future__ import annotations

import logging
import os
from io import BytesIO

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml.ns import qn
from docx.shared import Pt, RGBColor
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from prepkit.core.config import settings
from prepkit.store.models import Resume

logger = logging.getLogger(__name__)

TITLE = "職務経歴書（改善版）"
DOCX_SUBTITLE = "AI分析による改善提案を適用したバージョンです"
PDF_SUBTITLE = "AI分析による改善提案を適用"
DISCLAIMER_LINES = (
    "※このドキュメントはAIによる改善提案を適用したものです。",
    "実際の提出前に内容を確認し、必要に応じて修正してください。",
)

DOCX_FONT = "Yu Gothic"
CID_FONT = "HeiseiKakuGo-W5"
TTF_FONT = "ResumeJapanese"

PDF_MARGIN = 40
BODY_SIZE = 11
BODY_LEADING = 4


class ExportError(RuntimeError):
    pass


def _grey(run, hex_value: int) -> None:
    run.font.color.rgb = RGBColor((hex_value >> 16) & 0xFF, (hex_value >> 8) & 0xFF, hex_value & 0xFF)


def export_docx(resume: Resume) -> bytes:
    text = resume.improved_text()
    document = Document()

    normal = document.styles["Normal"]
    normal.font.name = DOCX_FONT
    normal.font.size = Pt(11)
    normal.element.get_or_add_rPr().get_or_add_rFonts().set(qn("w:eastAsia"), DOCX_FONT)

    title = document.add_paragraph()
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    title_run = title.add_run(TITLE)
    title_run.bold = True
    title_run.font.size = Pt(24)

    subtitle = document.add_paragraph()
    subtitle.alignment = WD_ALIGN_PARAGRAPH.CENTER
    subtitle_run = subtitle.add_run(DOCX_SUBTITLE)
    subtitle_run.font.size = Pt(10)
    _grey(subtitle_run, 0x666666)

    document.add_paragraph()
    for line in text.split("\n"):
        if line.strip().startswith("■"):
            document.add_paragraph(line, style="Heading 1")
        elif not line.strip():
            document.add_paragraph()
        else:
            document.add_paragraph(line)
    document.add_paragraph()

    for line in DISCLAIMER_LINES:
        run = document.add_paragraph().add_run(line)
        run.font.size = Pt(9)
        _grey(run, 0x999999)

    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _register_pdf_font() -> str:
    font_path = settings.resume_pdf_font_path
    if font_path:
        if not os.path.exists(font_path):
            raise ExportError("日本語フォントがインストールされていません")
        if TTF_FONT not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(TTF_FONT, font_path))
        return TTF_FONT

    if CID_FONT not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(UnicodeCIDFont(CID_FONT))
    return CID_FONT


def wrap_line(line: str, font_name: str, font_size: float, max_width: float) -> list[str]:
    """Break a line by width, character by character (Japanese has no word spaces)."""
    if not line:
        return [""]
    chunks: list[str] = []
    current = ""
    for char in line:
        candidate = current + char
        if current and pdfmetrics.stringWidth(candidate, font_name, font_size) > max_width:
            chunks.append(current)
            current = char
        else:
            current = candidate
    chunks.append(current)
    return chunks


def export_pdf(resume: Resume) -> bytes:
    font_name = _register_pdf_font()
    text = resume.improved_text()

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    content_width = width - PDF_MARGIN * 2
    y = height - PDF_MARGIN

    def ensure_room(needed: float) -> None:
        nonlocal y
        if y - needed < PDF_MARGIN:
            pdf.showPage()
            y = height - PDF_MARGIN

    y -= 24
    pdf.setFont(font_name, 24)
    pdf.drawCentredString(width / 2, y, TITLE)
    y -= 10 + 10
    pdf.setFont(font_name, 10)
    pdf.drawCentredString(width / 2, y, PDF_SUBTITLE)
    y -= 30

    line_height = BODY_SIZE + BODY_LEADING
    for raw_line in text.split("\n"):
        for chunk in wrap_line(raw_line, font_name, BODY_SIZE, content_width):
            ensure_room(line_height)
            y -= line_height
            pdf.setFont(font_name, BODY_SIZE)
            pdf.drawString(PDF_MARGIN, y, chunk)

    ensure_room(30 + 10 + 2 * 12)
    y -= 30
    pdf.line(PDF_MARGIN, y, width - PDF_MARGIN, y)
    y -= 10
    pdf.setFont(font_name, 8)
    for line in DISCLAIMER_LINES:
        y -= 12
        pdf.drawString(PDF_MARGIN, y, line)

    pdf.save()
    logger.info("resume_pdf_exported resume_id=%s font=%s", resume.id, font_name)
    return buffer.getvalue()
