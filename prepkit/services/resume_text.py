from __future__ import annotations

import logging
import re
import zipfile
from io import BytesIO

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_CONTENT_TYPE = "application/msword"

_TABS_RE = re.compile(r"\t+")
_SPACES_RE = re.compile(r" +")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class ExtractionError(ValueError):
    pass


def _extract_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(data))
        text = "\n\n".join((page.extract_text() or "") for page in reader.pages)
    except PdfReadError as exc:
        raise ExtractionError("PDFファイルが破損しているか、読み取れない形式です。") from exc
    except Exception as exc:
        logger.error("pdf_extraction_failed: %s", exc)
        raise ExtractionError("PDFの読み取り中にエラーが発生しました。") from exc

    if not text.strip():
        raise ExtractionError("PDFからテキストを抽出できませんでした。画像PDFの可能性があります。")
    return text


def _extract_docx(data: bytes) -> str:
    try:
        document = Document(BytesIO(data))
        paragraphs = [paragraph.text for paragraph in document.paragraphs]
        tables = [
            "\n".join("\t".join(cell.text for cell in row.cells) for row in table.rows)
            for table in document.tables
        ]
    except (zipfile.BadZipFile, PackageNotFoundError) as exc:
        raise ExtractionError("Wordファイルが破損しているか、読み取れない形式です。") from exc
    except Exception as exc:
        logger.error("docx_extraction_failed: %s", exc)
        raise ExtractionError("Wordファイルの読み取り中にエラーが発生しました。") from exc

    text = "\n".join(paragraphs + tables)
    if not text.strip():
        raise ExtractionError("Wordファイルからテキストを抽出できませんでした。")
    return text


def clean_text(text: str | None) -> str:
    if text is None:
        return ""
    text = text.replace("\r\n", "\n")
    text = _TABS_RE.sub(" ", text)
    text = _SPACES_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def extract_text(data: bytes | None, content_type: str | None) -> str | None:
    """Extract and clean résumé text; ``None`` when there is no file."""
    if not data:
        return None

    if content_type == PDF_CONTENT_TYPE:
        text = _extract_pdf(data)
    elif content_type == DOCX_CONTENT_TYPE:
        text = _extract_docx(data)
    elif content_type == DOC_CONTENT_TYPE:
        raise ExtractionError(".doc形式は対応していません。.docx形式で再度アップロードしてください。")
    else:
        raise ExtractionError(f"対応していないファイル形式です: {content_type}")

    return clean_text(text)


ACCEPTED_CONTENT_TYPES = (PDF_CONTENT_TYPE, DOCX_CONTENT_TYPE, DOC_CONTENT_TYPE)

_EXTENSION_TYPES = {
    "pdf": PDF_CONTENT_TYPE,
    "docx": DOCX_CONTENT_TYPE,
    "doc": DOC_CONTENT_TYPE,
}


def detect_content_type(filename: str | None, declared: str | None) -> str | None:
    """Accepted résumé content type from the upload header, else from the file extension."""
    declared = (declared or "").split(";")[0].strip().lower()
    if declared in ACCEPTED_CONTENT_TYPES:
        return declared
    name = (filename or "").strip().lower()
    extension = name.rsplit(".", 1)[-1] if "." in name else ""
    return _EXTENSION_TYPES.get(extension)
