"""Input documents and their low-level readers.

A Document is either an uploaded file (spreadsheet, CSV, PDF, image) or
pasted free text. This module classifies documents, rejects unusable ones
before any extraction work, reads spreadsheets into raw grids, and renders
PDFs/images into the base64 payloads the extraction oracle accepts.
"""

import base64
import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional

import fitz
import openpyxl

from core.errors import UnsupportedDocument


# Document kinds
SPREADSHEET = "spreadsheet"
CSV = "csv"
PDF = "pdf"
IMAGE = "image"
TEXT = "text"
LEGACY_XLS = "legacy_xls"

_EXTENSION_KINDS = {
    ".xlsx": SPREADSHEET,
    ".xlsm": SPREADSHEET,
    ".xls": LEGACY_XLS,
    ".csv": CSV,
    ".pdf": PDF,
    ".png": IMAGE,
    ".jpg": IMAGE,
    ".jpeg": IMAGE,
    ".webp": IMAGE,
    ".gif": IMAGE,
    ".txt": TEXT,
}

_IMAGE_MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

GRID_KINDS = (SPREADSHEET, CSV)


@dataclass(frozen=True)
class Document:
    """An input to extraction: file bytes plus the name they were uploaded under."""
    filename: str
    content: bytes
    media_type: Optional[str] = None

    @classmethod
    def from_text(cls, text: str) -> "Document":
        return cls(filename="pasted.txt", content=text.encode("utf-8"), media_type="text/plain")

    @classmethod
    def from_path(cls, path: Path) -> "Document":
        path = Path(path)
        return cls(filename=path.name, content=path.read_bytes())

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()

    @property
    def kind(self) -> Optional[str]:
        kind = _EXTENSION_KINDS.get(self.extension)
        if kind is None and self.media_type:
            if self.media_type.startswith("image/"):
                return IMAGE
            if self.media_type == "application/pdf":
                return PDF
            if self.media_type.startswith("text/"):
                return TEXT
        return kind

    @property
    def size(self) -> int:
        return len(self.content)

    def text(self) -> str:
        return self.content.decode("utf-8-sig", errors="replace")


def validate_document(document: Document, max_bytes: int) -> None:
    """Reject documents that cannot be extracted, before any oracle call.

    Raises:
        UnsupportedDocument: Empty, larger than ``max_bytes``, or of an unknown kind
    """
    if document.size == 0 or (document.kind == TEXT and not document.text().strip()):
        raise UnsupportedDocument("Document is empty", document.filename)
    if document.size > max_bytes:
        raise UnsupportedDocument(
            f"Document is {document.size} bytes, limit is {max_bytes} bytes",
            document.filename,
        )
    kind = document.kind
    if kind is None:
        raise UnsupportedDocument(
            f"Unsupported file type '{document.extension or document.media_type}'",
            document.filename,
        )
    if kind == LEGACY_XLS:
        raise UnsupportedDocument(
            "Legacy .xls workbooks are not supported, save the sheet as .xlsx or .csv",
            document.filename,
        )


# =============================================================================
# Grid Readers
# =============================================================================

def _cell_value(value: Any) -> Any:
    """Normalize a spreadsheet cell: integral floats to int, dates to ISO strings."""
    if value is None:
        return None
    if isinstance(value, float) and value == int(value):
        return int(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    if isinstance(value, str):
        return value.strip()
    return value


def load_grid(document: Document) -> List[List[Any]]:
    """Read the first sheet of a spreadsheet (or a CSV) into a list of rows.

    Fully empty rows are dropped.

    Raises:
        UnsupportedDocument: Not a grid document, or the file cannot be parsed
    """
    if document.kind == SPREADSHEET:
        try:
            wb = openpyxl.load_workbook(io.BytesIO(document.content), read_only=True, data_only=True)
        except Exception as e:
            raise UnsupportedDocument(f"Cannot read workbook: {e}", document.filename) from e
        try:
            sheet = wb.worksheets[0]
            raw_rows = [list(row) for row in sheet.iter_rows(values_only=True)]
        finally:
            wb.close()
    elif document.kind == CSV:
        raw_rows = [list(row) for row in csv.reader(io.StringIO(document.text()))]
    else:
        raise UnsupportedDocument("Not a spreadsheet or CSV file", document.filename)

    rows = []
    for raw in raw_rows:
        row = [_cell_value(v) for v in raw]
        if any(v not in (None, "") for v in row):
            rows.append(row)
    return rows


def grid_to_csv(rows: List[List[Any]]) -> str:
    """Render a grid as CSV text for the oracle."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return buffer.getvalue()


# =============================================================================
# Oracle Payloads
# =============================================================================

def page_to_png_b64(page: fitz.Page, zoom: float = 2.0) -> str:
    """Convert a PDF page to base64-encoded PNG for the vision API."""
    mat = fitz.Matrix(zoom, zoom)
    pix = page.get_pixmap(matrix=mat, alpha=False)
    return base64.b64encode(pix.tobytes("png")).decode("ascii")


def pdf_to_images(document: Document, max_pages: int = 10) -> List[str]:
    """Render the first ``max_pages`` pages of a PDF as base64 PNG images."""
    try:
        with fitz.open(stream=document.content, filetype="pdf") as doc:
            return [page_to_png_b64(doc.load_page(i)) for i in range(min(doc.page_count, max_pages))]
    except (RuntimeError, ValueError) as e:
        raise UnsupportedDocument(f"Cannot read PDF: {e}", document.filename) from e


def image_media_type(document: Document) -> str:
    return document.media_type or _IMAGE_MEDIA_TYPES.get(document.extension, "image/png")


def image_to_b64(document: Document) -> str:
    return base64.b64encode(document.content).decode("ascii")
