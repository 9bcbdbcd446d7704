"""Text extraction registry keyed by declared content type.

Text formats are decoded directly, PDFs go through pypdf and ``.xlsx``
workbooks through openpyxl. A content type with no registered extractor is
rejected instead of being decoded as text.
"""
import csv
import io
import mimetypes
import zipfile
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import openpyxl
import structlog
from openpyxl.utils.exceptions import InvalidFileException
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ragdesk.errors import ExtractionFailure, UnsupportedContentType

logger = structlog.get_logger()

Extractor = Callable[[bytes], str]

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Leading bytes of OLE2 compound files (legacy .xls) and zip archives (.xlsx)
OLE2_MAGIC = bytes.fromhex("D0CF11E0")
ZIP_MAGIC = b"PK\x03\x04"


@dataclass
class ExtractedText:
    text: str
    content_type: str
    extractor: str


def decode_text(data: bytes) -> str:
    """Decode plain/CSV bytes as UTF-8, dropping a BOM and replacing bad bytes."""
    return data.decode("utf-8-sig", errors="replace")


def read_text_from_pdf(data: bytes) -> str:
    """Extract the text layer of every page of a PDF."""
    try:
        pdf = PdfReader(io.BytesIO(data))
        parts = [page.extract_text() or "" for page in pdf.pages]
    except (PdfReadError, ValueError, KeyError, TypeError) as e:
        raise ExtractionFailure(f"Could not read PDF: {e}") from e
    return "\n".join(parts)


def read_text_from_xlsx(data: bytes) -> str:
    """Render every sheet of a workbook as CSV lines under a sheet heading.

    Cells hold computed values, not formulas; empty rows are skipped.
    """
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ExtractionFailure(f"Could not read workbook: {e}") from e

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    try:
        for sheet in workbook.worksheets:
            buffer.write(f"Sheet: {sheet.title}\n")
            for row in sheet.iter_rows(values_only=True):
                if all(cell is None for cell in row):
                    continue
                writer.writerow(_cell_text(cell) for cell in row)
    finally:
        workbook.close()

    return buffer.getvalue()


def _cell_text(cell) -> str:
    if cell is None:
        return ""
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell)


def read_text_from_ms_excel(data: bytes) -> str:
    """Handle the ``application/vnd.ms-excel`` type.

    Browsers send it for both CSV exports and real workbooks, so the bytes
    decide: zip archives are read as ``.xlsx``, legacy OLE2 workbooks are
    rejected and anything else is delimited text.
    """
    if data.startswith(OLE2_MAGIC):
        raise UnsupportedContentType(
            "Legacy binary .xls workbooks are not supported; save as .xlsx or CSV"
        )
    if data.startswith(ZIP_MAGIC):
        return read_text_from_xlsx(data)
    return decode_text(data)


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case a content type and drop parameters such as charset."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


class ExtractorRegistry:
    """Maps content types to extractor functions."""

    def __init__(self):
        self._extractors: Dict[str, Extractor] = {}

    def register(self, content_type: str, extractor: Extractor) -> None:
        self._extractors[normalize_content_type(content_type)] = extractor

    def supported_types(self) -> List[str]:
        return sorted(self._extractors)

    def resolve_type(self, content_type: Optional[str], file_name: str = "") -> str:
        """Return the effective content type, guessing from the name if undeclared."""
        resolved = normalize_content_type(content_type)
        if not resolved and file_name:
            guessed, _ = mimetypes.guess_type(file_name)
            resolved = normalize_content_type(guessed)
        return resolved

    def extract(
        self, data: bytes, content_type: Optional[str], file_name: str = ""
    ) -> ExtractedText:
        """Extract text from raw bytes.

        Args:
            data: Raw file bytes
            content_type: Declared MIME type
            file_name: Original file name, used when no type was declared

        Returns:
            ExtractedText with the text and the extractor used

        Raises:
            UnsupportedContentType: If no extractor handles the type
            ExtractionFailure: If extraction fails or yields no text
        """
        resolved = self.resolve_type(content_type, file_name)
        extractor = self._extractors.get(resolved)

        if extractor is None:
            logger.warning(
                "unsupported_content_type",
                content_type=content_type,
                file_name=file_name,
            )
            raise UnsupportedContentType(
                f"Unsupported file type: {content_type or 'unknown'} "
                f"(supported: {', '.join(self.supported_types())})"
            )

        text = extractor(data)

        if not text.strip():
            raise ExtractionFailure(f"No extractable text in {file_name or 'file'}")

        logger.info(
            "text_extracted",
            content_type=resolved,
            extractor=extractor.__name__,
            text_length=len(text),
        )

        return ExtractedText(text=text, content_type=resolved, extractor=extractor.__name__)


def default_registry() -> ExtractorRegistry:
    """Registry with the text, spreadsheet and PDF extractors."""
    registry = ExtractorRegistry()
    for content_type in ("text/csv", "text/plain", "text/markdown"):
        registry.register(content_type, decode_text)
    registry.register("application/vnd.ms-excel", read_text_from_ms_excel)
    registry.register(XLSX_CONTENT_TYPE, read_text_from_xlsx)
    registry.register("application/pdf", read_text_from_pdf)
    return registry
