"""Tests for the content-type extractor registry."""
import io
from unittest.mock import MagicMock, patch

import openpyxl
import pytest

from ragdesk.config import ALLOWED_UPLOAD_TYPES
from ragdesk.errors import ExtractionFailure, UnsupportedContentType
from ragdesk.rag.extractors import (
    XLSX_CONTENT_TYPE,
    ExtractorRegistry,
    default_registry,
    normalize_content_type,
)


@pytest.fixture
def registry():
    return default_registry()


def test_csv_is_decoded_as_text(registry):
    result = registry.extract(b"name,sales\nacme,10\n", "text/csv", "sales.csv")

    assert result.text == "name,sales\nacme,10\n"
    assert result.content_type == "text/csv"
    assert result.extractor == "decode_text"


def test_excel_csv_type_is_text(registry):
    result = registry.extract(b"a,b\n1,2", "application/vnd.ms-excel", "x.csv")

    assert result.text == "a,b\n1,2"


def test_bom_is_stripped_and_parameters_ignored(registry):
    result = registry.extract(
        "\ufeffcol\nvalue".encode("utf-8"), "Text/CSV; charset=utf-8", "bom.csv"
    )

    assert result.text == "col\nvalue"
    assert result.content_type == "text/csv"


def test_invalid_utf8_is_replaced_not_fatal(registry):
    result = registry.extract(b"ok \xff\xfe bytes", "text/plain", "odd.txt")

    assert result.text.startswith("ok ")
    assert "bytes" in result.text


def test_unregistered_type_is_rejected(registry):
    with pytest.raises(UnsupportedContentType):
        registry.extract(b"\x89PNG\r\n", "image/png", "photo.png")


def test_unsupported_is_an_extraction_failure():
    assert issubclass(UnsupportedContentType, ExtractionFailure)


def test_missing_type_is_guessed_from_file_name(registry):
    result = registry.extract(b"a,b", "", "table.csv")

    assert result.content_type == "text/csv"


def test_missing_type_without_known_extension_is_rejected(registry):
    with pytest.raises(UnsupportedContentType):
        registry.extract(b"data", None, "blob")


def test_whitespace_only_text_is_rejected(registry):
    with pytest.raises(ExtractionFailure):
        registry.extract(b"  \n\t ", "text/plain", "blank.txt")


def test_corrupt_pdf_is_rejected_not_decoded(registry):
    with pytest.raises(ExtractionFailure):
        registry.extract(b"this is not a pdf", "application/pdf", "fake.pdf")


def test_pdf_pages_are_joined(registry):
    pages = [MagicMock(), MagicMock(), MagicMock()]
    pages[0].extract_text.return_value = "Page one"
    pages[1].extract_text.return_value = None
    pages[2].extract_text.return_value = "Page three"
    reader = MagicMock(pages=pages)

    with patch("ragdesk.rag.extractors.PdfReader", return_value=reader):
        result = registry.extract(b"%PDF-1.4", "application/pdf", "doc.pdf")

    assert result.text == "Page one\n\nPage three"
    assert result.extractor == "read_text_from_pdf"


def test_custom_extractor_registration():
    registry = ExtractorRegistry()
    registry.register("Application/X-Custom", lambda data: data.decode().upper())

    assert registry.supported_types() == ["application/x-custom"]
    assert registry.extract(b"hello", "application/x-custom").text == "HELLO"


@pytest.mark.parametrize(
    "raw,expected",
    [(None, ""), ("", ""), ("TEXT/CSV", "text/csv"), ("text/plain; charset=latin-1", "text/plain")],
)
def test_normalize_content_type(raw, expected):
    assert normalize_content_type(raw) == expected


def make_workbook(rows, title="Sales") -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = title
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_xlsx_rows_become_csv_lines(registry):
    data = make_workbook([["region", "units"], ["north", 10], [None, None], ["south, east", 2.5]])

    result = registry.extract(data, XLSX_CONTENT_TYPE, "sales.xlsx")

    assert result.text == 'Sheet: Sales\nregion,units\nnorth,10\n"south, east",2.5\n'
    assert result.extractor == "read_text_from_xlsx"


def test_corrupt_xlsx_is_rejected(registry):
    with pytest.raises(ExtractionFailure):
        registry.extract(b"PK\x03\x04 not really a zip", XLSX_CONTENT_TYPE, "broken.xlsx")


def test_legacy_binary_xls_is_rejected_not_decoded(registry):
    data = bytes.fromhex("D0CF11E0A1B11AE1") + bytes(range(256)) * 8

    with pytest.raises(UnsupportedContentType, match=".xls"):
        registry.extract(data, "application/vnd.ms-excel", "legacy.xls")


def test_ms_excel_type_with_workbook_bytes_is_read_as_xlsx(registry):
    data = make_workbook([["a", "b"], [1, 2]])

    result = registry.extract(data, "application/vnd.ms-excel", "report.xls")

    assert result.text == "Sheet: Sales\na,b\n1,2\n"
    assert result.extractor == "read_text_from_ms_excel"


def test_every_uploadable_type_has_an_extractor(registry):
    assert set(ALLOWED_UPLOAD_TYPES) <= set(registry.supported_types())


def test_unsupported_type_message_lists_supported_types(registry):
    with pytest.raises(UnsupportedContentType, match="text/csv"):
        registry.extract(b"GIF89a", "image/gif", "cat.gif")
