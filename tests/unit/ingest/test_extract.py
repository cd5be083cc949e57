"""Tests for document type detection and text extraction."""

from __future__ import annotations

import io

import pypdf
import pytest

from folderkb.db.models import DocumentType
from folderkb.errors import ValidationError
from folderkb.ingest.extract import detect_document_type, extract_text, html_to_text


@pytest.mark.parametrize(
    "name, expected",
    [
        ("invoice.txt", DocumentType.TEXT),
        ("README.md", DocumentType.MARKDOWN),
        ("notes.markdown", DocumentType.MARKDOWN),
        ("data.json", DocumentType.JSON),
        ("main.py", DocumentType.CODE),
        ("App.TSX", DocumentType.CODE),
        ("manual.pdf", DocumentType.PDF),
        ("https://example.com/page", DocumentType.URL),
        ("page.html", DocumentType.TEXT),
        ("no_extension", DocumentType.TEXT),
    ],
)
def test_detect_document_type(name, expected):
    assert detect_document_type(name) is expected


def test_plain_bytes_are_decoded_as_utf8():
    assert extract_text("a.txt", "Grüße".encode("utf-8")) == "Grüße"


def test_undecodable_bytes_are_replaced():
    text = extract_text("a.txt", b"ok \xff\xfe end")
    assert text.startswith("ok ") and text.endswith(" end")
    assert "�" in text


def test_html_is_converted_to_text():
    html = (
        "<html><head><title>T</title><style>p{}</style></head>"
        "<body><nav>Menu</nav><p>Mix flour and sugar</p><script>x()</script></body></html>"
    )
    text = extract_text("recipe.html", html.encode())
    assert "Mix flour and sugar" in text
    assert "Menu" not in text
    assert "x()" not in text


def test_html_detected_by_mime_type():
    assert html_to_text("<p>Hello</p>") == "Hello"
    assert extract_text("upload", b"<p>Hello</p>", mime_type="text/html; charset=utf-8") == "Hello"


def test_blank_pdf_yields_empty_text():
    writer = pypdf.PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buf = io.BytesIO()
    writer.write(buf)
    assert extract_text("scan.pdf", buf.getvalue()) == ""


def test_corrupt_pdf_is_a_validation_error():
    with pytest.raises(ValidationError, match="Cannot read PDF"):
        extract_text("broken.pdf", b"%PDF-1.4 not really a pdf")
