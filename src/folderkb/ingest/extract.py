"""Document type detection and raw-content extraction.

Dispatch by name:
  https:// / http://      → url (HTML converted to text)
  .pdf                    → pdf (pypdf page text)
  .md / .markdown         → markdown
  .json                   → json
  .py .js .ts …           → code
  .html / .htm            → text (HTML converted to text)
  anything else           → text (UTF-8, undecodable bytes replaced)
"""

from __future__ import annotations

import io
from pathlib import PurePosixPath

import html2text
import pypdf
from bs4 import BeautifulSoup
from pypdf.errors import PdfReadError

from folderkb.db.models import DocumentType
from folderkb.errors import ValidationError

_MD_EXTS = {".md", ".markdown"}
_JSON_EXTS = {".json"}
_PDF_EXTS = {".pdf"}
_HTML_EXTS = {".html", ".htm"}
_CODE_EXTS = {
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c", ".h",
    ".go", ".rs", ".rb", ".cs", ".php", ".sh",
}


def _html_converter() -> html2text.HTML2Text:
    # HTML2Text is a stateful parser, so each call gets its own instance.
    h2t = html2text.HTML2Text()
    h2t.ignore_links = True
    h2t.ignore_images = True
    h2t.body_width = 0  # no line wrapping
    return h2t


def detect_document_type(name: str) -> DocumentType:
    """Infer the DocumentType from a file name or URL."""
    if name.lower().startswith(("https://", "http://")):
        return DocumentType.URL
    ext = PurePosixPath(name.lower()).suffix
    if ext in _PDF_EXTS:
        return DocumentType.PDF
    if ext in _MD_EXTS:
        return DocumentType.MARKDOWN
    if ext in _JSON_EXTS:
        return DocumentType.JSON
    if ext in _CODE_EXTS:
        return DocumentType.CODE
    return DocumentType.TEXT


def extract_text(name: str, data: bytes, mime_type: str | None = None) -> str:
    """Return the plain text of a raw upload.

    Args:
        name: File name or URL the bytes came from.
        data: Raw bytes.
        mime_type: Optional MIME type reported by the uploader.

    Raises:
        ValidationError: If a PDF cannot be parsed.
    """
    mime = (mime_type or "").split(";")[0].strip().lower()
    ext = PurePosixPath(name.lower()).suffix

    if mime == "application/pdf" or ext in _PDF_EXTS:
        return _pdf_to_text(data, name)

    text = data.decode("utf-8", errors="replace")
    if mime == "text/html" or ext in _HTML_EXTS or detect_document_type(name) is DocumentType.URL:
        return html_to_text(text)
    return text


def html_to_text(html: str) -> str:
    """Strip HTML markup and return plain text via html2text."""
    soup = BeautifulSoup(html, "html.parser")
    # Remove non-content elements
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()
    return _html_converter().handle(str(soup)).strip()


def _pdf_to_text(data: bytes, name: str) -> str:
    """Extract all page text; pages without text (scans) are skipped."""
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts: list[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
    except PdfReadError as exc:
        raise ValidationError(f"Cannot read PDF '{name}': {exc}") from exc
    return "\n\n".join(parts)
