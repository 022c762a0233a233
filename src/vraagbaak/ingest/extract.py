"""Document-to-text extraction (PDF via pypdf, everything else as UTF-8 text)."""

from __future__ import annotations

import io

import pypdf
from pypdf.errors import PyPdfError

from vraagbaak.errors import ExtractionError, UnsupportedMediaType

PDF_EXTS = {".pdf"}


def extract_text(data: bytes | str, filename: str | None = None) -> str:
    """Return the plain text of an uploaded document, stripped.

    Args:
        data: Raw file bytes, or already-decoded text.
        filename: Original file name; a ``.pdf`` suffix selects the PDF reader.

    Raises:
        UnsupportedMediaType: If non-PDF bytes are not valid UTF-8.
        ExtractionError: If the PDF cannot be parsed.
    """
    if isinstance(data, str):
        return data.strip()
    if _is_pdf(filename):
        return _extract_pdf(data, filename)
    try:
        return data.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise UnsupportedMediaType(
            f"'{filename or 'upload'}' is neither a PDF nor UTF-8 text ({exc.reason})"
        ) from exc


def _is_pdf(filename: str | None) -> bool:
    if not filename:
        return False
    return any(filename.lower().endswith(ext) for ext in PDF_EXTS)


def _extract_pdf(data: bytes, filename: str | None) -> str:
    """Extract page text with pypdf; pages are joined by a blank line.

    Pages that yield no text (scanned images) are skipped.
    """
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts: list[str] = []
        for page in reader.pages:
            stripped = (page.extract_text() or "").strip()
            if stripped:
                parts.append(stripped)
    except (PyPdfError, ValueError) as exc:
        raise ExtractionError(f"Cannot read PDF '{filename}': {exc}") from exc
    return "\n\n".join(parts).strip()
