"""Plain-text extraction for uploaded documents."""

from __future__ import annotations

import asyncio
import zipfile
from io import BytesIO
from typing import Callable, Dict

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from gatebot.logging import logger
from gatebot.services.exceptions import ExtractionEmpty, ExtractionError, ExtractionUnsupported


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(BytesIO(data))
    pages = [str(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(page for page in pages if page)


def _extract_docx(data: bytes) -> str:
    document = Document(BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def _extract_txt(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    "pdf": _extract_pdf,
    "docx": _extract_docx,
    "txt": _extract_txt,
}


class DocumentExtractor:
    def supports(self, extension: str) -> bool:
        return extension.lower().lstrip(".") in EXTRACTORS

    async def extract(self, data: bytes, extension: str, *, max_chars: int | None = None) -> str:
        ext = extension.lower().lstrip(".")
        extractor = EXTRACTORS.get(ext)
        if extractor is None:
            raise ExtractionUnsupported(ext or "unknown")

        try:
            text = await asyncio.to_thread(extractor, data)
        except (PdfReadError, PackageNotFoundError, zipfile.BadZipFile, ValueError, KeyError, OSError) as exc:
            logger.warning("document_extraction_failed", extension=ext, error=str(exc))
            raise ExtractionError(str(exc)) from exc

        text = text.strip()
        if not text:
            raise ExtractionEmpty(ext)
        if max_chars is not None and len(text) > max_chars:
            text = text[:max_chars]
        return text


__all__ = ["DocumentExtractor", "EXTRACTORS"]
