"""
Text extraction driver: PDF text layer with OCR fallback, or direct image OCR.

* **PDF**: pdfplumber reads each page's embedded text layer.  Pages with
  (almost) no text layer are scanned images: they are rasterized with PyMuPDF
  and OCRed with Tesseract instead.
* **Anything else**: treated as an image and OCRed directly.

Rasterization is an optional capability.  When PyMuPDF is not installed, or a
page fails to render, that page contributes an empty string; pages are never
dropped and page order is always preserved.

All library calls here are blocking; :func:`extract_text_pages` runs them in a
worker thread.
"""


import asyncio
import io
import logging
import re
from typing import Callable

import pdfplumber
import pytesseract
from PIL import Image

from docverify.core.config import settings
from docverify.core.exceptions import TextExtractionError
from docverify.services.fetcher import DownloadedFile

logger = logging.getLogger(__name__)

__all__ = ["extract_text_pages", "extract_pdf_pages", "run_ocr", "PageRasterizer"]

OcrFn = Callable[[bytes], str]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalize(text: str | None) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()

def run_ocr(image_bytes: bytes, language: str | None = None) -> str:
    """Whole-image OCR with Tesseract; output is whitespace-normalized.

    Raises :class:`TextExtractionError` for undecodable images or OCR failures.
    """
    lang = language or settings.ocr_language
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            text = pytesseract.image_to_string(image, lang=lang)
    except (pytesseract.TesseractError, OSError) as exc:
        raise TextExtractionError(f"OCR failed: {exc}") from exc
    return _normalize(text)

# ---------------------------------------------------------------------------
# Rasterization (optional PyMuPDF capability)
# ---------------------------------------------------------------------------

class PageRasterizer:
    """Render single PDF pages to PNG bytes, or ``None`` when unavailable."""

    def __init__(self, pdf_bytes: bytes, scale: float | None = None):
        self.scale = settings.raster_scale if scale is None else scale
        self._fitz = None
        self._doc = None
        try:
            import fitz  # PyMuPDF, optional dependency
        except ImportError:
            logger.info("PyMuPDF not installed; scanned PDF pages cannot be rasterized")
            return

        try:
            self._doc = fitz.open(stream=pdf_bytes, filetype="pdf")
            self._fitz = fitz
        except Exception as exc:
            logger.warning("PyMuPDF could not open PDF for rasterization: %s", exc)

    @property
    def available(self) -> bool:
        return self._doc is not None

    def render(self, page_index: int) -> bytes | None:
        if self._doc is None or page_index >= len(self._doc):
            return None
        try:
            page = self._doc[page_index]
            mat = self._fitz.Matrix(self.scale, self.scale)
            pix = page.get_pixmap(matrix=mat, alpha=False)
            png = pix.tobytes("png")
            logger.debug(
                "Rendered PDF page %d → %dx%d PNG (%d bytes)",
                page_index + 1, pix.width, pix.height, len(png),
            )
            return png
        except Exception as exc:
            logger.warning("Rasterizing PDF page %d failed: %s", page_index + 1, exc)
            return None

    def close(self) -> None:
        if self._doc is not None:
            self._doc.close()
            self._doc = None

    def __enter__(self) -> "PageRasterizer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

# ---------------------------------------------------------------------------
# PDF path
# ---------------------------------------------------------------------------

def _page_text_layer(page, page_number: int) -> str:
    try:
        return _normalize(page.extract_text())
    except Exception as exc:
        logger.warning("Text layer extraction failed on page %d: %s", page_number, exc)
        return ""

def extract_pdf_pages(
    pdf_bytes: bytes,
    *,
    ocr: OcrFn = run_ocr,
    rasterizer_factory: Callable[[bytes], PageRasterizer] = PageRasterizer,
    min_chars: int | None = None,
) -> list[str]:
    """Return one text string per PDF page, in page order."""
    min_chars = settings.min_page_text_chars if min_chars is None else min_chars
    page_texts: list[str] = []
    rasterizer: PageRasterizer | None = None

    try:
        pdf = pdfplumber.open(io.BytesIO(pdf_bytes))
    except Exception as exc:
        raise TextExtractionError(f"Unable to open PDF: {exc}") from exc

    try:
        with pdf:
            try:
                pages = list(pdf.pages)
            except Exception as exc:
                raise TextExtractionError(f"Unable to read PDF pages: {exc}") from exc

            for index, page in enumerate(pages):
                text = _page_text_layer(page, index + 1)
                if len(text) >= min_chars:
                    page_texts.append(text)
                    continue

                # Scanned page (no usable text layer): rasterize + OCR
                if rasterizer is None:
                    rasterizer = rasterizer_factory(pdf_bytes)
                image = rasterizer.render(index)
                if image is None:
                    page_texts.append(text)
                    continue
                try:
                    ocr_text = ocr(image)
                except Exception as exc:
                    logger.warning("OCR failed on rasterized page %d: %s", index + 1, exc)
                    ocr_text = ""
                page_texts.append(ocr_text or text)
    finally:
        if rasterizer is not None:
            rasterizer.close()

    logger.info(
        "Extracted text from %d PDF page(s), %d chars total",
        len(page_texts), sum(len(t) for t in page_texts),
    )
    return page_texts

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_text_sync(file: DownloadedFile) -> list[str]:
    if file.is_pdf:
        return extract_pdf_pages(file.content)
    return [run_ocr(file.content)]

async def extract_text_pages(file: DownloadedFile) -> list[str]:
    """Ordered per-page text for a downloaded document (runs off the event loop)."""
    return await asyncio.to_thread(extract_text_sync, file)
