"""PDF text layer, rasterize + OCR fallback, and image OCR dispatch."""

import pytest

from docverify.core.exceptions import TextExtractionError
from docverify.services import text_extraction
from docverify.services.fetcher import DownloadedFile

LONG_TEXT = "Certificate of liability insurance, policy number GL-123456789"


class FakePage:
    def __init__(self, text):
        self._text = text

    def extract_text(self):
        if isinstance(self._text, Exception):
            raise self._text
        return self._text


class FakePdf:
    def __init__(self, *texts):
        self.pages = [FakePage(t) for t in texts]

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None


class FakeRasterizer:
    instances = []

    def __init__(self, pdf_bytes, images=None):
        self.images = images or {}
        self.closed = False
        FakeRasterizer.instances.append(self)

    def render(self, index):
        return self.images.get(index)

    def close(self):
        self.closed = True


def test_scanned_pages_are_ocred_and_none_dropped(monkeypatch):
    monkeypatch.setattr(
        text_extraction.pdfplumber, "open",
        lambda stream: FakePdf(LONG_TEXT, "", None, RuntimeError("broken page")),
    )
    FakeRasterizer.instances = []
    ocr_calls = []

    def fake_ocr(image):
        ocr_calls.append(image)
        if image == b"page-4":
            raise TextExtractionError("tesseract crashed")
        return "Scanned expiration date 04/01/2025"

    pages = text_extraction.extract_pdf_pages(
        b"%PDF",
        ocr=fake_ocr,
        rasterizer_factory=lambda data: FakeRasterizer(data, {1: b"page-2", 3: b"page-4"}),
        min_chars=20,
    )

    assert pages == [LONG_TEXT, "Scanned expiration date 04/01/2025", "", ""]
    assert ocr_calls == [b"page-2", b"page-4"]
    assert len(FakeRasterizer.instances) == 1
    assert FakeRasterizer.instances[0].closed


def test_text_layer_pages_skip_rasterization(monkeypatch):
    monkeypatch.setattr(text_extraction.pdfplumber, "open", lambda stream: FakePdf(LONG_TEXT, LONG_TEXT))

    def no_rasterizer(data):
        raise AssertionError("rasterizer should not be created")

    pages = text_extraction.extract_pdf_pages(
        b"%PDF", ocr=lambda image: "", rasterizer_factory=no_rasterizer, min_chars=20,
    )
    assert pages == [LONG_TEXT, LONG_TEXT]


def test_unreadable_pdf_raises(monkeypatch):
    def boom(stream):
        raise ValueError("not a PDF")

    monkeypatch.setattr(text_extraction.pdfplumber, "open", boom)
    with pytest.raises(TextExtractionError, match="Unable to open PDF"):
        text_extraction.extract_pdf_pages(b"garbage")


def test_unexpected_ocr_error_keeps_page_slot(monkeypatch):
    monkeypatch.setattr(text_extraction.pdfplumber, "open", lambda stream: FakePdf("", LONG_TEXT))

    def timed_out(image):
        raise RuntimeError("Tesseract process timeout")

    pages = text_extraction.extract_pdf_pages(
        b"%PDF",
        ocr=timed_out,
        rasterizer_factory=lambda data: FakeRasterizer(data, {0: b"page-1"}),
        min_chars=20,
    )
    assert pages == ["", LONG_TEXT]


class BrokenPagesPdf(FakePdf):
    def __init__(self):
        pass

    @property
    def pages(self):
        raise ValueError("Unexpected EOF in xref table")


def test_unparseable_page_tree_raises(monkeypatch):
    monkeypatch.setattr(text_extraction.pdfplumber, "open", lambda stream: BrokenPagesPdf())
    with pytest.raises(TextExtractionError, match="Unable to read PDF pages"):
        text_extraction.extract_pdf_pages(b"%PDF", min_chars=20)


def test_run_ocr_rejects_undecodable_image():
    with pytest.raises(TextExtractionError, match="OCR failed"):
        text_extraction.run_ocr(b"definitely not an image")


@pytest.mark.asyncio
async def test_images_go_straight_to_ocr(monkeypatch):
    monkeypatch.setattr(text_extraction, "run_ocr", lambda content: f"ocr:{len(content)}")
    file = DownloadedFile(content=b"12345", content_type="image/jpeg", source_url="https://x/c.jpg")

    assert await text_extraction.extract_text_pages(file) == ["ocr:5"]


@pytest.mark.asyncio
async def test_pdfs_go_through_page_extraction(monkeypatch):
    monkeypatch.setattr(text_extraction, "extract_pdf_pages", lambda content: ["p1", "p2"])
    file = DownloadedFile(content=b"%PDF", content_type="application/pdf", source_url="https://x/c")

    assert await text_extraction.extract_text_pages(file) == ["p1", "p2"]
