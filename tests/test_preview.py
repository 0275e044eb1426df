import asyncio
import sys
import threading
import time
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from citelens.core.errors import GeometryTransformUnavailable
from citelens.core.types import Diagnostic
from citelens.ingestion.loader import PdfDocumentLoader
from citelens.rendering.preview import PagePreviewRenderer
from tests.sample_documents import PAGE_HEIGHT, PAGE_WIDTH, invoice, rotated_pdf, survey_pdf

QUOTE = "net floor area"


class SlowLoader(PdfDocumentLoader):
    """Loader whose page decode takes a while and records how many run at once."""

    def __init__(self, binary_handle, delay: float = 0.2):
        super().__init__(binary_handle)
        self.delay = delay
        self.calls = 0
        self.running = 0
        self.peak = 0
        self._lock = threading.Lock()

    def load_page(self, page_number):
        with self._lock:
            self.calls += 1
            self.running += 1
            self.peak = max(self.peak, self.running)
        try:
            time.sleep(self.delay)
            return super().load_page(page_number)
        finally:
            with self._lock:
                self.running -= 1


@pytest.fixture
def renderer() -> PagePreviewRenderer:
    return PagePreviewRenderer(survey_pdf())


@pytest.mark.asyncio
async def test_render_page_with_highlights(renderer):
    preview = await renderer.render(3, QUOTE)

    assert preview.page_number == 3
    assert preview.image_png.startswith(b"\x89PNG")
    assert preview.width == pytest.approx(400)
    assert preview.height == pytest.approx(400 * PAGE_HEIGHT / PAGE_WIDTH)
    assert len(preview.highlights) >= 1
    assert all(r.width > 0 and r.height > 0 for r in preview.highlights)
    assert preview.diagnostic is None
    assert not renderer.in_flight(3)


@pytest.mark.asyncio
async def test_render_without_quote_has_no_highlights(renderer):
    preview = await renderer.render(1)
    assert preview.highlights == []
    assert preview.diagnostic is None


@pytest.mark.asyncio
async def test_render_missing_quote(renderer):
    preview = await renderer.render(3, "xyz-not-present")
    assert preview.highlights == []
    assert preview.diagnostic == Diagnostic.QUOTE_NOT_FOUND


@pytest.mark.asyncio
async def test_render_page_out_of_range(renderer):
    preview = await renderer.render(99, QUOTE)
    assert preview.image_png is None
    assert preview.diagnostic == Diagnostic.PAGE_OUT_OF_RANGE


@pytest.mark.asyncio
async def test_new_render_cancels_the_one_in_flight(renderer):
    first = asyncio.ensure_future(renderer.render(3, QUOTE))
    await asyncio.sleep(0)
    assert renderer.in_flight(3)

    second = await renderer.render(3, QUOTE)

    assert await first is None
    assert second is not None
    assert len(second.highlights) >= 1


@pytest.mark.asyncio
async def test_renders_of_different_pages_run_side_by_side(renderer):
    first, third = await asyncio.gather(renderer.render(1), renderer.render(3, QUOTE))
    assert first.page_number == 1
    assert third.page_number == 3


@pytest.mark.asyncio
async def test_cancel_all(renderer):
    pending = asyncio.ensure_future(renderer.render(2))
    await asyncio.sleep(0)
    renderer.cancel_all()
    assert await pending is None


@pytest.mark.asyncio
async def test_render_without_pdf_bytes():
    renderer = PagePreviewRenderer(invoice())
    with pytest.raises(GeometryTransformUnavailable):
        await renderer.render(1, QUOTE)
    assert not renderer.in_flight(1)


@pytest.mark.asyncio
async def test_back_to_back_requests_only_run_the_latest():
    document = survey_pdf()
    loader = SlowLoader(document.binary_handle)
    renderer = PagePreviewRenderer(document, loader=loader)

    first = asyncio.ensure_future(renderer.render(3, QUOTE))
    await asyncio.sleep(0)
    second = asyncio.ensure_future(renderer.render(3, QUOTE))
    await asyncio.sleep(0)
    third = asyncio.ensure_future(renderer.render(3, QUOTE))

    results = await asyncio.gather(first, second, third)

    assert results[0] is None
    assert results[1] is None
    assert results[2] is not None and len(results[2].highlights) >= 1
    # The middle request was superseded while waiting and never decoded the page
    assert loader.calls == 2
    assert loader.peak == 1
    assert not renderer.in_flight(3)


@pytest.mark.asyncio
async def test_cancelled_render_settles_only_after_its_worker():
    document = survey_pdf()
    loader = SlowLoader(document.binary_handle)
    renderer = PagePreviewRenderer(document, loader=loader)

    pending = asyncio.ensure_future(renderer.render(3, QUOTE))
    await asyncio.sleep(0.05)
    renderer.cancel_all()
    # Flagged, but the decode thread is still running
    assert renderer.in_flight(3)

    assert await pending is None
    assert loader.running == 0
    assert not renderer.in_flight(3)


@pytest.mark.asyncio
async def test_rotated_page_preview_fits_displayed_width():
    preview = await PagePreviewRenderer(rotated_pdf(90)).render(1, "rotated page")
    assert preview.width == pytest.approx(400)
    assert preview.height == pytest.approx(400 * PAGE_WIDTH / PAGE_HEIGHT)
    assert len(preview.highlights) == 1
