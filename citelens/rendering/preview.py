import asyncio
import logging
from typing import Dict, Optional

from citelens.core.types import Diagnostic, Document, PagePreview, ProjectionResult
from citelens.ingestion.loader import PdfDocumentLoader
from citelens.rendering.geometry import preview_viewport, project_quote

logger = logging.getLogger(__name__)


class RenderTask:
    """
    Handle for one page render request.

    Cancellation is cooperative: `cancel()` only sets a flag, and the render
    stops at its next `check()`. `settled` is set once nothing of this
    request is running any more, worker threads included.
    """

    def __init__(self, page_number: int):
        self.page_number = page_number
        self.cancelled = False
        self.task: Optional[asyncio.Task] = None
        self.settled = asyncio.Event()

    def cancel(self) -> None:
        self.cancelled = True

    def check(self) -> None:
        if self.cancelled:
            raise asyncio.CancelledError()


class PagePreviewRenderer:
    """
    Renders popup previews of PDF pages: a bitmap plus the quote highlights.

    Only one render per page runs at a time. A new request for a page is
    registered immediately, flags the request before it as cancelled and
    waits for that one to settle before starting, so two renders never
    write the same surface. Requests superseded while waiting never start.
    """

    def __init__(self, document: Document, loader: Optional[PdfDocumentLoader] = None):
        self.document = document
        self._loader = loader
        self._tasks: Dict[int, RenderTask] = {}

    @property
    def loader(self) -> PdfDocumentLoader:
        # Raises GeometryTransformUnavailable until the document has bytes attached
        if self._loader is None:
            self._loader = PdfDocumentLoader(self.document.binary_handle)
        return self._loader

    def in_flight(self, page_number: int) -> bool:
        handle = self._tasks.get(page_number)
        return handle is not None and not handle.settled.is_set()

    async def render(self, page_number: int, quote: str = "") -> Optional[PagePreview]:
        """Render `page_number`; returns None if this render was superseded or cancelled."""
        handle = RenderTask(page_number)
        previous = self._tasks.get(page_number)
        self._tasks[page_number] = handle

        try:
            if previous is not None:
                previous.cancel()
                await previous.settled.wait()
            if handle.cancelled:
                logger.debug("[Preview] Render of page %d on %s superseded before start", page_number, self.document.name)
                return None

            handle.task = asyncio.ensure_future(self._run(handle, quote))
            try:
                # A running worker thread is never abandoned; it stops at a checkpoint
                return await asyncio.shield(handle.task)
            except asyncio.CancelledError:
                if handle.cancelled:
                    logger.debug("[Preview] Render of page %d on %s cancelled", page_number, self.document.name)
                    return None
                handle.cancel()
                raise
        finally:
            if handle.task is None and previous is not None and not previous.settled.is_set():
                # Abandoned while waiting; stay registered until the previous worker is gone
                asyncio.ensure_future(self._release_after(previous, handle))
            elif handle.task is None or handle.task.done():
                self._release(handle)
            else:
                handle.task.add_done_callback(lambda _: self._release(handle))

    def cancel_all(self) -> None:
        """Flag every pending render, e.g. when the popup closes; each stops at its next checkpoint."""
        for handle in list(self._tasks.values()):
            handle.cancel()

    async def _release_after(self, previous: RenderTask, handle: RenderTask) -> None:
        await previous.settled.wait()
        self._release(handle)

    def _release(self, handle: RenderTask) -> None:
        handle.settled.set()
        if self._tasks.get(handle.page_number) is handle:
            del self._tasks[handle.page_number]

    async def _run(self, handle: RenderTask, quote: str) -> PagePreview:
        loader = self.loader

        # --- Step 1: Decode page text ---
        page = await asyncio.to_thread(loader.load_page, handle.page_number)
        handle.check()
        if page is None:
            return PagePreview(
                page_number=handle.page_number,
                width=0.0,
                height=0.0,
                diagnostic=Diagnostic.PAGE_OUT_OF_RANGE,
            )

        viewport, factor = preview_viewport(page)

        # --- Step 2: Raster ---
        image = await asyncio.to_thread(loader.rasterize, handle.page_number, viewport.scale)
        handle.check()

        # --- Step 3: Highlights ---
        projection = project_quote(page.runs, viewport, quote, factor) if quote else ProjectionResult()

        return PagePreview(
            page_number=handle.page_number,
            width=viewport.width / factor,
            height=viewport.height / factor,
            image_png=image,
            highlights=projection.regions,
            diagnostic=projection.diagnostic,
        )
