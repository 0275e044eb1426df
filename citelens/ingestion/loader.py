import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import fitz

from citelens.core.errors import GeometryTransformUnavailable, PdfHandleNotFound
from citelens.core.types import PageText, TextRun

logger = logging.getLogger(__name__)

PdfHandle = Union[bytes, str, Path]

# MuPDF is not thread-safe; previews open documents from worker threads
_FITZ_LOCK = threading.Lock()


class PdfDocumentLoader:
    """
    Reads page geometry and bitmaps from an original PDF via PyMuPDF.

    Text is returned as runs (one per PyMuPDF span) with pdf.js-style text
    matrices in PDF user space, so they can be projected through any viewport.
    """

    def __init__(self, binary_handle: Optional[PdfHandle]):
        if binary_handle is None:
            raise GeometryTransformUnavailable("No PDF data attached to the document")
        if isinstance(binary_handle, (str, Path)):
            path = Path(binary_handle)
            if not path.exists():
                raise PdfHandleNotFound(f"PDF file not found at: {path}", {"path": str(path)})
            binary_handle = path
        self.binary_handle = binary_handle

    @contextmanager
    def open(self) -> Iterator[fitz.Document]:
        with _FITZ_LOCK:
            with self._open() as pdf_doc:
                yield pdf_doc

    @contextmanager
    def _open(self) -> Iterator[fitz.Document]:
        try:
            if isinstance(self.binary_handle, bytes):
                pdf_doc = fitz.open(stream=self.binary_handle, filetype="pdf")
            else:
                pdf_doc = fitz.open(str(self.binary_handle))
        except Exception as e:
            raise GeometryTransformUnavailable(
                f"Failed to open PDF: {str(e)}", {"handle": self._describe()}
            ) from e
        try:
            yield pdf_doc
        finally:
            pdf_doc.close()

    def _describe(self) -> str:
        if isinstance(self.binary_handle, bytes):
            return f"<{len(self.binary_handle)} bytes>"
        return str(self.binary_handle)

    def page_count(self) -> int:
        with self.open() as pdf_doc:
            return len(pdf_doc)

    def load_page(self, page_number: int) -> Optional[PageText]:
        """Text runs of a 1-based page; None when the page does not exist."""
        with self.open() as pdf_doc:
            if not 1 <= page_number <= len(pdf_doc):
                logger.info("[Loader] Page %d out of range (document has %d)", page_number, len(pdf_doc))
                return None
            page = pdf_doc.load_page(page_number - 1)
            return self._page_text(page, page_number)

    def rasterize(self, page_number: int, zoom: float = 1.0) -> Optional[bytes]:
        """PNG bitmap of a 1-based page drawn at `zoom`."""
        with self.open() as pdf_doc:
            if not 1 <= page_number <= len(pdf_doc):
                return None
            page = pdf_doc.load_page(page_number - 1)
            pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
            return pixmap.tobytes("png")

    def _page_text(self, page: fitz.Page, page_number: int) -> PageText:
        # Text coordinates are in the unrotated page; /Rotate is left to the viewport
        rotation = page.rotation % 360
        width, height = page.rect.width, page.rect.height
        if rotation in (90, 270):
            width, height = height, width
        runs: List[TextRun] = []
        raw = page.get_text("rawdict")

        for block in raw.get("blocks", []):
            # Only text blocks (type 0)
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                direction = line.get("dir", (1.0, 0.0))
                for span in line.get("spans", []):
                    run = self._span_to_run(span, direction, height)
                    if run is not None:
                        runs.append(run)

        logger.debug("[Loader] Page %d: %d text runs", page_number, len(runs))
        return PageText(
            page_number=page_number,
            width=width,
            height=height,
            rotation=rotation,
            runs=runs,
        )

    @staticmethod
    def _span_to_run(span: dict, direction: Tuple[float, float], page_height: float) -> Optional[TextRun]:
        chars = span.get("chars", [])
        text = "".join(c.get("c", "") for c in chars)
        if not text.strip():
            return None

        size = float(span.get("size", 0.0))
        origin_x, origin_y = span.get("origin", (span["bbox"][0], span["bbox"][3]))
        cos, sin = float(direction[0]), float(direction[1])

        # PyMuPDF measures top-down; text matrices are bottom-up, so the y axis and the sine flip
        transform = (size * cos, -size * sin, size * sin, size * cos, float(origin_x), page_height - float(origin_y))

        # Advance: furthest glyph corner along the baseline direction
        width = 0.0
        for char in chars:
            x0, y0, x1, y1 = char["bbox"]
            for cx, cy in ((x0, y0), (x1, y0), (x0, y1), (x1, y1)):
                width = max(width, (cx - origin_x) * cos + (cy - origin_y) * sin)
        if width <= 0.0:
            x0, y0, x1, y1 = span["bbox"]
            width = x1 - x0

        return TextRun(text=text, transform=transform, width=width)
