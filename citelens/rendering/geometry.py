"""
Projection of a quote onto PDF text runs.

Runs carry pdf.js-style text matrices in PDF user space (origin bottom-left,
y up). A viewport maps user space to render space (origin top-left, y down),
and the composed matrix gives each run's baseline origin, font height and
rotation on the rendered page.
"""

import bisect
import logging
import math
import re
from typing import List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel

from citelens.core.config import Config
from citelens.core.types import Diagnostic, HighlightRegion, Matrix, PageText, ProjectionResult, TextRun

logger = logging.getLogger(__name__)

WHITESPACE_REGEX = re.compile(r"\s+")

IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


def compose(m1: Sequence[float], m2: Sequence[float]) -> Matrix:
    """Matrix product m1 x m2 in [a, b, c, d, e, f] form (apply m2 first, then m1)."""
    return (
        m1[0] * m2[0] + m1[2] * m2[1],
        m1[1] * m2[0] + m1[3] * m2[1],
        m1[0] * m2[2] + m1[2] * m2[3],
        m1[1] * m2[2] + m1[3] * m2[3],
        m1[0] * m2[4] + m1[2] * m2[5] + m1[4],
        m1[1] * m2[4] + m1[3] * m2[5] + m1[5],
    )


def safe_scale(value: Optional[float]) -> float:
    """A missing, zero or non-finite scale behaves like 1."""
    if not value or not math.isfinite(value):
        return 1.0
    return value


class Viewport(BaseModel):
    """Page viewport as pdf.js computes it: user space -> render space."""
    width: float
    height: float
    scale: float = 1.0
    rotation: int = 0
    transform: Matrix = IDENTITY

    @classmethod
    def for_page(cls, page_width: float, page_height: float, scale: float = 1.0, rotation: int = 0) -> "Viewport":
        rotation = rotation % 360
        if rotation == 90:
            a, b, c, d = 0, 1, 1, 0
        elif rotation == 180:
            a, b, c, d = -1, 0, 0, 1
        elif rotation == 270:
            a, b, c, d = 0, -1, -1, 0
        else:
            rotation = 0
            a, b, c, d = 1, 0, 0, -1

        center_x = page_width / 2
        center_y = page_height / 2
        if a == 0:
            offset_x, offset_y = center_y * scale, center_x * scale
            width, height = page_height * scale, page_width * scale
        else:
            offset_x, offset_y = center_x * scale, center_y * scale
            width, height = page_width * scale, page_height * scale

        transform = (
            a * scale,
            b * scale,
            c * scale,
            d * scale,
            offset_x - a * scale * center_x - c * scale * center_y,
            offset_y - b * scale * center_x - d * scale * center_y,
        )
        return cls(width=width, height=height, scale=scale, rotation=rotation, transform=transform)


def preview_viewport(page: PageText) -> Tuple[Viewport, float]:
    """
    Viewport used for popup previews: the page is fitted to PDF_PREVIEW_WIDTH
    and drawn PDF_SUPERSAMPLE times larger for sharpness. Returns the viewport
    and the factor that brings render space back to preview pixels.
    The width is measured on the page as displayed, i.e. after /Rotate.
    """
    supersample = safe_scale(Config.PDF_SUPERSAMPLE)
    upright = Viewport.for_page(page.width, page.height, 1.0, page.rotation)
    base_scale = Config.PDF_PREVIEW_WIDTH / safe_scale(upright.width)
    return Viewport.for_page(page.width, page.height, base_scale * supersample, page.rotation), supersample


class RunSpan(NamedTuple):
    start: int
    end: int    # exclusive
    run: TextRun


def normalize_text(text: str) -> str:
    return WHITESPACE_REGEX.sub("", text).lower()


class RunIndex:
    """Normalized page text with an ordered offset map back to the runs it came from."""

    def __init__(self, runs: Sequence[TextRun]):
        parts: List[str] = []
        self.spans: List[RunSpan] = []
        offset = 0
        for run in runs:
            normalized = normalize_text(run.text)
            if not normalized:
                continue
            self.spans.append(RunSpan(offset, offset + len(normalized), run))
            parts.append(normalized)
            offset += len(normalized)
        self.text = "".join(parts)
        self._starts = [span.start for span in self.spans]

    def overlapping(self, start: int, end: int) -> List[TextRun]:
        """Runs whose [start, end) range intersects [start, end)."""
        first = max(bisect.bisect_right(self._starts, start) - 1, 0)
        result = []
        for span in self.spans[first:]:
            if span.start >= end:
                break
            if span.end > start:
                result.append(span.run)
        return result


def run_region(run: TextRun, viewport: Viewport, scale_factor: Optional[float] = None) -> HighlightRegion:
    """Box covering one run in render space, divided down by `scale_factor`."""
    factor = safe_scale(scale_factor)
    tx = compose(viewport.transform, run.transform)
    font_height = math.hypot(tx[2], tx[3])
    return HighlightRegion(
        left=tx[4] / factor,
        top=(tx[5] - font_height) / factor,   # baseline -> top edge
        width=run.width * safe_scale(viewport.scale) / factor,
        height=font_height / factor,
        rotation_radians=math.atan2(tx[1], tx[0]),
    )


def project_quote(
    runs: Sequence[TextRun],
    viewport: Viewport,
    quote: str,
    scale_factor: Optional[float] = None,
) -> ProjectionResult:
    """
    Highlight boxes for the first occurrence of `quote` on a page.

    Matching ignores whitespace and case. One region is emitted per run the
    match touches; regions rotate about their bottom-left corner.
    """
    needle = normalize_text(quote or "")
    if len(needle) < Config.MIN_QUOTE_LENGTH:
        return ProjectionResult(diagnostic=Diagnostic.QUOTE_TOO_SHORT)

    index = RunIndex(runs)
    match_start = index.text.find(needle)
    if match_start == -1:
        logger.info("[Geometry] Quote not found on page: %r", quote[:80])
        return ProjectionResult(diagnostic=Diagnostic.QUOTE_NOT_FOUND)

    match_end = match_start + len(needle)
    regions = [run_region(run, viewport, scale_factor) for run in index.overlapping(match_start, match_end)]
    return ProjectionResult(regions=regions)


def project_page(page: PageText, quote: str) -> ProjectionResult:
    """Project `quote` onto `page` in popup preview pixels."""
    viewport, factor = preview_viewport(page)
    return project_quote(page.runs, viewport, quote, factor)
