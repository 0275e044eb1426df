import logging
import re
from typing import Optional

from citelens.core.config import Config
from citelens.core.types import Document, DocumentKind, LocationResult, PdfSpan, PlainExcerpt, TableRow

logger = logging.getLogger(__name__)

PAGE_REGEX = re.compile(r"Page\s*(\d+)", re.IGNORECASE)
ROW_REGEX = re.compile(r"Row\s*(\d+)", re.IGNORECASE)
SHEET_REGEX = re.compile(r"Sheet:\s*['\"]?([^,'\";|]+)", re.IGNORECASE)


def parse_page_number(location_hint: str) -> int:
    """'Page 4' -> 4. Missing or zero pages fall back to the first page."""
    match = PAGE_REGEX.search(location_hint or "")
    if not match:
        return Config.DEFAULT_PAGE
    return max(int(match.group(1)), 1)


def parse_row_number(location_hint: str) -> Optional[int]:
    """'Row 12' -> 12; None when no row is given."""
    match = ROW_REGEX.search(location_hint or "")
    return int(match.group(1)) if match else None


def parse_sheet_name(location_hint: str) -> Optional[str]:
    match = SHEET_REGEX.search(location_hint or "")
    if not match:
        return None
    name = match.group(1).strip()
    return name or None


def excerpt_label(location_hint: str) -> str:
    return (location_hint or "").strip() or Config.DEFAULT_EXCERPT_LABEL


class QuoteLocator:
    """
    Turns a resolved document plus the citation's location hint into the
    place the quote should be looked for.

    PDFs yield a page to project the quote onto, spreadsheets a sheet/row
    pair, and anything else the quote itself as a best-effort excerpt.
    """

    def locate(self, document: Document, location_hint: str, quote: str) -> LocationResult:
        if document.kind == DocumentKind.PDF:
            page = parse_page_number(location_hint)
            logger.debug("[Locator] %s -> page %d", document.name, page)
            return PdfSpan(page_number=page, quote=quote)

        if document.kind == DocumentKind.TABULAR:
            sheet = parse_sheet_name(location_hint)
            row = parse_row_number(location_hint)
            logger.debug("[Locator] %s -> sheet %r, row %s", document.name, sheet, row)
            return TableRow(sheet_name=sheet, row_number=row, quote=quote)

        return PlainExcerpt(quote=quote, label=excerpt_label(location_hint))
