import logging
from typing import List, Optional, Sequence

from citelens.core.types import (
    CitationLookup,
    CitationView,
    Diagnostic,
    Document,
    DocumentKind,
    PdfSpan,
    PlainExcerpt,
    RenderedAnswer,
    ResolutionStatus,
    TableRow,
    TokenizedText,
    ViewRequest,
)
from citelens.ingestion.loader import PdfDocumentLoader
from citelens.ingestion.table_parser import resolve_row
from citelens.ingestion.tokenizer import tokenize, tokenize_answer
from citelens.rendering.geometry import project_page
from citelens.rendering.session import RenderSession
from citelens.retrieval.locator import QuoteLocator, parse_page_number
from citelens.retrieval.matcher import SourceMatcher

logger = logging.getLogger(__name__)


class CitationEngine:
    """
    Citation pipeline for rendered answers:
    Answer text -> Tokenize -> Resolve source -> Locate quote -> (on open) Geometry / Row / Excerpt
    """

    def __init__(self, matcher: Optional[SourceMatcher] = None, locator: Optional[QuoteLocator] = None):
        self.matcher = matcher or SourceMatcher()
        self.locator = locator or QuoteLocator()

    # --- Render pass ---

    def render(
        self,
        text: str,
        documents: Sequence[Document],
        session: Optional[RenderSession] = None,
        depth: int = 0,
    ) -> RenderedAnswer:
        """
        Render a full answer. Resets the session's numbering, so call it once
        per answer and use `render_fragment` for anything nested inside it.
        """
        session = session or RenderSession()
        tokenized = tokenize_answer(text, session)
        answer = self._build(tokenized, documents, session, depth)
        answer.sources = list(dict.fromkeys(token.source_name for token in tokenized.citations))
        logger.debug(
            "[Engine] Rendered %d citations (%d unresolved)",
            len(answer.citations),
            sum(1 for c in answer.citations if c.status == ResolutionStatus.NOT_FOUND),
        )
        return answer

    def render_fragment(
        self,
        text: str,
        documents: Sequence[Document],
        session: RenderSession,
        depth: int = 0,
    ) -> RenderedAnswer:
        """Render nested content (table cell, popup body) continuing the session's numbering."""
        return self._build(tokenize(text, session), documents, session, depth)

    def _build(
        self,
        tokenized: TokenizedText,
        documents: Sequence[Document],
        session: RenderSession,
        depth: int,
    ) -> RenderedAnswer:
        interactive = session.is_interactive(depth)
        citations: List[CitationView] = []
        diagnostics = list(tokenized.diagnostics)

        for token in tokenized.citations:
            resolved = self.matcher.resolve_citation(token, documents)
            location = None
            if resolved.matched_document is not None:
                location = self.locator.locate(resolved.matched_document, token.location_hint, token.quote)
            elif not resolved.is_url_citation:
                diagnostics.append(Diagnostic.SOURCE_NOT_FOUND)

            citations.append(CitationView(
                ordinal=token.ordinal,
                token=token,
                status=resolved.status,
                document=resolved.matched_document,
                location=location,
                interactive=interactive,
                label=f"{token.source_name} - {token.location_hint}",
            ))

        return RenderedAnswer(
            thinking_blocks=tokenized.thinking_blocks,
            segments=tokenized.segments,
            citations=citations,
            diagnostics=diagnostics,
        )

    # --- Popup lookup ---

    def lookup(self, view: CitationView) -> CitationLookup:
        """
        Work out what the popup for `view` shows: highlight boxes on a PDF
        page, a spreadsheet row, or the quoted excerpt.

        Raises GeometryTransformUnavailable when a PDF cannot be opened.
        """
        result = CitationLookup(ordinal=view.ordinal, location=view.location)
        if view.status != ResolutionStatus.FOUND or view.document is None:
            if view.status == ResolutionStatus.NOT_FOUND:
                result.diagnostics.append(Diagnostic.SOURCE_NOT_FOUND)
            return result

        location = view.location
        if isinstance(location, PdfSpan):
            page = PdfDocumentLoader(view.document.binary_handle).load_page(location.page_number)
            if page is None:
                result.diagnostics.append(Diagnostic.PAGE_OUT_OF_RANGE)
                return result
            projection = project_page(page, location.quote)
            result.highlights = projection.regions
            if projection.diagnostic:
                result.diagnostics.append(projection.diagnostic)

        elif isinstance(location, TableRow):
            selection = resolve_row(
                view.document.raw_text,
                sheet_name=location.sheet_name,
                row_number=location.row_number,
                quote=location.quote,
            )
            result.table = selection
            if selection.diagnostic:
                result.diagnostics.append(selection.diagnostic)

        elif isinstance(location, PlainExcerpt):
            result.excerpt = location

        return result

    def open_full(self, view: CitationView) -> Optional[ViewRequest]:
        """Request for opening the cited document in the full viewer; None if there is nothing to open."""
        if view.status != ResolutionStatus.FOUND or view.document is None:
            return None
        token = view.token
        page = 1
        if view.document.kind == DocumentKind.PDF:
            page = parse_page_number(token.location_hint)
        return ViewRequest(
            file_name=view.document.name,
            page_number=page,
            quote=token.quote,
            location=token.location_hint,
        )

