from enum import Enum
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class DocumentKind(str, Enum):
    PDF = "pdf"
    TABULAR = "tabular"
    PLAIN_TEXT = "plain_text"
    OTHER = "other"


class Diagnostic(str, Enum):
    """Non-fatal outcomes reported alongside a result instead of raised."""
    MALFORMED_DIRECTIVE = "malformed_directive"
    SOURCE_NOT_FOUND = "source_not_found"
    QUOTE_NOT_FOUND = "quote_not_found"
    QUOTE_TOO_SHORT = "quote_too_short"
    PAGE_OUT_OF_RANGE = "page_out_of_range"
    ROW_OUT_OF_RANGE = "row_out_of_range"


class ResolutionStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    URL = "url"


class Document(BaseModel):
    """
    An uploaded source document as handed over by the file-management layer.

    `raw_text` carries the extracted text for plain and tabular documents.
    `binary_handle` (raw bytes or a filesystem path) is only needed for PDFs,
    whose geometry is recomputed from the original file.
    """
    id: str = Field(..., description="Unique identifier of the uploaded file")
    name: str = Field(..., description="File name as shown to the model")
    kind: DocumentKind = Field(DocumentKind.OTHER, description="Drives how quotes are located")
    raw_text: str = Field("", description="Extracted text (sheets separated by sheet markers)")
    binary_handle: Optional[Union[Path, bytes]] = Field(None, description="Original PDF bytes or path")

    model_config = ConfigDict(frozen=True)


# --- Tokenizer output ---

class CitationToken(BaseModel):
    source_name: str
    location_hint: str
    quote: str
    ordinal: int = Field(..., ge=0, description="Position among the citations of one render pass")

    model_config = ConfigDict(frozen=True)


class TextSegment(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class CitationSegment(BaseModel):
    kind: Literal["citation"] = "citation"
    token: CitationToken


Segment = Annotated[Union[TextSegment, CitationSegment], Field(discriminator="kind")]


class ThinkingBlock(BaseModel):
    content: str
    index: int = Field(..., description="Offset of the block in the decoded answer text")


class TokenizedText(BaseModel):
    thinking_blocks: List[ThinkingBlock] = Field(default_factory=list)
    segments: List[Segment] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)

    @property
    def citations(self) -> List[CitationToken]:
        return [s.token for s in self.segments if isinstance(s, CitationSegment)]


class ResolvedCitation(BaseModel):
    token: CitationToken
    matched_document: Optional[Document] = None
    is_url_citation: bool = False

    @property
    def status(self) -> ResolutionStatus:
        if self.is_url_citation:
            return ResolutionStatus.URL
        if self.matched_document is None:
            return ResolutionStatus.NOT_FOUND
        return ResolutionStatus.FOUND


# --- Quote locator output ---

class PdfSpan(BaseModel):
    kind: Literal["pdf"] = "pdf"
    page_number: int = Field(..., ge=1)
    quote: str


class TableRow(BaseModel):
    kind: Literal["table"] = "table"
    sheet_name: Optional[str] = None
    row_number: Optional[int] = Field(None, description="1-based visual row; None means not specified")
    quote: str = ""


class PlainExcerpt(BaseModel):
    kind: Literal["excerpt"] = "excerpt"
    quote: str
    label: str


LocationResult = Annotated[Union[PdfSpan, TableRow, PlainExcerpt], Field(discriminator="kind")]


# --- Tabular data ---

class TableRowData(BaseModel):
    row_number: int = Field(..., description="1-based visual row number (header is row 1)")
    cells: List[str]


class SheetTable(BaseModel):
    sheet_name: str
    headers: List[str]
    rows: List[TableRowData]


class TableSelection(BaseModel):
    sheet_name: str
    headers: List[str]
    rows: List[TableRowData]
    highlighted_row_index: Optional[int] = None
    row_number: Optional[int] = None
    diagnostic: Optional[Diagnostic] = None


# --- PDF geometry ---

Matrix = Tuple[float, float, float, float, float, float]


class TextRun(BaseModel):
    """A laid-out text item with its pdf.js-style text matrix (PDF user space)."""
    text: str
    transform: Matrix
    width: float


class PageText(BaseModel):
    page_number: int
    width: float
    height: float
    rotation: int = 0
    runs: List[TextRun] = Field(default_factory=list)


class HighlightRegion(BaseModel):
    left: float
    top: float
    width: float
    height: float
    rotation_radians: float = 0.0

    model_config = ConfigDict(frozen=True)


class ProjectionResult(BaseModel):
    regions: List[HighlightRegion] = Field(default_factory=list)
    diagnostic: Optional[Diagnostic] = None

    @property
    def found(self) -> bool:
        return bool(self.regions)


class PagePreview(BaseModel):
    page_number: int
    width: float = Field(..., description="Preview width in CSS px")
    height: float = Field(..., description="Preview height in CSS px")
    image_png: Optional[bytes] = None
    highlights: List[HighlightRegion] = Field(default_factory=list)
    diagnostic: Optional[Diagnostic] = None


# --- Engine output ---

class CitationView(BaseModel):
    ordinal: int
    token: CitationToken
    status: ResolutionStatus
    document: Optional[Document] = None
    location: Optional[LocationResult] = None
    interactive: bool = True
    label: str = ""

    @property
    def number(self) -> int:
        """1-based marker shown to the reader."""
        return self.ordinal + 1


class RenderedAnswer(BaseModel):
    thinking_blocks: List[ThinkingBlock] = Field(default_factory=list)
    segments: List[Segment] = Field(default_factory=list)
    citations: List[CitationView] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class CitationLookup(BaseModel):
    ordinal: int
    location: Optional[LocationResult] = None
    highlights: List[HighlightRegion] = Field(default_factory=list)
    table: Optional[TableSelection] = None
    excerpt: Optional[PlainExcerpt] = None
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class ViewRequest(BaseModel):
    file_name: str
    page_number: int = 1
    quote: str = ""
    location: str = ""
