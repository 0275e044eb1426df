"""
Citation tokenizer.

Splits model answers into plain text and citation tokens. A citation
directive looks like either of

    {{citation:report.pdf|Page 4|the quoted passage}}
    【citation:report.pdf|Page 4|the quoted passage】

Directives are found with a small scanner rather than a regex: brackets are
paired, the payload may span lines, and a backslash escapes a closing
bracket, so a single pass over the text is enough.
"""

import logging
import re
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from citelens.core.types import (
    CitationSegment,
    CitationToken,
    Diagnostic,
    Segment,
    TextSegment,
    ThinkingBlock,
    TokenizedText,
)
from citelens.rendering.session import RenderSession

logger = logging.getLogger(__name__)

OPENERS: Dict[str, str] = {
    "{{citation:": "}}",
    "【citation:": "】",
}
ESCAPABLE = {"}", "】", "\\"}

THINK_REGEX = re.compile(r"<think>(.*?)</think>", re.DOTALL)
ENTITY_REGEX = re.compile(r"&(quot|amp|lt|gt);")
ENTITIES = {"quot": '"', "amp": "&", "lt": "<", "gt": ">"}


class Directive(NamedTuple):
    start: int
    end: int        # exclusive, after the closing bracket
    payload: str    # unescaped text between opener and closer


# --- Scanner ---

def _next_opener(text: str, pos: int, skip: set) -> Tuple[int, Optional[str]]:
    best, best_opener = -1, None
    for opener in OPENERS:
        if opener in skip:
            continue
        idx = text.find(opener, pos)
        if idx != -1 and (best == -1 or idx < best):
            best, best_opener = idx, opener
    return best, best_opener


def iter_directives(text: str) -> Iterator[Directive]:
    """Yield every bracket-shaped directive in `text`, in order."""
    pos = 0
    unclosed: set = set()
    length = len(text)
    while True:
        start, opener = _next_opener(text, pos, unclosed)
        if opener is None:
            return
        closer = OPENERS[opener]
        i = start + len(opener)
        payload: List[str] = []
        end = -1
        while i < length:
            ch = text[i]
            if ch == "\\" and i + 1 < length and text[i + 1] in ESCAPABLE:
                payload.append(text[i + 1])
                i += 2
                continue
            if text.startswith(closer, i):
                end = i + len(closer)
                break
            payload.append(ch)
            i += 1
        if end == -1:
            # No closer anywhere after this opener, so later openers of the same kind can't close either
            unclosed.add(opener)
            pos = start + 1
            continue
        yield Directive(start, end, "".join(payload))
        pos = end


def parse_directive(payload: str) -> Optional[Tuple[str, str, str]]:
    """Split a payload into (source, location, quote); None if it is not a 3-field directive."""
    fields = payload.split("|", 2)
    if len(fields) < 3:
        return None
    source, location, quote = (f.strip() for f in fields)
    return source, location, quote


# --- Pre-processing ---

def decode_entities(text: str) -> str:
    """Decode &quot; &amp; &lt; &gt; in one pass, so '&amp;lt;' becomes '&lt;' and not '<'."""
    return ENTITY_REGEX.sub(lambda m: ENTITIES[m.group(1)], text)


def extract_thinking(text: str) -> Tuple[str, List[ThinkingBlock]]:
    """Pull <think>...</think> blocks out of the answer body."""
    blocks = [
        ThinkingBlock(content=m.group(1).strip(), index=m.start())
        for m in THINK_REGEX.finditer(text)
    ]
    return THINK_REGEX.sub("", text), blocks


def inline_directives(text: str) -> str:
    """Remove line breaks directly around directives so citations stay on their sentence."""
    pieces: List[str] = []
    pos = 0
    for directive in iter_directives(text):
        pieces.append(text[pos:directive.start].rstrip("\r\n"))
        pieces.append(text[directive.start:directive.end])
        pos = directive.end
        while pos < len(text) and text[pos] in "\r\n":
            pos += 1
    pieces.append(text[pos:])
    return "".join(pieces)


# --- Tokenizing ---

def tokenize(text: str, session: RenderSession) -> TokenizedText:
    """
    Tokenize a fragment into text and citation segments.

    Does not reset the session, so it can be called for nested content
    (table cells, popup bodies) while numbering stays global.
    """
    segments: List[Segment] = []
    diagnostics: List[Diagnostic] = []
    buffer: List[str] = []
    pos = 0

    def flush() -> None:
        if buffer:
            joined = "".join(buffer)
            if joined:
                segments.append(TextSegment(text=joined))
            buffer.clear()

    for directive in iter_directives(text):
        buffer.append(text[pos:directive.start])
        pos = directive.end
        fields = parse_directive(directive.payload)
        if fields is None:
            logger.debug("[Tokenizer] Malformed directive kept as text: %r", text[directive.start:directive.end])
            diagnostics.append(Diagnostic.MALFORMED_DIRECTIVE)
            buffer.append(text[directive.start:directive.end])
            continue
        flush()
        source, location, quote = fields
        token = CitationToken(
            source_name=source,
            location_hint=location,
            quote=quote,
            ordinal=session.next_ordinal(),
        )
        segments.append(CitationSegment(token=token))

    buffer.append(text[pos:])
    flush()
    return TokenizedText(segments=segments, diagnostics=diagnostics)


def tokenize_answer(text: str, session: RenderSession) -> TokenizedText:
    """
    Tokenize a complete model answer. Starts a new render pass.

    Entities are decoded, thinking blocks are split off (they never consume
    ordinals) and the remaining body is tokenized.
    """
    session.reset()
    if not text:
        return TokenizedText()

    body, thinking = extract_thinking(decode_entities(text))
    result = tokenize(inline_directives(body), session)
    result.thinking_blocks = thinking
    return result


def tokenize_cell(text: str, session: RenderSession) -> TokenizedText:
    """
    Tokenize a table cell within the current pass.

    Models tend to repeat the cited value right before the citation
    ("258 {{citation:...|258}}"); that duplicate is dropped.
    """
    result = tokenize(decode_entities(text), session)
    segments = result.segments
    for idx, segment in enumerate(segments):
        if not isinstance(segment, CitationSegment) or idx == 0:
            continue
        previous = segments[idx - 1]
        if not isinstance(previous, TextSegment):
            continue
        quote = segment.token.quote
        first_value = quote.split(",")[0].strip() if "," in quote else quote
        if first_value and previous.text.rstrip().endswith(first_value):
            trimmed = previous.text.rstrip()
            segments[idx - 1] = TextSegment(text=trimmed[: len(trimmed) - len(first_value)])
    result.segments = [s for s in segments if not (isinstance(s, TextSegment) and not s.text)]
    return result


# --- Helpers for the presentation layer ---

def extract_source_files(text: str) -> List[str]:
    """Unique cited source names in order of first appearance."""
    sources: List[str] = []
    for directive in iter_directives(text):
        fields = parse_directive(directive.payload)
        if fields and fields[0] not in sources:
            sources.append(fields[0])
    return sources


def safe_split_table_line(line: str) -> List[str]:
    """Split a markdown table row on '|' without breaking directives that contain '|'."""
    placeholders: List[str] = []
    masked: List[str] = []
    pos = 0
    for directive in iter_directives(line):
        masked.append(line[pos:directive.start])
        masked.append(f"__CITATION_MASK_{len(placeholders)}__")
        placeholders.append(line[directive.start:directive.end])
        pos = directive.end
    masked.append(line[pos:])

    cells = []
    for cell in "".join(masked).split("|"):
        if not cell.strip():
            continue
        cells.append(re.sub(
            r"__CITATION_MASK_(\d+)__",
            lambda m: placeholders[int(m.group(1))],
            cell.strip(),
        ))
    return cells
