"""
Spreadsheet text parsing and row resolution.

Tabular documents arrive as text: one block per sheet, each introduced by a
marker line `--- [Sheet: <name>] ---`, followed by delimited rows whose first
line is the header. CSV files have no markers at all.
"""

import logging
import re
from typing import List, Optional, Tuple

from citelens.core.config import Config
from citelens.core.types import Diagnostic, SheetTable, TableRowData, TableSelection

logger = logging.getLogger(__name__)

SHEET_MARKER_REGEX = re.compile(r"--- \[Sheet: (.*?)\] ---")
CELL_ENTITY_REGEX = re.compile(r"&(quot|#39|lt|gt|amp);")
CELL_ENTITIES = {"quot": '"', "#39": "'", "lt": "<", "gt": ">", "amp": "&"}

# Header is visual row 1, so parsed data row i is visual row i + 2
FIRST_DATA_ROW = 2


def decode_html_entities(text: str) -> str:
    return CELL_ENTITY_REGEX.sub(lambda m: CELL_ENTITIES[m.group(1)], text)


def split_sheets(raw_text: str) -> List[Tuple[str, str]]:
    """Return (sheet_name, content) pairs; a single unnamed sheet when there are no markers."""
    parts = SHEET_MARKER_REGEX.split(raw_text)
    if len(parts) < 3:
        return [("", raw_text)]
    # parts = [preamble, name1, body1, name2, body2, ...]
    return [(parts[i].strip(), parts[i + 1]) for i in range(1, len(parts) - 1, 2)]


def select_sheet(raw_text: str, sheet_name: Optional[str] = None) -> Tuple[str, str]:
    """
    Pick the sheet whose marker contains `sheet_name` (case-insensitive).

    Falls back to the first sheet, or to the whole text when it has no markers.
    """
    sheets = split_sheets(raw_text)
    if sheet_name:
        wanted = sheet_name.strip().lower()
        for name, content in sheets:
            if wanted in name.lower():
                return name, content
        logger.debug("[Table] Sheet %r not found, using %r", sheet_name, sheets[0][0])
    return sheets[0]


def detect_delimiter(first_line: str) -> str:
    return "\t" if "\t" in first_line else ","


def parse_row(line: str, delimiter: str) -> List[str]:
    """Split one line into cells; a double quote toggles quoted mode where the delimiter is literal."""
    cells: List[str] = []
    current: List[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            cells.append(decode_html_entities("".join(current).strip()))
            current = []
        else:
            current.append(char)
    cells.append(decode_html_entities("".join(current).strip()))
    return cells


def parse_sheet(content: str, sheet_name: str = "") -> SheetTable:
    lines = [line.rstrip("\r") for line in content.strip().split("\n") if line.strip()]
    if not lines:
        return SheetTable(sheet_name=sheet_name, headers=[], rows=[])

    delimiter = detect_delimiter(lines[0])
    headers = parse_row(lines[0], delimiter)
    rows = [
        TableRowData(row_number=idx + FIRST_DATA_ROW, cells=parse_row(line, delimiter))
        for idx, line in enumerate(lines[1:])
    ]
    return SheetTable(sheet_name=sheet_name, headers=headers, rows=rows)


def find_row_by_quote(table: SheetTable, quote: str) -> Optional[int]:
    """Index of the first data row whose joined cells contain `quote` (case-insensitive)."""
    needle = decode_html_entities(quote).strip().lower()
    if not needle:
        return None
    for idx, row in enumerate(table.rows):
        if needle in " ".join(row.cells).lower():
            return idx
    return None


def resolve_row(
    raw_text: str,
    sheet_name: Optional[str] = None,
    row_number: Optional[int] = None,
    quote: str = "",
) -> TableSelection:
    """
    Parse the requested sheet and pick the row to highlight.

    An explicit `row_number` (1-based, header = 1) wins; without one the
    first row containing `quote` is used.
    """
    name, content = select_sheet(raw_text, sheet_name)
    table = parse_sheet(content, name)

    highlighted: Optional[int] = None
    diagnostic: Optional[Diagnostic] = None

    if row_number is not None:
        idx = row_number - FIRST_DATA_ROW
        if 0 <= idx < len(table.rows):
            highlighted = idx
        else:
            diagnostic = Diagnostic.ROW_OUT_OF_RANGE
    elif quote:
        highlighted = find_row_by_quote(table, quote)
        if highlighted is None:
            diagnostic = Diagnostic.QUOTE_NOT_FOUND
        else:
            row_number = highlighted + FIRST_DATA_ROW

    if diagnostic:
        logger.info("[Table] %s in sheet %r (row=%s, quote=%r)", diagnostic.value, name, row_number, quote)

    return TableSelection(
        sheet_name=table.sheet_name,
        headers=table.headers,
        rows=table.rows,
        highlighted_row_index=highlighted,
        row_number=row_number,
        diagnostic=diagnostic,
    )


def context_window(selection: TableSelection, radius: Optional[int] = None) -> List[TableRowData]:
    """Rows around the highlighted one (or the first rows when nothing is highlighted)."""
    if radius is None:
        radius = Config.TABLE_CONTEXT_ROWS
    center = selection.highlighted_row_index or 0
    start = max(0, center - radius)
    end = min(len(selection.rows), center + radius + 1)
    return selection.rows[start:end]
