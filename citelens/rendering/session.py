import logging
from typing import Optional

from citelens.core.config import Config

logger = logging.getLogger(__name__)


class RenderSession:
    """
    State shared by one top-level render of an answer.

    Holds the citation ordinal counter (numbering is global across the whole
    answer, tables included) and the popup arbitration token (at most one
    primary popup open at a time). Owned by the top-level render call and
    passed explicitly to nested calls.
    """

    def __init__(self, max_depth: Optional[int] = None):
        self.max_depth = Config.MAX_POPUP_DEPTH if max_depth is None else max_depth
        self._counter = 0
        self._open_ordinal: Optional[int] = None

    # --- Ordinals ---

    def reset(self) -> None:
        """Start a new render pass. Call once per top-level render, never from nested calls."""
        self._counter = 0

    def next_ordinal(self) -> int:
        ordinal = self._counter
        self._counter += 1
        return ordinal

    @property
    def issued(self) -> int:
        """Number of ordinals handed out in the current pass."""
        return self._counter

    # --- Popup arbitration ---

    def is_interactive(self, depth: int) -> bool:
        """Citations nested at or beyond the depth cap render as inert markers."""
        return depth < self.max_depth

    @property
    def open_ordinal(self) -> Optional[int]:
        return self._open_ordinal

    def open_popup(self, ordinal: int, depth: int = 0) -> bool:
        """
        Try to open the popup of citation `ordinal` rendered at `depth`.

        A top-level popup takes over the arbitration token, closing whichever
        popup held it. Returns False when the citation is inert at this depth.
        """
        if not self.is_interactive(depth):
            logger.debug("[Session] Citation %d is inert at depth %d", ordinal, depth)
            return False
        if depth == 0:
            if self._open_ordinal is not None and self._open_ordinal != ordinal:
                logger.debug("[Session] Closing popup %d in favour of %d", self._open_ordinal, ordinal)
            self._open_ordinal = ordinal
        return True

    def close_popup(self, ordinal: int) -> None:
        """Release the token, but only if `ordinal` currently owns it."""
        if self._open_ordinal == ordinal:
            self._open_ordinal = None

    def is_open(self, ordinal: int) -> bool:
        return self._open_ordinal == ordinal
