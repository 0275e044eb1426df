import logging
import os
from typing import Optional


class Config:
    # --- 1. Logging ---
    LOG_LEVEL = os.getenv("CITELENS_LOG_LEVEL", "WARNING")

    # --- 2. Quote Matching ---
    MIN_QUOTE_LENGTH = 3   # Characters, after whitespace is removed
    DEFAULT_PAGE = 1
    DEFAULT_EXCERPT_LABEL = "Excerpt"

    # --- 3. PDF Preview Settings ---
    PDF_PREVIEW_WIDTH = int(os.getenv("CITELENS_PDF_PREVIEW_WIDTH", "400"))  # CSS px
    PDF_SUPERSAMPLE = int(os.getenv("CITELENS_PDF_SUPERSAMPLE", "10"))       # Canvas drawn at 10x, shown at 1x

    # --- 4. Table Preview Settings ---
    TABLE_CONTEXT_ROWS = 5  # Rows shown above and below the highlighted row

    # --- 5. Popup Settings ---
    MAX_POPUP_DEPTH = 1


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic console handler for the citelens loggers."""
    logging.basicConfig(
        level=(level or Config.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
