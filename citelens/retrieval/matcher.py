import logging
import os
import re
from typing import List, Optional, Sequence

from citelens.core.types import CitationToken, Document, DocumentKind, ResolvedCitation

logger = logging.getLogger(__name__)

DUPLICATE_SUFFIX_REGEX = re.compile(r"\s\(\d+\)$")   # "invoice (2)" -> "invoice"

KIND_BY_EXTENSION = {
    ".pdf": DocumentKind.PDF,
    ".csv": DocumentKind.TABULAR,
    ".tsv": DocumentKind.TABULAR,
    ".xls": DocumentKind.TABULAR,
    ".xlsx": DocumentKind.TABULAR,
    ".xlsm": DocumentKind.TABULAR,
    ".txt": DocumentKind.PLAIN_TEXT,
    ".md": DocumentKind.PLAIN_TEXT,
    ".markdown": DocumentKind.PLAIN_TEXT,
    ".json": DocumentKind.PLAIN_TEXT,
    ".log": DocumentKind.PLAIN_TEXT,
}


def is_url_citation(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def kind_from_filename(name: str) -> DocumentKind:
    return KIND_BY_EXTENSION.get(os.path.splitext(name.strip().lower())[1], DocumentKind.OTHER)


def normalize_name(name: str) -> str:
    return name.strip().lower()


def strip_extension(name: str) -> str:
    """Drop everything from the final '.' on ("report.v2.pdf" -> "report.v2")."""
    dot = name.rfind(".")
    return name[:dot] if dot > 0 else name


def strip_duplicate_suffix(name: str) -> str:
    return DUPLICATE_SUFFIX_REGEX.sub("", name)


def _common_prefix_length(a: str, b: str) -> int:
    return len(os.path.commonprefix([a, b]))


class SourceMatcher:
    """
    Resolves the source name a model wrote in a citation to an uploaded document.

    Names drift: models drop extensions, uploads get " (2)" suffixes, long
    names get truncated. Tiers are tried in order and the first one that
    matches wins:
      1. exact name
      2. name without extension
      3. name without extension and duplicate suffix
      4. containment in either direction
    """

    def resolve(self, source_name: str, documents: Sequence[Document]) -> Optional[Document]:
        source = normalize_name(source_name)
        if not source or is_url_citation(source):
            return None

        names = [normalize_name(doc.name) for doc in documents]

        for idx, name in enumerate(names):
            if name == source:
                return documents[idx]

        source_stem = strip_extension(source)
        for idx, name in enumerate(names):
            if strip_extension(name) == source_stem:
                logger.debug("[Matcher] %r matched %r without extension", source_name, documents[idx].name)
                return documents[idx]

        source_base = strip_duplicate_suffix(source_stem)
        for idx, name in enumerate(names):
            if strip_duplicate_suffix(strip_extension(name)) == source_base:
                logger.debug("[Matcher] %r matched %r without duplicate suffix", source_name, documents[idx].name)
                return documents[idx]

        candidates = [idx for idx, name in enumerate(names) if name and (source in name or name in source)]
        if not candidates:
            logger.info("[Matcher] No document matches source %r", source_name)
            return None

        # Tie-break: longest common prefix, then closest length, then upload order
        best = min(
            candidates,
            key=lambda i: (-_common_prefix_length(names[i], source), abs(len(names[i]) - len(source)), i),
        )
        if len(candidates) > 1:
            logger.debug(
                "[Matcher] %r contained in %d documents, picked %r",
                source_name, len(candidates), documents[best].name,
            )
        return documents[best]

    def resolve_citation(self, token: CitationToken, documents: Sequence[Document]) -> ResolvedCitation:
        if is_url_citation(token.source_name):
            return ResolvedCitation(token=token, is_url_citation=True)
        return ResolvedCitation(token=token, matched_document=self.resolve(token.source_name, documents))

    def resolve_all(self, tokens: Sequence[CitationToken], documents: Sequence[Document]) -> List[ResolvedCitation]:
        return [self.resolve_citation(token, documents) for token in tokens]
