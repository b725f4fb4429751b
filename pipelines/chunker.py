"""Section-aware chunking for crawled pages and curated documents.

Text is first split into titled sections by heading heuristics, then each
section is cut into fixed-size overlapping windows.
"""

import bisect
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Sequence

from config.settings import ChunkingConfig
from indexer.models import ChunkRecord
from .tags import extract_tags

logger = logging.getLogger(__name__)

GENERAL_SECTION_TITLE = "General Content"

# "Section 4.3", "Article 2", "4.3" and capitalized phrases ending in a rule word.
HEADING_PATTERN = re.compile(
    r"(?i:Section\s+[\d.]+|Article\s+[\d.]+)"
    r"|\d+\.\d+"
    r"|\b[A-Z][^.]*(?i:Standards?|Guidelines?|Requirements?|Rules?)\b"
)

PageLocator = Callable[[int], int]


@dataclass(frozen=True)
class Section:
    """A titled span of source text."""
    title: str
    text: str
    tags: FrozenSet[str] = field(default_factory=frozenset)
    offset: int = 0
    page_range: Optional[str] = None


@dataclass(frozen=True)
class TextWindow:
    start: int
    end: int
    text: str


def window_text(
    text: str,
    size: int = 1000,
    overlap: int = 200,
    min_length: int = 0,
    max_windows: int = 1000,
) -> List[TextWindow]:
    """Cut ``text`` into overlapping windows.

    Args:
        text: Text to window
        size: Window length in characters
        overlap: Characters shared by consecutive windows
        min_length: Windows whose trimmed text is not longer than this are dropped
        max_windows: Hard cap on windows examined

    Returns:
        Windows in text order, with their untrimmed offsets.
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    if overlap < 0:
        raise ValueError(f"Overlap cannot be negative, got {overlap}")

    windows: List[TextWindow] = []
    length = len(text)
    start = 0
    examined = 0

    while start < length and examined < max_windows:
        end = min(start + size, length)
        examined += 1
        chunk = text[start:end].strip()
        if len(chunk) > min_length:
            windows.append(TextWindow(start, end, chunk))

        next_start = end - overlap
        if next_start >= length:
            break
        if next_start <= start:
            # The tail window at len - overlap cannot advance any further.
            if end < length:
                logger.warning(f"Windowing stalled at offset {start} (size={size}, overlap={overlap})")
            break
        start = next_start

    if examined >= max_windows and start < length:
        logger.warning(f"Window cap of {max_windows} reached for text of length {length}")

    return windows


def format_page_range(first: int, last: int) -> str:
    return str(first) if first == last else f"{first}-{last}"


def split_by_heading(
    text: str,
    min_length: int = 100,
    page_locator: Optional[PageLocator] = None,
) -> List[Section]:
    """Split text into sections starting at each heading match.

    With no heading match the whole text becomes one "General Content"
    section. Otherwise sections whose trimmed text is not longer than
    ``min_length`` are dropped, and text before the first heading is not
    part of any section.
    """
    matches = list(HEADING_PATTERN.finditer(text))

    if not matches:
        page_range = None
        if page_locator is not None and text:
            page_range = format_page_range(page_locator(0), page_locator(max(len(text) - 1, 0)))
        return [Section(GENERAL_SECTION_TITLE, text, extract_tags(text), 0, page_range)]

    sections = []
    for i, match in enumerate(matches):
        start = match.start()
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        raw = text[start:end]
        section_text = raw.strip()
        if len(section_text) <= min_length:
            continue

        title = match.group(0).strip()
        offset = start + (len(raw) - len(raw.lstrip()))
        page_range = None
        if page_locator is not None:
            page_range = format_page_range(
                page_locator(offset), page_locator(offset + len(section_text) - 1))
        sections.append(Section(
            title=title,
            text=section_text,
            tags=extract_tags(section_text + " " + title),
            offset=offset,
            page_range=page_range,
        ))

    return sections


def page_locator_for(page_texts: Sequence[str], separator: str = "\n") -> PageLocator:
    """Map a character offset in ``separator.join(page_texts)`` to a 1-based page number."""
    starts = []
    position = 0
    for page_text in page_texts:
        starts.append(position)
        position += len(page_text) + len(separator)

    def locate(offset: int) -> int:
        if not starts:
            return 1
        return max(bisect.bisect_right(starts, offset), 1)

    return locate


class SectionChunker:
    """Produces persistable chunk records from pages and documents."""

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig()

    def _windows(self, text: str, min_length: int) -> List[TextWindow]:
        return window_text(
            text,
            size=self.config.chunk_size,
            overlap=self.config.overlap,
            min_length=min_length,
            max_windows=self.config.max_windows,
        )

    def chunk_page(self, text: str, source_url: Optional[str], title: Optional[str] = None,
                   **metadata) -> List[ChunkRecord]:
        """Window a crawled page as a whole, with no minimum window length.

        Every chunk carries the tags of the whole page and the page title.
        Extra keyword arguments are copied onto each ChunkRecord.
        """
        tags = sorted(extract_tags(text))
        return [
            ChunkRecord(
                content=window.text,
                source_url=source_url,
                section_title=title or None,
                tags=list(tags),
                page_title=title or None,
                **metadata
            )
            for window in self._windows(text, 0)
        ]

    def chunk_sections(
        self,
        sections: Sequence[Section],
        default_title: Optional[str] = None,
        source_url: Optional[str] = None,
        page_locator: Optional[PageLocator] = None,
    ) -> List[ChunkRecord]:
        """Window each section of a curated document.

        Windows must be longer than ``document_min_chunk_length``. When a
        ``page_locator`` is given, each chunk's ``pdf_page`` is the page on
        which it starts.
        """
        records = []
        for section in sections:
            for window in self._windows(section.text, self.config.document_min_chunk_length):
                pdf_page = None
                if page_locator is not None:
                    pdf_page = page_locator(section.offset + window.start)
                records.append(ChunkRecord(
                    content=window.text,
                    source_url=source_url,
                    pdf_page=pdf_page,
                    section_title=section.title or default_title,
                    tags=list(section.tags),
                    page_range=section.page_range,
                    page_title=default_title,
                ))
        return records

    def chunk_document(self, text: str, default_title: Optional[str] = None,
                       source_url: Optional[str] = None,
                       page_locator: Optional[PageLocator] = None) -> List[ChunkRecord]:
        """Section-split ``text`` and window every surviving section."""
        sections = split_by_heading(text, self.config.min_section_length, page_locator)
        logger.debug(f"Split {source_url or default_title} into {len(sections)} sections")
        return self.chunk_sections(sections, default_title, source_url, page_locator)
