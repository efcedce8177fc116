"""
Chapter Tree Builder

Turns the flat content rows of a book into chapters in reading order.

Kobo stores a book's navigation as content rows with ContentType 899, each
carrying a Depth and a VolumeIndex, and the files the book is made of as
ContentType 9 rows. Neither is guaranteed to be complete, ordered or free of
duplicates, so the builder:

1. Prefers navigation rows, falls back to file rows, and finally to a single
   chapter standing for the whole book
2. Collapses duplicate ContentIDs (first row wins)
3. Sorts by VolumeIndex, keeping database order for ties
4. Treats missing or non-positive depth as top level
"""

import logging
import re
from typing import List, Optional, Set

from ..core.content_schema import TOC_CONTENT_TYPE, VOLUME_CONTENT_TYPE
from ..core.models import Book, ChapterEntry, TocRow

logger = logging.getLogger(__name__)

DEFAULT_CHAPTER_TITLE = "Untitled chapter"

# Kobo suffixes navigation ContentIDs with "-N" when a file has several entries
_TOC_SUFFIX_RE = re.compile(r'-\d+$')
# Trailing "#anchor"; sideloaded ids use "#(N)" as a path separator, keep those
_ANCHOR_RE = re.compile(r'#[^#()/!]*$')


def volume_key(content_id: Optional[str]) -> str:
    """
    Derive the id of the file a content row points into.

    Examples:
        'book!OEBPS!ch1.xhtml-2'      -> 'book!OEBPS!ch1.xhtml'
        'book!OEBPS!ch1.xhtml#intro'  -> 'book!OEBPS!ch1.xhtml'
    """
    key = (content_id or '').strip()
    key = _TOC_SUFFIX_RE.sub('', key)
    key = _ANCHOR_RE.sub('', key)
    return key


def navigation_volume(content_id: Optional[str], known_volumes: Set[str]) -> str:
    """
    Resolve the file a navigation entry points into.

    The book's own file ids win over suffix stripping, so a file named
    'part-2' is not mistaken for the second entry of 'part'. Without
    known files the id falls back to volume_key().
    """
    raw = (content_id or '').strip()
    for candidate in (raw, _ANCHOR_RE.sub('', raw), volume_key(raw)):
        if candidate in known_volumes:
            return candidate
    return volume_key(raw)


def _normalize_depth(depth: Optional[int]) -> int:
    if depth is None or depth < 1:
        return 1
    return depth


class ChapterTreeBuilder:
    """Builds the ordered chapter list of a book from its raw content rows."""

    def __init__(self):
        self.processor_type = "chapter_tree_builder"

    def build(self, book: Book, rows: List[TocRow]) -> List[ChapterEntry]:
        """
        Build the chapters of a book.

        Args:
            book: The book the rows belong to
            rows: Raw content rows from ContentSchemaAdapter.list_table_of_contents

        Returns:
            Chapters in reading order, never empty
        """
        toc_rows = [row for row in rows if row.content_type == TOC_CONTENT_TYPE]
        volume_rows = [row for row in rows if row.content_type == VOLUME_CONTENT_TYPE]

        if toc_rows:
            known_volumes = {row.content_id for row in volume_rows}
            chapters = self._build_from_rows(toc_rows, from_navigation=True, known_volumes=known_volumes)
        elif volume_rows:
            logger.info(f"No table of contents for '{book.title}', using its {len(volume_rows)} files")
            chapters = self._build_from_rows(volume_rows, from_navigation=False)
        else:
            logger.info(f"No content rows for '{book.title}', using a single chapter")
            chapters = [self._whole_book_chapter(book)]

        logger.debug(f"Built {len(chapters)} chapters for {book.content_id}")
        return chapters

    def _build_from_rows(self, rows: List[TocRow], from_navigation: bool,
                         known_volumes: Optional[Set[str]] = None) -> List[ChapterEntry]:
        unique_rows = []
        seen_ids = set()
        for row in sorted(rows, key=lambda r: r.source_order):
            if row.content_id in seen_ids:
                logger.debug(f"Duplicate content row ignored: {row.content_id}")
                continue
            seen_ids.add(row.content_id)
            unique_rows.append(row)

        # Rows without a VolumeIndex go after the indexed ones
        ordered = sorted(
            unique_rows,
            key=lambda r: (r.volume_index is None, r.volume_index or 0, r.source_order)
        )

        chapters = []
        for sequence, row in enumerate(ordered):
            chapters.append(ChapterEntry(
                content_id=row.content_id,
                title=row.title.strip() or DEFAULT_CHAPTER_TITLE,
                depth=_normalize_depth(row.depth) if from_navigation else 1,
                sequence=sequence,
                book_id=row.book_id,
                volume_id=navigation_volume(row.content_id, known_volumes or set()) if from_navigation else row.content_id,
            ))
        return chapters

    def _whole_book_chapter(self, book: Book) -> ChapterEntry:
        return ChapterEntry(
            content_id=book.content_id,
            title=book.title.strip() or DEFAULT_CHAPTER_TITLE,
            depth=1,
            sequence=0,
            book_id=book.content_id,
            volume_id=None,
        )
