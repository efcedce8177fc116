"""
Queries against the Kobo content and Bookmark tables.

The ContentSchemaAdapter is the only place that knows Kobo column names. It
turns loosely typed SQL rows into Book, Annotation and TocRow records and
applies every defaulting rule for NULLs and odd types.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .database import KoboDatabase
from .errors import KoboNotesError
from .models import Annotation, Book, BookSource, BookSummary, TocRow

logger = logging.getLogger(__name__)

BOOK_CONTENT_TYPE = 6
VOLUME_CONTENT_TYPE = 9
TOC_CONTENT_TYPE = 899

_BOOK_COLUMNS = """
    ContentID AS content_id,
    IFNULL(Title, '') AS title,
    IFNULL(Subtitle, '') AS subtitle,
    IFNULL(Attribution, '') AS author,
    IFNULL(Publisher, '') AS publisher,
    IFNULL(ISBN, '') AS isbn,
    IFNULL(date(DateCreated), '') AS release_date,
    IFNULL(Series, '') AS series,
    IFNULL(SeriesNumber, '') AS series_number,
    IFNULL(AverageRating, 0) AS rating,
    IFNULL(___PercentRead, 0) AS read_percent,
    CASE WHEN ReadStatus > 0 THEN datetime(DateLastRead) END AS last_read,
    IFNULL(___FileSize, 0) AS file_size,
    Accessibility AS accessibility
"""


def _to_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_optional_int(value) -> Optional[int]:
    if value is None or value == '':
        return None
    return _to_int(value, default=None)


def _parse_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', ''))
    except ValueError:
        logger.debug(f"Unparseable timestamp ignored: {value!r}")
        return None


class ContentSchemaAdapter:
    """Typed, read-only queries over an opened Kobo database."""

    def __init__(self, database: KoboDatabase):
        self.database = database

    def _book_from_row(self, row) -> Book:
        return Book(
            content_id=row['content_id'],
            title=str(row['title']),
            subtitle=str(row['subtitle']),
            author=str(row['author']),
            publisher=str(row['publisher']),
            isbn=str(row['isbn']),
            release_date=str(row['release_date']),
            series=str(row['series']),
            series_number=str(row['series_number']),
            rating=_to_float(row['rating']),
            read_percent=_to_int(row['read_percent']),
            last_read=_parse_datetime(row['last_read']),
            file_size=_to_int(row['file_size']),
            source=BookSource.from_accessibility(_to_optional_int(row['accessibility'])),
        )

    def list_books(self) -> List[Book]:
        """
        List every book owned by an active user profile.

        Returns:
            Books in no guaranteed order
        """
        rows = self.database.execute(f"""
            SELECT {_BOOK_COLUMNS}
            FROM content
            WHERE ContentType = ?
              AND ___UserID IS NOT NULL
              AND ___UserID != ''
              AND ___UserID != 'removed'
            ORDER BY Accessibility DESC, Title
        """, (BOOK_CONTENT_TYPE,))
        books = [self._book_from_row(row) for row in rows]
        logger.debug(f"Found {len(books)} books")
        return books

    def get_book(self, book_id: str) -> Optional[Book]:
        """
        Look up one book by its ContentID.

        Args:
            book_id: Exact ContentID of the book

        Returns:
            The book, or None when the database has no such book
        """
        rows = self.database.execute(f"""
            SELECT {_BOOK_COLUMNS}
            FROM content
            WHERE ContentID = ?
        """, (book_id,))
        if not rows:
            logger.debug(f"Book not found: {book_id}")
            return None
        return self._book_from_row(rows[0])

    def list_annotations(self, book_id: str) -> List[Annotation]:
        """
        List the visible highlights and notes of a book, newest first.

        Hidden bookmarks and bookmarks whose text is empty or only whitespace
        (spaces, tabs, line breaks) are left out.

        Args:
            book_id: ContentID of the book

        Returns:
            Annotations ordered by creation date, most recent first
        """
        color_column = "T.Color" if self.database.has_column('Bookmark', 'Color') else "NULL"
        rows = self.database.execute(f"""
            SELECT
                T.BookmarkID AS bookmark_id,
                T.VolumeID AS book_id,
                T.ContentID AS volume_id,
                IFNULL(T.DateCreated, '') AS date_created,
                T.Text AS text,
                T.Annotation AS annotation,
                IFNULL(T.Type, 'highlight') AS type,
                T.ChapterProgress AS chapter_progress,
                {color_column} AS color
            FROM content AS B
            JOIN Bookmark AS T ON B.ContentID = T.VolumeID
            WHERE B.ContentID = ?
              AND T.Text IS NOT NULL
              AND TRIM(T.Text, ' ' || char(9) || char(10) || char(13)) != ''
              AND LOWER(IFNULL(T.Hidden, 'false')) IN ('false', '0')
            ORDER BY T.DateCreated DESC
        """, (book_id,))

        annotations = []
        for row in rows:
            annotations.append(Annotation(
                bookmark_id=str(row['bookmark_id']),
                book_id=row['book_id'],
                volume_id=row['volume_id'] or '',
                text=str(row['text']),
                chapter_progress=_to_float(row['chapter_progress']),
                date_created=str(row['date_created']),
                annotation=row['annotation'] or None,
                hidden=False,
                type=str(row['type']),
                color=_to_optional_int(row['color']),
            ))

        logger.debug(f"Found {len(annotations)} annotations for {book_id}")
        return annotations

    def list_table_of_contents(self, book_id: str) -> List[TocRow]:
        """
        List every content row that belongs to a book.

        This includes the navigation entries (ContentType 899) as well as the
        files the book is made of (ContentType 9).

        Args:
            book_id: ContentID of the book

        Returns:
            Raw rows in database order
        """
        depth_column = "Depth" if self.database.has_column('content', 'Depth') else "NULL"
        rows = self.database.execute(f"""
            SELECT
                ContentID AS content_id,
                IFNULL(Title, '') AS title,
                {depth_column} AS depth,
                VolumeIndex AS volume_index,
                ContentType AS content_type,
                BookID AS book_id
            FROM content
            WHERE BookID = ?
              AND ContentType IN (?, ?)
            ORDER BY rowid
        """, (book_id, VOLUME_CONTENT_TYPE, TOC_CONTENT_TYPE))

        return [
            TocRow(
                content_id=row['content_id'],
                title=str(row['title']),
                depth=_to_optional_int(row['depth']),
                volume_index=_to_optional_int(row['volume_index']),
                content_type=_to_int(row['content_type']),
                book_id=row['book_id'],
                source_order=index,
            )
            for index, row in enumerate(rows)
        ]

    def list_books_with_counts(self) -> List[BookSummary]:
        """
        List books together with their highlight and note counts.

        A book whose annotations cannot be read is still listed, with zero
        counts.
        """
        summaries = []
        for book in self.list_books():
            try:
                annotations = self.list_annotations(book.content_id)
            except KoboNotesError as e:
                logger.warning(f"Failed to load annotations for {book.content_id}: {e}")
                summaries.append(BookSummary(book=book))
                continue

            notes = sum(1 for a in annotations if a.is_note)
            summaries.append(BookSummary(
                book=book,
                total_highlights=len(annotations) - notes,
                total_notes=notes,
            ))
        return summaries
