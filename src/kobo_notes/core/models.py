"""
Data models for Kobo books, annotations and chapters.

These records are read-only projections of the Kobo database. They are built
by the ContentSchemaAdapter, which owns every defaulting rule for missing
values, and are never mutated afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

UNMATCHED_CHAPTER_ID = "unmatched"


class BookSource(Enum):
    """How a book got onto the device (content.Accessibility)."""
    STORE = "Store"
    IMPORT = "Import"
    PREVIEW = "Preview"
    OTHER = "Other"

    @classmethod
    def from_accessibility(cls, value) -> "BookSource":
        return {1: cls.STORE, -1: cls.IMPORT, 6: cls.PREVIEW}.get(value, cls.OTHER)


class HighlightColor(Enum):
    """Kobo highlight colors as stored in Bookmark.Color."""
    YELLOW = 0
    PINK = 1
    BLUE = 2
    GREEN = 3

    @classmethod
    def from_code(cls, code) -> Optional["HighlightColor"]:
        """Return the color for a code, or None for absent or unknown codes."""
        if isinstance(code, bool) or not isinstance(code, int):
            return None
        try:
            return cls(code)
        except ValueError:
            return None


class ExportFormat(Enum):
    """Output flavor of a rendered document."""
    MARKDOWN = "markdown"
    TEXT = "text"

    @property
    def extension(self) -> str:
        return "md" if self is ExportFormat.MARKDOWN else "txt"

    @property
    def mime_type(self) -> str:
        return "text/markdown" if self is ExportFormat.MARKDOWN else "text/plain"


class ExportStructure(Enum):
    """How a multi-book export is packaged."""
    SINGLE = "single"
    ZIP = "zip"


@dataclass(frozen=True)
class Book:
    """A book (content row with ContentType 6)."""
    content_id: str
    title: str
    subtitle: str = ""
    author: str = ""
    publisher: str = ""
    isbn: str = ""
    release_date: str = ""
    series: str = ""
    series_number: str = ""
    rating: float = 0.0
    read_percent: int = 0
    last_read: Optional[datetime] = None
    file_size: int = 0
    source: BookSource = BookSource.OTHER

    def to_dict(self) -> Dict:
        """Convert book to dictionary for tabular export."""
        return {
            'content_id': self.content_id,
            'title': self.title,
            'subtitle': self.subtitle,
            'author': self.author,
            'publisher': self.publisher,
            'isbn': self.isbn,
            'release_date': self.release_date,
            'series': self.series,
            'series_number': self.series_number,
            'rating': self.rating,
            'read_percent': self.read_percent,
            'last_read': self.last_read.isoformat() if self.last_read else None,
            'file_size': self.file_size,
            'source': self.source.value,
        }


@dataclass(frozen=True)
class Annotation:
    """A highlight, or a note when a comment is attached (Bookmark row)."""
    bookmark_id: str
    book_id: str
    volume_id: str  # Bookmark.ContentID: the file inside the book
    text: str
    chapter_progress: float
    date_created: str = ""
    annotation: Optional[str] = None
    hidden: bool = False
    type: str = "highlight"
    color: Optional[int] = None

    @property
    def is_note(self) -> bool:
        return bool(self.annotation and self.annotation.strip())

    @property
    def highlight_color(self) -> Optional[HighlightColor]:
        return HighlightColor.from_code(self.color)


@dataclass(frozen=True)
class TocRow:
    """A raw content row belonging to a book, as read from the database."""
    content_id: str
    title: str
    depth: Optional[int]
    volume_index: Optional[int]
    content_type: int
    book_id: str
    source_order: int


@dataclass(frozen=True)
class ChapterEntry:
    """A chapter in reading order.

    volume_id is None for a chapter that stands for the whole book and
    therefore accepts annotations from every volume.
    """
    content_id: str
    title: str
    depth: int
    sequence: int
    book_id: str
    volume_id: Optional[str] = None


@dataclass
class ChapterWithNotes:
    """A chapter together with the annotations assigned to it."""
    chapter: ChapterEntry
    notes: List[Annotation] = field(default_factory=list)

    @property
    def content_id(self) -> str:
        return self.chapter.content_id

    @property
    def title(self) -> str:
        return self.chapter.title

    @property
    def depth(self) -> int:
        return self.chapter.depth

    @property
    def is_unmatched(self) -> bool:
        return self.chapter.content_id == UNMATCHED_CHAPTER_ID


@dataclass(frozen=True)
class BookSummary:
    """A book with its highlight and note counts, for library listings."""
    book: Book
    total_highlights: int = 0
    total_notes: int = 0

    @property
    def total_annotations(self) -> int:
        return self.total_highlights + self.total_notes

    def to_dict(self) -> Dict:
        data = self.book.to_dict()
        data['highlights'] = self.total_highlights
        data['notes'] = self.total_notes
        return data


@dataclass(frozen=True)
class ExportDocument:
    """One rendered document of an export."""
    book_id: str
    filename: str
    content: str
    failed: bool = False
    error_message: Optional[str] = None
