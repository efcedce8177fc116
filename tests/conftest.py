"""
Shared fixtures: small Kobo databases built in memory.
"""

import sqlite3
from typing import Optional

import pytest

from kobo_notes.core.content_schema import ContentSchemaAdapter
from kobo_notes.core.database import open_database

CONTENT_TABLE = """
    CREATE TABLE content (
        ContentID TEXT NOT NULL PRIMARY KEY,
        ContentType INTEGER,
        BookID TEXT,
        Title TEXT,
        Subtitle TEXT,
        Attribution TEXT,
        Publisher TEXT,
        ISBN TEXT,
        DateCreated TEXT,
        Series TEXT,
        SeriesNumber TEXT,
        AverageRating NUMERIC,
        ___PercentRead INTEGER,
        ReadStatus INTEGER,
        DateLastRead TEXT,
        ___FileSize INTEGER,
        Accessibility INTEGER,
        ___UserID TEXT,
        VolumeIndex INTEGER,
        Depth INTEGER
    )
"""

BOOKMARK_TABLE = """
    CREATE TABLE Bookmark (
        BookmarkID TEXT NOT NULL PRIMARY KEY,
        VolumeID TEXT NOT NULL,
        ContentID TEXT NOT NULL,
        Text TEXT,
        Annotation TEXT,
        ChapterProgress REAL,
        Hidden BOOL DEFAULT 'false',
        Type TEXT,
        DateCreated TEXT
        {color_column}
    )
"""


class KoboDbBuilder:
    """Builds a KoboReader.sqlite image with just the columns the exporter reads."""

    def __init__(self, with_color: bool = True, with_bookmark_table: bool = True):
        self.with_color = with_color
        self.conn = sqlite3.connect(":memory:")
        self.conn.execute(CONTENT_TABLE)
        if with_bookmark_table:
            self.conn.execute(BOOKMARK_TABLE.format(
                color_column=", Color INTEGER" if with_color else ""
            ))

    def add_book(self, content_id: str, title: str, author: str = "Jane Doe",
                 user_id: Optional[str] = "user-1", accessibility: int = 1,
                 last_read: Optional[str] = None, **extra):
        self.conn.execute(
            """INSERT INTO content (ContentID, ContentType, Title, Attribution, ___UserID,
                                    Accessibility, ReadStatus, DateLastRead, Subtitle, Publisher, ISBN,
                                    DateCreated, Series, SeriesNumber, AverageRating, ___PercentRead, ___FileSize)
               VALUES (?, 6, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (content_id, title, author, user_id, accessibility,
             1 if last_read else 0, last_read,
             extra.get('subtitle'), extra.get('publisher'), extra.get('isbn'),
             extra.get('date_created'), extra.get('series'), extra.get('series_number'),
             extra.get('rating'), extra.get('read_percent'), extra.get('file_size')),
        )
        return self

    def add_toc_entry(self, content_id: str, book_id: str, title: str,
                      volume_index: Optional[int], depth: Optional[int] = 1):
        self.conn.execute(
            "INSERT INTO content (ContentID, ContentType, BookID, Title, VolumeIndex, Depth) VALUES (?, 899, ?, ?, ?, ?)",
            (content_id, book_id, title, volume_index, depth),
        )
        return self

    def add_volume(self, content_id: str, book_id: str, title: str = "", volume_index: Optional[int] = 0):
        self.conn.execute(
            "INSERT INTO content (ContentID, ContentType, BookID, Title, VolumeIndex) VALUES (?, 9, ?, ?, ?)",
            (content_id, book_id, title, volume_index),
        )
        return self

    def add_bookmark(self, bookmark_id: str, book_id: str, volume_id: str, text: Optional[str],
                     progress: Optional[float], annotation: Optional[str] = None, hidden: str = 'false',
                     color: Optional[int] = None, date_created: str = "2024-07-12T02:53:50.000",
                     bookmark_type: str = "highlight"):
        if self.with_color:
            self.conn.execute(
                """INSERT INTO Bookmark (BookmarkID, VolumeID, ContentID, Text, Annotation, ChapterProgress,
                                         Hidden, Type, DateCreated, Color)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (bookmark_id, book_id, volume_id, text, annotation, progress, hidden,
                 bookmark_type, date_created, color),
            )
        else:
            self.conn.execute(
                """INSERT INTO Bookmark (BookmarkID, VolumeID, ContentID, Text, Annotation, ChapterProgress,
                                         Hidden, Type, DateCreated)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (bookmark_id, book_id, volume_id, text, annotation, progress, hidden,
                 bookmark_type, date_created),
            )
        return self

    def to_bytes(self) -> bytes:
        self.conn.commit()
        return self.conn.serialize()


CH1 = "book-1!OEBPS!ch1.xhtml"
CH2 = "book-1!OEBPS!ch2.xhtml"


def populate_sample_library(builder: KoboDbBuilder) -> KoboDbBuilder:
    """
    Three books:
      book-1 "Sample": two files, three TOC entries, annotations in both files,
                       one hidden, one empty, one in an unknown file
      book-2 "No Navigation": no content rows at all
      book-3 "Removed": owned by a removed profile
    """
    builder.add_book("book-1", "Sample", author="Jane Doe", last_read="2024-07-12T02:53:50.000",
                     subtitle="A Subtitle", publisher="Pub", isbn="9781234567897",
                     series="Series", series_number="2", rating=4, read_percent=55, file_size=1024)
    builder.add_volume(CH1, "book-1", "ch1", volume_index=0)
    builder.add_volume(CH2, "book-1", "ch2", volume_index=1)
    builder.add_toc_entry(f"{CH1}-1", "book-1", "Chapter 1", volume_index=0, depth=1)
    builder.add_toc_entry(f"{CH1}-2", "book-1", "Section 1.1", volume_index=1, depth=2)
    builder.add_toc_entry(f"{CH2}-1", "book-1", "Chapter 2", volume_index=2, depth=1)

    builder.add_bookmark("b1", "book-1", CH1, "First highlight", 0.1, date_created="2024-07-01T10:00:00.000")
    builder.add_bookmark("b2", "book-1", CH1, "Second\nhighlight", 0.7, annotation="My note",
                         date_created="2024-07-03T10:00:00.000")
    builder.add_bookmark("b3", "book-1", CH2, "Blue highlight", 0.3, color=2,
                         date_created="2024-07-02T10:00:00.000")
    builder.add_bookmark("b4", "book-1", CH2, "Hidden highlight", 0.4, hidden='true')
    builder.add_bookmark("b5", "book-1", CH2, "", 0.5)
    builder.add_bookmark("b6", "book-1", "book-1!OEBPS!appendix.xhtml", "Lost highlight", 0.2,
                         date_created="2024-07-04T10:00:00.000")

    builder.add_book("book-2", "No Navigation", author="", last_read=None)
    builder.add_bookmark("c1", "book-2", "book-2!text.html", "Late", 0.9)
    builder.add_bookmark("c2", "book-2", "book-2!text.html", "Early", 0.05, annotation="line one\nline two")

    builder.add_book("book-3", "Removed", user_id="removed")
    return builder


@pytest.fixture
def kobo_builder():
    return KoboDbBuilder()


@pytest.fixture
def sample_bytes():
    return populate_sample_library(KoboDbBuilder()).to_bytes()


@pytest.fixture
def sample_db(sample_bytes):
    db = open_database(sample_bytes, source="sample.sqlite")
    yield db
    db.close()


@pytest.fixture
def adapter(sample_db):
    return ContentSchemaAdapter(sample_db)
