"""
Tests for the ContentSchemaAdapter queries.
"""

from datetime import datetime

from kobo_notes.core.content_schema import ContentSchemaAdapter
from kobo_notes.core.database import open_database
from kobo_notes.core.models import BookSource
from tests.conftest import CH1, CH2, KoboDbBuilder, populate_sample_library


def test_list_books_excludes_removed_profiles(adapter):
    ids = {book.content_id for book in adapter.list_books()}
    assert ids == {"book-1", "book-2"}


def test_list_books_excludes_rows_without_owner(kobo_builder):
    kobo_builder.add_book("orphan", "Orphan", user_id=None)
    kobo_builder.add_book("blank", "Blank owner", user_id="")
    kobo_builder.add_book("owned", "Owned")
    with open_database(kobo_builder.to_bytes()) as db:
        ids = [book.content_id for book in ContentSchemaAdapter(db).list_books()]
    assert ids == ["owned"]


def test_get_book_maps_fields(adapter):
    book = adapter.get_book("book-1")
    assert book.title == "Sample"
    assert book.subtitle == "A Subtitle"
    assert book.author == "Jane Doe"
    assert book.publisher == "Pub"
    assert book.isbn == "9781234567897"
    assert book.series == "Series"
    assert book.series_number == "2"
    assert book.rating == 4.0
    assert book.read_percent == 55
    assert book.file_size == 1024
    assert book.source is BookSource.STORE
    assert book.last_read == datetime(2024, 7, 12, 2, 53, 50)


def test_get_book_defaults_missing_fields(adapter):
    book = adapter.get_book("book-2")
    assert book.author == ""
    assert book.subtitle == ""
    assert book.isbn == ""
    assert book.rating == 0.0
    assert book.last_read is None


def test_get_book_not_found_returns_none(adapter):
    assert adapter.get_book("no-such-book") is None


def test_book_source_mapping():
    assert BookSource.from_accessibility(1) is BookSource.STORE
    assert BookSource.from_accessibility(-1) is BookSource.IMPORT
    assert BookSource.from_accessibility(6) is BookSource.PREVIEW
    assert BookSource.from_accessibility(None) is BookSource.OTHER
    assert BookSource.from_accessibility(42) is BookSource.OTHER


def test_list_annotations_filters_hidden_and_empty(adapter):
    ids = [a.bookmark_id for a in adapter.list_annotations("book-1")]
    assert sorted(ids) == ["b1", "b2", "b3", "b6"]


def test_list_annotations_newest_first(adapter):
    ids = [a.bookmark_id for a in adapter.list_annotations("book-1")]
    assert ids == ["b6", "b2", "b3", "b1"]


def test_list_annotations_fields(adapter):
    by_id = {a.bookmark_id: a for a in adapter.list_annotations("book-1")}
    note = by_id["b2"]
    assert note.book_id == "book-1"
    assert note.volume_id == CH1
    assert note.chapter_progress == 0.7
    assert note.annotation == "My note"
    assert note.is_note
    assert not by_id["b1"].is_note
    assert by_id["b3"].color == 2
    assert by_id["b1"].color is None


def test_list_annotations_without_color_column():
    builder = populate_sample_library(KoboDbBuilder(with_color=False))
    with open_database(builder.to_bytes()) as db:
        annotations = ContentSchemaAdapter(db).list_annotations("book-1")
    assert len(annotations) == 4
    assert all(a.color is None for a in annotations)


def test_null_progress_defaults_to_zero(kobo_builder):
    kobo_builder.add_book("b", "Book")
    kobo_builder.add_bookmark("x", "b", "b!f.html", "text", None)
    with open_database(kobo_builder.to_bytes()) as db:
        (annotation,) = ContentSchemaAdapter(db).list_annotations("b")
    assert annotation.chapter_progress == 0.0


def test_list_table_of_contents(adapter):
    rows = adapter.list_table_of_contents("book-1")
    assert [row.content_id for row in rows] == [CH1, CH2, f"{CH1}-1", f"{CH1}-2", f"{CH2}-1"]
    assert [row.source_order for row in rows] == [0, 1, 2, 3, 4]
    toc = [row for row in rows if row.content_type == 899]
    assert [row.depth for row in toc] == [1, 2, 1]
    assert [row.volume_index for row in toc] == [0, 1, 2]


def test_list_table_of_contents_empty(adapter):
    assert adapter.list_table_of_contents("book-2") == []


def test_list_books_with_counts(adapter):
    counts = {s.book.content_id: (s.total_highlights, s.total_notes) for s in adapter.list_books_with_counts()}
    assert counts == {"book-1": (3, 1), "book-2": (1, 1)}


def test_whitespace_only_text_is_not_an_annotation(kobo_builder):
    kobo_builder.add_book("bk", "T")
    kobo_builder.add_bookmark("blank-lines", "bk", "bk!a.html", "\n\n", 0.5)
    kobo_builder.add_bookmark("blank-mixed", "bk", "bk!a.html", " \t\r\n ", 0.6)
    kobo_builder.add_bookmark("kept", "bk", "bk!a.html", "\nreal text\n", 0.7)
    with open_database(kobo_builder.to_bytes()) as db:
        annotations = ContentSchemaAdapter(db).list_annotations("bk")
    assert [a.bookmark_id for a in annotations] == ["kept"]
