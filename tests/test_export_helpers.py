"""
Tests for export file naming helpers.
"""

import os
from datetime import datetime

from kobo_notes.utils.export_helpers import (
    MAX_FILENAME_LENGTH,
    book_filename,
    create_output_path,
    sanitize_filename,
    timestamped_filename,
)


def test_sanitize_replaces_unsafe_characters():
    assert sanitize_filename('A/B: C?') == 'A-B- C-'
    assert sanitize_filename('tab\there') == 'tab-here'


def test_sanitize_collapses_and_strips():
    assert sanitize_filename('  many   spaces  ') == 'many spaces'
    assert sanitize_filename('...') == 'untitled'
    assert sanitize_filename('') == 'untitled'


def test_sanitize_truncates():
    assert len(sanitize_filename('x' * 500)) == MAX_FILENAME_LENGTH


def test_book_filename():
    assert book_filename('My Book', 'md') == 'My Book.md'
    assert book_filename('', 'txt') == 'untitled.txt'


def test_book_filename_deduplicates_case_insensitively():
    used = set()
    names = [book_filename(title, 'md', used) for title in ('Book', 'book', 'Book', 'Other')]
    assert names == ['Book.md', 'book (2).md', 'Book (3).md', 'Other.md']


def test_long_book_filename_keeps_extension():
    name = book_filename('y' * 500, 'md')
    assert name.endswith('.md')
    assert len(name) <= MAX_FILENAME_LENGTH


def test_timestamped_filename():
    assert timestamped_filename('kobo-notes', 'zip', datetime(2024, 7, 12)) == 'kobo-notes-2024-07-12.zip'


def test_create_output_path(tmp_path):
    assert create_output_path(None, 'default.md') == 'default.md'
    assert create_output_path(str(tmp_path), 'default.md') == os.path.join(str(tmp_path), 'default.md')

    nested = tmp_path / "new" / "out.md"
    assert create_output_path(str(nested), 'default.md') == str(nested)
    assert nested.parent.is_dir()

    new_dir = str(tmp_path / "exports") + os.sep
    assert create_output_path(new_dir, 'default.md') == os.path.join(new_dir, 'default.md')
    assert os.path.isdir(new_dir)
