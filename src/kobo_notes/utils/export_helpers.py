"""
Export helpers for naming and placing exported documents.
"""

import logging
import os
import re
from datetime import datetime
from typing import Optional, Set

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 200
UNSAFE_CHARS = '<>:"/\\|?*'


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for filesystem compatibility."""
    # Replace problematic characters
    for char in UNSAFE_CHARS:
        filename = filename.replace(char, '-')

    # Control characters
    filename = re.sub(r'[\x00-\x1f\x7f]', '-', filename)

    filename = re.sub(r'\s+', ' ', filename)
    filename = filename.strip(' .')

    if not filename:
        filename = "untitled"

    if len(filename) > MAX_FILENAME_LENGTH:
        filename = filename[:MAX_FILENAME_LENGTH].rstrip(' .')

    return filename


def book_filename(title: str, extension: str, used_names: Optional[Set[str]] = None) -> str:
    """
    Create a safe, unique filename for a book document.

    Args:
        title: Book title
        extension: File extension without the dot (e.g. 'md')
        used_names: Names already taken in the same archive; updated in place

    Returns:
        Filename such as 'My Book.md' or 'My Book (2).md'
    """
    suffix = f".{extension}"
    base = sanitize_filename(title or "untitled")[:MAX_FILENAME_LENGTH - len(suffix)].rstrip(' .')
    filename = f"{base}{suffix}"

    if used_names is not None:
        counter = 2
        while filename.lower() in used_names:
            marker = f" ({counter})"
            filename = f"{base[:MAX_FILENAME_LENGTH - len(suffix) - len(marker)]}{marker}{suffix}"
            counter += 1
        used_names.add(filename.lower())

    return filename


def timestamped_filename(prefix: str, extension: str, when: Optional[datetime] = None) -> str:
    """Filename such as 'kobo-notes-2024-07-12.zip'."""
    when = when or datetime.now()
    return f"{prefix}-{when.strftime('%Y-%m-%d')}.{extension}"


def create_output_path(output: Optional[str], default_name: str) -> str:
    """
    Resolve where an export is written.

    A directory (existing, or given with a trailing separator) receives
    default_name; anything else is used as the file path itself.
    """
    if not output:
        return default_name

    if os.path.isdir(output) or output.endswith(os.sep):
        os.makedirs(output, exist_ok=True)
        return os.path.join(output, default_name)

    parent = os.path.dirname(output)
    if parent:
        os.makedirs(parent, exist_ok=True)
    return output
