"""
Document Renderer

Renders a book and its reconciled chapters as a Markdown or plain text
document. Both flavors share the same content and ordering and differ only in
how headings, quotes and emphasis are written.

Output for the same input is byte-for-byte identical; the optional
"Exported on" footer is the only part that depends on the clock.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional

from ..core.models import Book, ChapterWithNotes, ExportFormat, HighlightColor

logger = logging.getLogger(__name__)

MAX_HEADING_LEVEL = 6
UNKNOWN_AUTHOR = "Unknown author"
UNMATCHED_EXPLANATION = "(Notes that could not be matched to specific chapters)"
BOOK_SEPARATOR = "=" * 50

COLOR_MARKERS = {
    HighlightColor.YELLOW: "🟡",
    HighlightColor.PINK: "🔴",
    HighlightColor.BLUE: "🔵",
    HighlightColor.GREEN: "🟢",
}

_NEWLINE_RE = re.compile(r'\r\n|\r|\n')
_WHITESPACE_RE = re.compile(r'\s+')


def clean_highlight_text(text: str) -> str:
    """Remove line breaks and collapse runs of whitespace."""
    text = _NEWLINE_RE.sub('', text or '')
    return _WHITESPACE_RE.sub(' ', text).strip()


def comment_lines(comment: str) -> List[str]:
    """Split a comment into lines, without trailing blanks."""
    return [line.rstrip() for line in _NEWLINE_RE.split((comment or '').strip())]


def color_marker(color) -> str:
    """Marker for a Kobo color code; empty for absent or unknown codes."""
    return COLOR_MARKERS.get(HighlightColor.from_code(color), "")


def heading_level(depth: int) -> int:
    """Heading level of a chapter: one below the book title, capped."""
    return min(max(depth, 1) + 1, MAX_HEADING_LEVEL)


class MarkdownStyle:
    """Markdown punctuation."""

    def heading(self, text: str, level: int) -> List[str]:
        return [f"{'#' * level} {text}"]

    def quote(self, lines: List[str]) -> List[str]:
        return [f"> {line}".rstrip() for line in lines]

    def emphasis(self, text: str) -> str:
        return f"_{text}_"

    def rule(self) -> str:
        return "---"


class TextStyle:
    """Plain text punctuation: underlined headings, indented quotes."""

    UNDERLINES = {1: "=", 2: "-"}

    def heading(self, text: str, level: int) -> List[str]:
        underline = self.UNDERLINES.get(level)
        if underline:
            return [text, underline * max(len(text), 3)]
        return [text]

    def quote(self, lines: List[str]) -> List[str]:
        return [f"    {line}".rstrip() for line in lines]

    def emphasis(self, text: str) -> str:
        return text

    def rule(self) -> str:
        return "* * *"


def style_for(fmt: ExportFormat):
    return MarkdownStyle() if fmt is ExportFormat.MARKDOWN else TextStyle()


class DocumentRenderer:
    """Renders reconciled books to text documents."""

    def __init__(self, fmt: ExportFormat = ExportFormat.MARKDOWN, include_empty_chapters: bool = True):
        """
        Initialize renderer.

        Args:
            fmt: Default output flavor
            include_empty_chapters: Whether chapters without notes get a heading
        """
        self.fmt = fmt
        self.include_empty_chapters = include_empty_chapters

    def render(self, book: Book, chapters: List[ChapterWithNotes],
               fmt: Optional[ExportFormat] = None, exported_at: Optional[datetime] = None) -> str:
        """
        Render one book.

        Args:
            book: The book
            chapters: Chapters with their notes, unmatched chapter last
            fmt: Output flavor, defaults to the renderer's
            exported_at: When set, an "Exported on" footer is appended

        Returns:
            The document text, ending with a newline
        """
        style = style_for(fmt or self.fmt)
        lines = []
        lines.extend(style.heading(book.title or "Untitled", 1))
        lines.extend(style.heading(book.author or UNKNOWN_AUTHOR, 2))
        lines.append("")

        for chapter in chapters:
            if not chapter.notes and not self.include_empty_chapters and not chapter.is_unmatched:
                continue
            lines.extend(self._render_chapter(chapter, style))

        if exported_at is not None:
            lines.extend(self._footer(style, exported_at))

        return "\n".join(lines).rstrip("\n") + "\n"

    def _render_chapter(self, chapter: ChapterWithNotes, style) -> List[str]:
        lines = style.heading(chapter.title, heading_level(chapter.depth))

        if chapter.is_unmatched:
            lines.append("")
            lines.append(style.emphasis(UNMATCHED_EXPLANATION))

        if chapter.notes:
            lines.append("")
            for note in chapter.notes:
                text = clean_highlight_text(note.text)
                if text:
                    marker = color_marker(note.color)
                    lines.append(f"* {marker} {text}" if marker else f"* {text}")
                if note.is_note:
                    lines.extend(style.quote(comment_lines(note.annotation)))
            lines.append("")
        elif chapter.is_unmatched:
            lines.append("")

        return lines

    def _footer(self, style, exported_at: datetime) -> List[str]:
        return ["", style.rule(), style.emphasis(f"Exported on {exported_at.strftime('%Y-%m-%d %H:%M')}")]

    def render_error_placeholder(self, book_id: str, message: str, title: Optional[str] = None,
                                 fmt: Optional[ExportFormat] = None) -> str:
        """
        Render the document standing in for a book that failed to export.

        Args:
            book_id: ContentID of the failed book
            message: What went wrong
            title: Book title when it is known

        Returns:
            Placeholder document naming the book id
        """
        style = style_for(fmt or self.fmt)
        lines = []
        lines.extend(style.heading(f"Export failed: {title or book_id}", 1))
        lines.append("")
        lines.append(f"Book ID: {book_id}")
        lines.append(f"Error: {message}")
        return "\n".join(lines) + "\n"

    def render_combined_header(self, total_books: int, fmt: Optional[ExportFormat] = None,
                               exported_at: Optional[datetime] = None) -> str:
        """Header block of a combined multi-book document."""
        style = style_for(fmt or self.fmt)
        lines = []
        lines.extend(style.heading("All Books Export", 1))
        lines.append("")
        if exported_at is not None:
            lines.append(style.emphasis(f"Exported: {exported_at.strftime('%Y-%m-%d')}"))
        lines.append(style.emphasis(f"Total Books: {total_books}"))
        lines.append("")
        lines.append(style.rule())
        return "\n".join(lines) + "\n"
