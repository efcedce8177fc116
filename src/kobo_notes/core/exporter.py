"""
Export Orchestrator

Drives the adapter, chapter builder, reconciler and renderer for one or many
books and packages the documents as a single book, one combined document, or
one document per book inside a ZIP archive.

Books are processed independently: a book that fails to export is replaced
by an error placeholder and the rest of the batch carries on.
"""

import logging
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Set

from .content_schema import ContentSchemaAdapter
from .errors import ExportCancelled, ExportError, log_error
from .models import Book, ExportDocument, ExportFormat, ExportStructure
from ..processors.chapter_tree import ChapterTreeBuilder
from ..processors.reconciler import AnnotationReconciler, ReconciliationCache, ReconciliationResult
from ..processors.renderer import BOOK_SEPARATOR, DocumentRenderer
from ..utils.export_helpers import book_filename, timestamped_filename

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

EXPORT_INFO_FILENAME = "export-info.txt"


class ExportOrchestrator:
    """Exports reconciled books in the requested format and topology."""

    def __init__(self, adapter: ContentSchemaAdapter,
                 builder: Optional[ChapterTreeBuilder] = None,
                 reconciler: Optional[AnnotationReconciler] = None,
                 renderer: Optional[DocumentRenderer] = None,
                 workers: int = 1,
                 include_export_date: bool = False):
        """
        Initialize orchestrator.

        Args:
            adapter: Queries over the opened Kobo database
            builder: Chapter tree builder
            reconciler: Annotation reconciler
            renderer: Document renderer
            workers: Number of books exported in parallel
            include_export_date: Whether documents end with an "Exported on" line
        """
        self.adapter = adapter
        self.builder = builder or ChapterTreeBuilder()
        self.reconciler = reconciler or AnnotationReconciler()
        self.renderer = renderer or DocumentRenderer()
        self.workers = max(1, int(workers))
        self.include_export_date = include_export_date
        self._cancelled = threading.Event()

    def cancel(self):
        """Abandon the books of the running export that have not started yet."""
        logger.info("Export cancellation requested")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def reconcile_book(self, book: Book, cache: Optional[ReconciliationCache] = None) -> ReconciliationResult:
        """Build the chapters of a book and assign its annotations to them."""
        def compute() -> ReconciliationResult:
            toc_rows = self.adapter.list_table_of_contents(book.content_id)
            chapters = self.builder.build(book, toc_rows)
            annotations = self.adapter.list_annotations(book.content_id)
            return self.reconciler.reconcile(chapters, annotations, book_id=book.content_id)

        if cache is None:
            return compute()
        return cache.get_or_compute(book.content_id, compute)

    def resolve_book_ids(self, book_ids: Optional[List[str]] = None) -> List[str]:
        """The requested book ids, or every book of the library ordered by title."""
        if book_ids:
            return list(book_ids)
        books = sorted(self.adapter.list_books(), key=lambda b: (b.title.casefold(), b.content_id))
        return [book.content_id for book in books]

    def _export_one(self, book_id: str, fmt: ExportFormat, cache: ReconciliationCache,
                    exported_at: Optional[datetime]) -> ExportDocument:
        book = self.adapter.get_book(book_id)
        if book is None:
            raise ExportError(f"Book not found: {book_id}", {'book_id': book_id})

        result = self.reconcile_book(book, cache)
        content = self.renderer.render(book, result.chapters_with_notes(), fmt=fmt, exported_at=exported_at)
        logger.debug(f"Rendered '{book.title}' ({result.total_annotations} annotations)")
        return ExportDocument(
            book_id=book_id,
            filename=book_filename(book.title, fmt.extension),
            content=content,
        )

    def _safe_export_one(self, book_id: str, fmt: ExportFormat, cache: ReconciliationCache,
                         exported_at: Optional[datetime]) -> ExportDocument:
        if self.cancelled:
            raise ExportCancelled("Export cancelled", {'book_id': book_id})

        try:
            return self._export_one(book_id, fmt, cache, exported_at)
        except Exception as e:
            log_error(e if isinstance(e, ExportError) else ExportError(
                f"Failed to export {book_id}: {e}", {'book_id': book_id}
            ))
            return ExportDocument(
                book_id=book_id,
                filename=book_filename(f"export-failed-{book_id}", fmt.extension),
                content=self.renderer.render_error_placeholder(book_id, str(e), fmt=fmt),
                failed=True,
                error_message=str(e),
            )

    def export_book(self, book_id: str, fmt: Optional[ExportFormat] = None,
                    cache: Optional[ReconciliationCache] = None) -> ExportDocument:
        """
        Export a single book.

        Returns:
            The book's document, or an error placeholder with failed=True
        """
        fmt = fmt or self.renderer.fmt
        self._cancelled.clear()
        return self._safe_export_one(book_id, fmt, cache or ReconciliationCache(), self._exported_at())

    def export_documents(self, book_ids: Optional[List[str]] = None, fmt: Optional[ExportFormat] = None,
                         progress: Optional[ProgressCallback] = None) -> List[ExportDocument]:
        """
        Export several books, one document each, in the requested order.

        Args:
            book_ids: Books to export; all books when omitted
            fmt: Output flavor
            progress: Called with (current, total) as books complete

        Returns:
            One document per book; failed books hold an error placeholder

        Raises:
            ExportCancelled: If cancel() was called before every book ran
        """
        fmt = fmt or self.renderer.fmt
        self._cancelled.clear()
        ids = self.resolve_book_ids(book_ids)
        cache = ReconciliationCache()
        exported_at = self._exported_at()
        total = len(ids)
        logger.info(f"Exporting {total} books as {fmt.value}")

        documents = []
        if self.workers == 1 or total <= 1:
            for index, book_id in enumerate(ids, start=1):
                documents.append(self._safe_export_one(book_id, fmt, cache, exported_at))
                if progress:
                    progress(index, total)
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                futures = [
                    executor.submit(self._safe_export_one, book_id, fmt, cache, exported_at)
                    for book_id in ids
                ]
                for index, future in enumerate(futures, start=1):
                    documents.append(future.result())
                    if progress:
                        progress(index, total)

        failed = [doc.book_id for doc in documents if doc.failed]
        if failed:
            logger.warning(f"{len(failed)} of {total} books failed to export: {', '.join(failed)}")
        logger.info(f"Exported {total - len(failed)} of {total} books")
        return documents

    def export_combined(self, book_ids: Optional[List[str]] = None, fmt: Optional[ExportFormat] = None,
                        progress: Optional[ProgressCallback] = None) -> ExportDocument:
        """
        Export several books into one document, separated by a rule of '='.

        Returns:
            The combined document; failed=True when any book failed
        """
        fmt = fmt or self.renderer.fmt
        documents = self.export_documents(book_ids, fmt, progress)
        header = self.renderer.render_combined_header(len(documents), fmt=fmt, exported_at=self._exported_at())

        separator = f"\n{BOOK_SEPARATOR}\n\n"
        body = separator.join(doc.content for doc in documents)
        content = f"{header}\n{body}" if body else header

        failed = [doc.book_id for doc in documents if doc.failed]
        return ExportDocument(
            book_id="",
            filename=timestamped_filename("all-books", fmt.extension),
            content=content,
            failed=bool(failed),
            error_message=f"Failed books: {', '.join(failed)}" if failed else None,
        )

    def export_archive(self, book_ids: Optional[List[str]] = None, fmt: Optional[ExportFormat] = None,
                       progress: Optional[ProgressCallback] = None) -> List[ExportDocument]:
        """Export several books as separately named documents with unique filenames."""
        documents = self.export_documents(book_ids, fmt, progress)
        used_names: Set[str] = {EXPORT_INFO_FILENAME}
        named = []
        for doc in documents:
            stem = doc.filename.rsplit('.', 1)[0]
            extension = doc.filename.rsplit('.', 1)[-1]
            named.append(ExportDocument(
                book_id=doc.book_id,
                filename=book_filename(stem, extension, used_names),
                content=doc.content,
                failed=doc.failed,
                error_message=doc.error_message,
            ))
        return named

    def export(self, structure: ExportStructure, output_path: str, book_ids: Optional[List[str]] = None,
               fmt: Optional[ExportFormat] = None, progress: Optional[ProgressCallback] = None) -> List[ExportDocument]:
        """
        Export books and write the result to disk.

        Args:
            structure: SINGLE for one combined document, ZIP for one file per book
            output_path: File to write
            book_ids: Books to export; all books when omitted
            fmt: Output flavor
            progress: Progress callback

        Returns:
            The per-book documents (SINGLE returns the combined document only)
        """
        fmt = fmt or self.renderer.fmt
        if structure is ExportStructure.ZIP:
            documents = self.export_archive(book_ids, fmt, progress)
            write_archive(documents, output_path, fmt)
            return documents

        combined = self.export_combined(book_ids, fmt, progress)
        write_document(combined, output_path)
        return [combined]

    def _exported_at(self) -> Optional[datetime]:
        return datetime.now() if self.include_export_date else None


def write_document(document: ExportDocument, output_path: str) -> Path:
    """Write a document as UTF-8 text."""
    path = Path(output_path)
    try:
        path.write_text(document.content, encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Could not write {path}: {e}", {'path': str(path)}) from e
    logger.info(f"Wrote {path}")
    return path


def export_info(documents: List[ExportDocument], fmt: ExportFormat, when: Optional[datetime] = None) -> str:
    """Contents of the export-info.txt file of an archive."""
    when = when or datetime.now()
    failed = [doc.book_id for doc in documents if doc.failed]
    lines = [
        "Export Information",
        "==================",
        f"Date: {when.isoformat(timespec='seconds')}",
        f"Total Books: {len(documents)}",
        f"Format: {fmt.value}",
        "Structure: Separate files in ZIP",
    ]
    if failed:
        lines.append(f"Failed Books: {', '.join(failed)}")
    return "\n".join(lines) + "\n"


def write_archive(documents: List[ExportDocument], output_path: str, fmt: ExportFormat) -> Path:
    """
    Write one file per document into a ZIP archive, plus export-info.txt.

    Returns:
        Path of the archive
    """
    path = Path(output_path)
    try:
        with zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=6) as archive:
            for doc in documents:
                archive.writestr(doc.filename, doc.content)
            archive.writestr(EXPORT_INFO_FILENAME, export_info(documents, fmt))
    except OSError as e:
        raise ExportError(f"Could not write archive {path}: {e}", {'path': str(path)}) from e

    logger.info(f"Wrote {len(documents)} documents to {path}")
    return path
