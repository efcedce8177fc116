"""
Annotation Reconciler

Assigns every annotation of a book to the chapter it most plausibly belongs
to. Kobo does not record which chapter a bookmark is in, only the file it
landed on (Bookmark.ContentID) and a fractional position inside that file
(Bookmark.ChapterProgress). The reconciler therefore:

1. Sorts annotations by ChapterProgress, so notes read in reading order
2. Groups chapters by the file they point into
3. Spreads the chapters of a file evenly over [0, 1]: with k chapters,
   chapter j starts at j / k
4. Puts each annotation into the last chapter of its file whose start is at
   or before its progress
5. Routes annotations it cannot place (unknown file, NaN or out-of-range
   progress) to a trailing "unmatched" chapter

No annotation is ever dropped: matched + unmatched always equals the input.
"""

import logging
import math
import threading
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..core.errors import ExportError
from ..core.models import (
    UNMATCHED_CHAPTER_ID,
    Annotation,
    ChapterEntry,
    ChapterWithNotes,
)
from .chapter_tree import volume_key

logger = logging.getLogger(__name__)

UNMATCHED_CHAPTER_TITLE = "Unmatched notes"
PROGRESS_TOLERANCE = 1e-9


def normalize_progress(value) -> Optional[float]:
    """
    Clamp a ChapterProgress value into [0, 1].

    Values within PROGRESS_TOLERANCE of the range are clamped; anything else
    that is not a number in [0, 1] yields None.
    """
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return None

    if math.isnan(progress):
        return None
    if -PROGRESS_TOLERANCE <= progress < 0.0:
        return 0.0
    if 1.0 < progress <= 1.0 + PROGRESS_TOLERANCE:
        return 1.0
    if 0.0 <= progress <= 1.0:
        return progress
    return None


def reading_order_key(annotation: Annotation):
    """Sort key placing annotations in reading order, unplaceable ones last."""
    progress = normalize_progress(annotation.chapter_progress)
    return (
        progress is None,
        progress if progress is not None else 0.0,
        annotation.date_created,
        annotation.bookmark_id,
    )


def make_unmatched_chapter(book_id: str) -> ChapterEntry:
    return ChapterEntry(
        content_id=UNMATCHED_CHAPTER_ID,
        title=UNMATCHED_CHAPTER_TITLE,
        depth=1,
        sequence=-1,
        book_id=book_id,
        volume_id=None,
    )


@dataclass
class ReconciliationResult:
    """Chapters of one book with their annotations."""
    book_id: str
    chapters: List[ChapterWithNotes]
    unmatched: ChapterWithNotes
    total_annotations: int = 0

    @property
    def matched_count(self) -> int:
        return sum(len(chapter.notes) for chapter in self.chapters)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched.notes)

    def chapters_with_notes(self) -> List[ChapterWithNotes]:
        """Real chapters in reading order, then the unmatched chapter if it has notes."""
        if self.unmatched.notes:
            return self.chapters + [self.unmatched]
        return list(self.chapters)


@dataclass
class _VolumeBrackets:
    """Chapters sharing a file, with their evenly spread start positions."""
    bucket_indexes: List[int] = field(default_factory=list)
    starts: List[float] = field(default_factory=list)

    def finalize(self):
        count = len(self.bucket_indexes)
        self.starts = [j / count for j in range(count)]

    def locate(self, progress: float) -> int:
        position = bisect_right(self.starts, progress) - 1
        # Chapters sharing a start: the earliest one wins
        position = bisect_left(self.starts, self.starts[position])
        return self.bucket_indexes[position]


class AnnotationReconciler:
    """Assigns annotations to chapters by positional bracketing."""

    def __init__(self):
        self.processor_type = "annotation_reconciler"

    def reconcile(self, chapters: List[ChapterEntry], annotations: List[Annotation],
                  book_id: Optional[str] = None) -> ReconciliationResult:
        """
        Assign each annotation to exactly one chapter or to the unmatched bucket.

        Args:
            chapters: Chapters of the book in reading order
            annotations: Annotations of the book, in any order
            book_id: ContentID of the book (defaults to the chapters' book)

        Returns:
            ReconciliationResult whose chapters keep the input order and whose
            notes are sorted by ChapterProgress

        Raises:
            ExportError: If an annotation ended up in no chapter and not unmatched
        """
        if book_id is None:
            book_id = chapters[0].book_id if chapters else ''

        ordered_chapters = sorted(chapters, key=lambda c: c.sequence)
        buckets = [ChapterWithNotes(chapter=chapter) for chapter in ordered_chapters]
        unmatched = ChapterWithNotes(chapter=make_unmatched_chapter(book_id))

        by_volume: Dict[str, _VolumeBrackets] = {}
        whole_book = _VolumeBrackets()
        for index, chapter in enumerate(ordered_chapters):
            if chapter.volume_id is None:
                whole_book.bucket_indexes.append(index)
            else:
                by_volume.setdefault(chapter.volume_id, _VolumeBrackets()).bucket_indexes.append(index)

        for brackets in list(by_volume.values()) + [whole_book]:
            if brackets.bucket_indexes:
                brackets.finalize()

        for annotation in sorted(annotations, key=reading_order_key):
            progress = normalize_progress(annotation.chapter_progress)
            if progress is None:
                logger.debug(f"Unplaceable progress {annotation.chapter_progress!r} for {annotation.bookmark_id}")
                unmatched.notes.append(annotation)
                continue

            brackets = self._brackets_for(annotation.volume_id, by_volume, whole_book)
            if brackets is None:
                logger.debug(f"No chapter for volume {annotation.volume_id!r} ({annotation.bookmark_id})")
                unmatched.notes.append(annotation)
                continue

            buckets[brackets.locate(progress)].notes.append(annotation)

        result = ReconciliationResult(
            book_id=book_id,
            chapters=buckets,
            unmatched=unmatched,
            total_annotations=len(annotations),
        )

        if result.matched_count + result.unmatched_count != len(annotations):
            raise ExportError(
                f"Annotations lost while reconciling {book_id}",
                {'book_id': book_id, 'total': len(annotations),
                 'matched': result.matched_count, 'unmatched': result.unmatched_count}
            )

        if result.unmatched_count:
            logger.info(f"{result.unmatched_count} of {len(annotations)} annotations unmatched for {book_id}")
        logger.debug(f"Reconciled {len(annotations)} annotations into {len(buckets)} chapters for {book_id}")
        return result

    def _brackets_for(self, volume_id: str, by_volume: Dict[str, _VolumeBrackets],
                      whole_book: _VolumeBrackets) -> Optional[_VolumeBrackets]:
        if volume_id in by_volume:
            return by_volume[volume_id]
        key = volume_key(volume_id)
        if key in by_volume:
            return by_volume[key]
        if whole_book.bucket_indexes:
            return whole_book
        return None


class ReconciliationCache:
    """Per-export cache of reconciliation results, keyed by book id.

    Create one per export or view operation and let it go out of scope
    afterwards; it is never shared across operations.
    """

    def __init__(self):
        self._results: Dict[str, ReconciliationResult] = {}
        self._lock = threading.Lock()
        self.hits = 0

    def get_or_compute(self, book_id: str,
                       compute: Callable[[], ReconciliationResult]) -> ReconciliationResult:
        with self._lock:
            if book_id in self._results:
                self.hits += 1
                return self._results[book_id]

        result = compute()

        with self._lock:
            return self._results.setdefault(book_id, result)

    def __contains__(self, book_id: str) -> bool:
        return book_id in self._results

    def __len__(self) -> int:
        return len(self._results)
