"""
Library listing helpers: ordering and tabular export of book summaries.
"""

import logging
from typing import List

import pandas as pd

from .models import BookSummary

logger = logging.getLogger(__name__)

LIBRARY_COLUMNS = [
    'content_id', 'title', 'subtitle', 'author', 'publisher', 'isbn',
    'release_date', 'series', 'series_number', 'rating', 'read_percent',
    'last_read', 'file_size', 'source', 'highlights', 'notes',
]


def sort_library(summaries: List[BookSummary]) -> List[BookSummary]:
    """
    Order books for display.

    Books with at least one highlight or note come first; within each group
    the most recently read book comes first and never-opened books come last.
    """
    def sort_key(summary: BookSummary):
        last_read = summary.book.last_read
        recency = -last_read.timestamp() if last_read else float('inf')
        return (summary.total_annotations == 0, recency)

    return sorted(summaries, key=sort_key)


def summaries_to_dataframe(summaries: List[BookSummary]) -> pd.DataFrame:
    """Convert book summaries to a DataFrame, one row per book."""
    return pd.DataFrame([s.to_dict() for s in summaries], columns=LIBRARY_COLUMNS)


def export_summaries_to_csv(summaries: List[BookSummary], output_path: str) -> int:
    """
    Write book summaries to a CSV file.

    Args:
        summaries: Books to export
        output_path: Path of the CSV file to create

    Returns:
        Number of rows written
    """
    df = summaries_to_dataframe(summaries)
    try:
        df.to_csv(output_path, index=False)
    except Exception as e:
        logger.error(f"Error exporting library to CSV: {e}")
        raise

    logger.info(f"Exported {len(df)} books to {output_path}")
    return len(df)
