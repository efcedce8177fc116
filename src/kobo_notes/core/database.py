"""
Read-only access to a Kobo e-reader database image.

A KoboReader.sqlite file is loaded into an in-memory SQLite connection and
checked for the two tables the exporter relies on (content and Bookmark)
before any query runs.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, List, Set, Union

from .errors import DatabaseReadError, NotKoboDatabaseError, ValidationError

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"
REQUIRED_TABLES = ('content', 'bookmark')
SUPPORTED_EXTENSIONS = ('.sqlite', '.db')

# File format read/write version bytes of the SQLite header
WAL_VERSION_OFFSETS = (18, 19)
WAL_FORMAT = 2
ROLLBACK_FORMAT = 1


class KoboDatabase:
    """An opened, read-only Kobo database.

    The connection is shared by every per-book query of an export. SQLite
    connections are not safe for concurrent use, so every query holds a lock.
    """

    def __init__(self, connection: sqlite3.Connection, source: str = "<memory>"):
        """
        Wrap an already opened connection and validate its schema.

        Args:
            connection: SQLite connection holding the Kobo database
            source: Human-readable origin of the data, used in log messages

        Raises:
            NotKoboDatabaseError: If the content or Bookmark table is missing
        """
        self.connection = connection
        self.connection.row_factory = sqlite3.Row
        self.source = source
        self._lock = threading.Lock()
        self._columns: Dict[str, Set[str]] = {}

        try:
            self.connection.execute("PRAGMA query_only = ON")
            self.tables = self._load_table_names()
        except sqlite3.DatabaseError as e:
            self.connection.close()
            raise NotKoboDatabaseError(
                f"{source} is not a SQLite database: {e}",
                {'source': source}
            ) from e

        missing = [name for name in REQUIRED_TABLES if name not in self.tables]
        if missing:
            self.connection.close()
            raise NotKoboDatabaseError(
                f"{source} does not contain the Kobo tables: missing {', '.join(missing)}",
                {'source': source, 'missing_tables': missing}
            )

        logger.info(f"Kobo database opened: {source} ({len(self.tables)} tables)")

    def _load_table_names(self) -> Set[str]:
        rows = self.connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        ).fetchall()
        return {row[0].lower() for row in rows}

    def execute(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        """
        Run a read query and return all rows.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            List of rows with access by column name

        Raises:
            DatabaseReadError: If SQLite fails to run the query
        """
        with self._lock:
            try:
                return self.connection.execute(query, params).fetchall()
            except sqlite3.Error as e:
                raise DatabaseReadError(
                    f"Query failed on {self.source}: {e}",
                    {'source': self.source, 'query': ' '.join(query.split())[:200]}
                ) from e

    def has_column(self, table: str, column: str) -> bool:
        """Check whether a table has a column (older firmware lacks some)."""
        key = table.lower()
        if key not in self._columns:
            rows = self.execute(f"PRAGMA table_info({table})")
            self._columns[key] = {row['name'].lower() for row in rows}
        return column.lower() in self._columns[key]

    def close(self):
        with self._lock:
            self.connection.close()
        logger.debug(f"Kobo database closed: {self.source}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def open_database(data: Union[bytes, bytearray, memoryview], source: str = "<memory>") -> KoboDatabase:
    """
    Open a Kobo database from the raw bytes of KoboReader.sqlite.

    Args:
        data: Contents of the database file
        source: Human-readable origin of the data

    Returns:
        A validated KoboDatabase

    Raises:
        NotKoboDatabaseError: If the bytes are not a Kobo database image
    """
    data = bytearray(data)
    if not data.startswith(SQLITE_HEADER):
        raise NotKoboDatabaseError(
            f"{source} is not a SQLite database (bad header)",
            {'source': source, 'size_bytes': len(data)}
        )

    # An in-memory image cannot use WAL; switch the header back to rollback journal
    if len(data) > WAL_VERSION_OFFSETS[1] and any(data[i] == WAL_FORMAT for i in WAL_VERSION_OFFSETS):
        for offset in WAL_VERSION_OFFSETS:
            data[offset] = ROLLBACK_FORMAT
        logger.debug(f"{source} is in WAL mode, opening it with a rollback journal")

    connection = sqlite3.connect(":memory:", check_same_thread=False)
    try:
        connection.deserialize(bytes(data))
    except sqlite3.DatabaseError as e:
        connection.close()
        raise NotKoboDatabaseError(
            f"{source} could not be loaded: {e}",
            {'source': source, 'size_bytes': len(data)}
        ) from e

    return KoboDatabase(connection, source)


def validate_database_file(path: Union[str, Path], max_size_mb: int = 100) -> Path:
    """
    Check that a path looks like a Kobo database file before reading it.

    Args:
        path: Path to the database file
        max_size_mb: Largest accepted file size in megabytes

    Returns:
        The path as a Path object

    Raises:
        ValidationError: If the file is missing, has the wrong extension or is too large
    """
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"Database file not found: {path}", {'path': str(path)})

    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported database file extension: {path.suffix or '(none)'}",
            {'path': str(path), 'supported': list(SUPPORTED_EXTENSIONS)}
        )

    size = path.stat().st_size
    if size > max_size_mb * 1024 * 1024:
        raise ValidationError(
            f"Database file is larger than {max_size_mb} MB: {path}",
            {'path': str(path), 'size_bytes': size}
        )

    return path


def open_database_file(path: Union[str, Path], max_size_mb: int = 100) -> KoboDatabase:
    """Validate, read and open a KoboReader.sqlite file."""
    path = validate_database_file(path, max_size_mb)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DatabaseReadError(f"Could not read {path}: {e}", {'path': str(path)}) from e

    logger.debug(f"Read {len(data)} bytes from {path}")
    return open_database(data, source=str(path))
