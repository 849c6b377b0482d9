"""SQLite connection pool shared by the request handlers."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator, List

logger = logging.getLogger(__name__)

class SQLiteConnectionPool:
    """Thread-safe SQLite connection pool.

    Handlers run store calls on worker threads, so connections are opened with
    ``check_same_thread=False`` and handed to one thread at a time. With the
    default ``max_connections=1`` every statement goes through the same
    connection.
    """

    def __init__(self, database: str, max_connections: int = 1):
        self.database = database
        self.max_connections = max_connections
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._lock = threading.Lock()
        self._created_connections = 0
        self._all: List[sqlite3.Connection] = []

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with proper settings."""
        conn = sqlite3.connect(self.database, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        logger.info("Connected to the SQLite database at %s", self.database)
        return conn

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection from the pool or create a new one if needed."""
        connection = None
        try:
            connection = self._pool.get(block=False)
        except Empty:
            with self._lock:
                if self._created_connections < self.max_connections:
                    connection = self._create_connection()
                    self._created_connections += 1
                    self._all.append(connection)
                    logger.debug(f"Created new connection (total: {self._created_connections})")
            if connection is None:
                # If we've hit the limit, wait for a connection
                connection = self._pool.get(block=True)

        try:
            yield connection
        finally:
            try:
                # Drop anything the caller left uncommitted
                connection.rollback()
                self._pool.put(connection)
            except Exception as e:
                logger.error(f"Error returning connection to pool: {e}")
                # If we can't return it to the pool, close it
                try:
                    connection.close()
                    with self._lock:
                        self._created_connections -= 1
                        self._all.remove(connection)
                except Exception:
                    pass

    def close_all(self) -> None:
        with self._lock:
            for conn in self._all:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection: {e}")
            self._all.clear()
            self._created_connections = 0
            self._pool = Queue(maxsize=self.max_connections)
