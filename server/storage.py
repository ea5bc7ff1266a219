import sqlite3
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional

from common.constants import SQLITE
from common.errors import StoreUnavailable
from similarity_engine.store import SparseMatrixStore, StoreBatch

# SQLite caps the number of bound parameters per statement
_IN_CHUNK = 500


class SqliteMatrixStore(SparseMatrixStore):
    """SparseMatrixStore on a sqlite file. Safe to share between threads and processes."""

    def __init__(self, db_path: str, timeout: float = SQLITE["timeout_seconds"]):
        self.db_path = db_path
        self.timeout = timeout
        if db_path == ":memory:":
            # every call opens its own connection, so an in-memory database would vanish between calls
            raise ValueError("SqliteMatrixStore needs a file path; use InMemoryMatrixStore for in-process storage")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cells (
                    matrix TEXT NOT NULL,
                    row_id TEXT NOT NULL,
                    col_id TEXT NOT NULL,
                    value INTEGER NOT NULL,
                    PRIMARY KEY (matrix, row_id, col_id)
                ) WITHOUT ROWID
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scalars (
                    key TEXT PRIMARY KEY,
                    value INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ordered_lists (
                    key TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    member TEXT NOT NULL,
                    score REAL NOT NULL,
                    PRIMARY KEY (key, position)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS set_members (
                    key TEXT NOT NULL,
                    member TEXT NOT NULL,
                    PRIMARY KEY (key, member)
                ) WITHOUT ROWID
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS leases (
                    key TEXT PRIMARY KEY,
                    token TEXT NOT NULL,
                    expires_at REAL NOT NULL
                )
            """)

    def _connect(self):
        try:
            return sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open {self.db_path}: {e}") from e

    @contextmanager
    def _transaction(self):
        """Write transaction. BEGIN IMMEDIATE takes the write lock up front so read-modify-write is atomic."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StoreUnavailable(f"sqlite write failed on {self.db_path}: {e}") from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _reader(self):
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite read failed on {self.db_path}: {e}") from e
        finally:
            conn.close()

    # --- cells -----------------------------------------------------------

    def get_cell(self, matrix, i, j):
        with self._reader() as conn:
            row = conn.execute(
                "SELECT value FROM cells WHERE matrix = ? AND row_id = ? AND col_id = ?", (matrix, i, j)
            ).fetchone()
        return row[0] if row else 0

    @staticmethod
    def _increment_cell(conn, matrix, i, j, delta):
        conn.execute(
            """
            INSERT INTO cells (matrix, row_id, col_id, value) VALUES (?, ?, ?, ?)
            ON CONFLICT (matrix, row_id, col_id) DO UPDATE SET value = value + excluded.value
            """,
            (matrix, i, j, delta),
        )
        value = conn.execute(
            "SELECT value FROM cells WHERE matrix = ? AND row_id = ? AND col_id = ?", (matrix, i, j)
        ).fetchone()[0]
        if value == 0:
            conn.execute("DELETE FROM cells WHERE matrix = ? AND row_id = ? AND col_id = ?", (matrix, i, j))
        return value

    def increment_cell(self, matrix, i, j, delta=1):
        with self._transaction() as conn:
            return self._increment_cell(conn, matrix, i, j, delta)

    def delete_cell(self, matrix, i, j):
        with self._transaction() as conn:
            conn.execute("DELETE FROM cells WHERE matrix = ? AND row_id = ? AND col_id = ?", (matrix, i, j))

    def get_row(self, matrix, i):
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT col_id, value FROM cells WHERE matrix = ? AND row_id = ? AND value != 0 ORDER BY col_id",
                (matrix, i),
            ).fetchall()
        return [(col_id, value) for col_id, value in rows]

    def delete_row(self, matrix, i):
        with self._transaction() as conn:
            conn.execute("DELETE FROM cells WHERE matrix = ? AND row_id = ?", (matrix, i))

    # --- scalars ---------------------------------------------------------

    def get_scalar(self, key):
        with self._reader() as conn:
            row = conn.execute("SELECT value FROM scalars WHERE key = ?", (key,)).fetchone()
        return row[0] if row else 0

    def get_scalars(self, keys):
        values = {}
        with self._reader() as conn:
            for start in range(0, len(keys), _IN_CHUNK):
                chunk = keys[start : start + _IN_CHUNK]
                placeholders = ",".join("?" * len(chunk))
                for key, value in conn.execute(
                    f"SELECT key, value FROM scalars WHERE key IN ({placeholders})", chunk
                ):
                    values[key] = value
        return [values.get(key, 0) for key in keys]

    @staticmethod
    def _increment_scalar(conn, key, delta):
        conn.execute(
            """
            INSERT INTO scalars (key, value) VALUES (?, ?)
            ON CONFLICT (key) DO UPDATE SET value = value + excluded.value
            """,
            (key, delta),
        )

    def increment_scalar(self, key, delta=1):
        with self._transaction() as conn:
            self._increment_scalar(conn, key, delta)
            return conn.execute("SELECT value FROM scalars WHERE key = ?", (key,)).fetchone()[0]

    def delete_scalar(self, key):
        with self._transaction() as conn:
            conn.execute("DELETE FROM scalars WHERE key = ?", (key,))

    # --- ordered lists ---------------------------------------------------

    def get_ordered_list(self, key):
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT member, score FROM ordered_lists WHERE key = ? ORDER BY position", (key,)
            ).fetchall()
        return [(member, score) for member, score in rows]

    def set_ordered_list(self, key, entries):
        rows = [(key, position, str(member), float(score)) for position, (member, score) in enumerate(entries)]
        with self._transaction() as conn:
            conn.execute("DELETE FROM ordered_lists WHERE key = ?", (key,))
            conn.executemany(
                "INSERT INTO ordered_lists (key, position, member, score) VALUES (?, ?, ?, ?)", rows
            )

    def remove_member(self, key, member):
        with self._transaction() as conn:
            conn.execute("DELETE FROM ordered_lists WHERE key = ? AND member = ?", (key, member))

    def delete_ordered_list(self, key):
        with self._transaction() as conn:
            conn.execute("DELETE FROM ordered_lists WHERE key = ?", (key,))

    # --- unordered sets --------------------------------------------------

    def add_members(self, key, members: Iterable[str]):
        rows = [(key, m) for m in members]
        with self._transaction() as conn:
            conn.executemany("INSERT OR IGNORE INTO set_members (key, member) VALUES (?, ?)", rows)

    def remove_members(self, key, members: Iterable[str]):
        rows = [(key, m) for m in members]
        with self._transaction() as conn:
            conn.executemany("DELETE FROM set_members WHERE key = ? AND member = ?", rows)

    def get_members(self, key):
        with self._reader() as conn:
            rows = conn.execute("SELECT member FROM set_members WHERE key = ?", (key,)).fetchall()
        return {r[0] for r in rows}

    def is_member(self, key, member):
        with self._reader() as conn:
            row = conn.execute(
                "SELECT 1 FROM set_members WHERE key = ? AND member = ?", (key, member)
            ).fetchone()
        return row is not None

    # --- batches ---------------------------------------------------------

    def apply_batch(self, batch: StoreBatch):
        with self._transaction() as conn:
            for (matrix, i, j), delta in batch.cell_increments.items():
                self._increment_cell(conn, matrix, i, j, delta)
            for key, delta in batch.scalar_increments.items():
                self._increment_scalar(conn, key, delta)
            for key, members in batch.set_additions.items():
                conn.executemany(
                    "INSERT OR IGNORE INTO set_members (key, member) VALUES (?, ?)", [(key, m) for m in members]
                )

    # --- leases ----------------------------------------------------------

    def acquire_lease(self, key, ttl_seconds) -> Optional[str]:
        token = uuid.uuid4().hex
        now = time.time()
        with self._transaction() as conn:
            conn.execute("DELETE FROM leases WHERE key = ? AND expires_at <= ?", (key, now))
            cursor = conn.execute(
                "INSERT OR IGNORE INTO leases (key, token, expires_at) VALUES (?, ?, ?)",
                (key, token, now + ttl_seconds),
            )
            acquired = cursor.rowcount == 1
        return token if acquired else None

    def release_lease(self, key, token):
        with self._transaction() as conn:
            conn.execute("DELETE FROM leases WHERE key = ? AND token = ?", (key, token))

    def lease_active(self, key):
        with self._reader() as conn:
            row = conn.execute(
                "SELECT 1 FROM leases WHERE key = ? AND expires_at > ?", (key, time.time())
            ).fetchone()
        return row is not None

    def count_rows(self, table: str) -> int:
        """Row count of one backing table, for health and debugging output."""
        if table not in ("cells", "scalars", "ordered_lists", "set_members", "leases"):
            raise ValueError(f"Unknown table: {table}")
        with self._reader() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
