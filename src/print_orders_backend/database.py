"""
SQLite database for orders, uploaded files and admin sessions.

This module provides the persistence layer of the service. One
OrderDatabase instance owns a single SQLite connection for its whole
lifetime: it is opened when the application starts and closed at shutdown.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional

from .utils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/xerox_orders.db")

ORDER_COLUMNS = (
    "order_id",
    "full_name",
    "phone_number",
    "print_type",
    "binding_color_type",
    "copies",
    "paper_size",
    "print_side",
    "selected_pages",
    "color_pages",
    "bw_pages",
    "special_instructions",
    "order_date",
    "status",
    "total_cost",
    "created_at",
)

FILE_COLUMNS = (
    "order_id",
    "original_name",
    "file_name",
    "file_path",
    "file_size",
    "file_type",
    "created_at",
)


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    return isoformat_utc(dt) if dt else None


def _deserialize_datetime(s: Optional[str]) -> Optional[datetime]:
    """Deserialize an ISO-8601 string (``Z`` suffix allowed) to an aware datetime."""
    if not s:
        return None
    parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _file_to_wire(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "name": row["original_name"],
        "size": row["file_size"],
        "type": row["file_type"],
        "path": row["file_name"],
    }


class OrderDatabase:
    """
    SQLite database for order, file and session persistence.

    Thread-safe: all access goes through one connection guarded by a lock,
    so FastAPI's threadpool workers never use the connection concurrently.

    Also implements the SessionStore protocol used by the session authority.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = RLock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "OrderDatabase":
        """Open the connection and create the schema if needed."""
        with self._lock:
            if self._conn is not None:
                return self
            _ensure_db_dir(self.db_path)
            conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._conn = conn
            self._init_db()
        logger.info(f"Database opened at {self.db_path}")
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
        logger.info("Database closed")

    def __enter__(self) -> "OrderDatabase":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Run a block of statements as one transaction."""
        with self._lock:
            if self._conn is None:
                raise RuntimeError("Database is not open")
            conn = self._conn
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS orders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_id TEXT UNIQUE NOT NULL,
                    full_name TEXT NOT NULL,
                    phone_number TEXT NOT NULL,
                    print_type TEXT NOT NULL,
                    binding_color_type TEXT,
                    copies INTEGER,
                    paper_size TEXT,
                    print_side TEXT,
                    selected_pages TEXT,
                    color_pages TEXT,
                    bw_pages TEXT,
                    special_instructions TEXT,
                    order_date TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    total_cost REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS order_files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_id TEXT NOT NULL,
                    original_name TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    file_path TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    file_type TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (order_id) REFERENCES orders (order_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS admin_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT UNIQUE NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_orders_created_at
                ON orders(created_at DESC)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_order_files_order_id
                ON order_files(order_id)
            """)

    # -- orders -------------------------------------------------------------

    def insert_order(self, order: Dict[str, Any], files: List[Dict[str, Any]]) -> None:
        """
        Insert an order and its file rows in a single transaction.

        Either the order and every file row are written, or nothing is.

        Args:
            order: Dictionary keyed by ORDER_COLUMNS (created_at optional)
            files: Dictionaries keyed by FILE_COLUMNS minus order_id/created_at

        Raises:
            sqlite3.IntegrityError: If the order_id already exists or a
                required column is missing
        """
        created_at = order.get("created_at") or _serialize_datetime(utcnow())
        order_values = [order.get(column) for column in ORDER_COLUMNS]
        order_values[ORDER_COLUMNS.index("created_at")] = created_at

        with self._get_connection() as conn:
            conn.execute(
                f"INSERT INTO orders ({', '.join(ORDER_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in ORDER_COLUMNS)})",
                order_values,
            )
            conn.executemany(
                f"INSERT INTO order_files ({', '.join(FILE_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in FILE_COLUMNS)})",
                [
                    (
                        order["order_id"],
                        file["original_name"],
                        file["file_name"],
                        str(file["file_path"]),
                        file["file_size"],
                        file["file_type"],
                        created_at,
                    )
                    for file in files
                ],
            )

    def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve an order with its files.

        Args:
            order_id: The public order identifier

        Returns:
            Order dictionary with a "files" list, or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM orders WHERE order_id = ?", (order_id,)
            ).fetchone()

            if not row:
                return None

            file_rows = conn.execute(
                "SELECT * FROM order_files WHERE order_id = ? ORDER BY id", (order_id,)
            ).fetchall()

            order = self._row_to_dict(row)
            order["files"] = [_file_to_wire(file_row) for file_row in file_rows]
            return order

    def list_orders(self) -> List[Dict[str, Any]]:
        """
        List all orders with their files, newest first.

        Files are aggregated per order inside SQLite. If an order's
        aggregated file list cannot be parsed, that order is returned with
        an empty file list instead of failing the whole listing.
        """
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT o.*,
                       (
                           SELECT json_group_array(json_object(
                               'name', f.original_name,
                               'size', f.file_size,
                               'type', f.file_type,
                               'path', f.file_name
                           ))
                           FROM order_files f
                           WHERE f.order_id = o.order_id
                       ) AS files
                FROM orders o
                ORDER BY o.created_at DESC, o.id DESC
            """).fetchall()

        orders = []
        for row in rows:
            order = self._row_to_dict(row)
            order["files"] = self._parse_files(order["order_id"], row["files"])
            orders.append(order)
        return orders

    def update_order_status(self, order_id: str, status: str) -> bool:
        """
        Overwrite the status of an order.

        Returns:
            True if a row changed, False if the order does not exist
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE orders SET status = ? WHERE order_id = ?", (status, order_id)
            )
            return cursor.rowcount > 0

    def list_file_paths(self) -> List[str]:
        """Storage paths of every uploaded file known to the database."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT file_path FROM order_files ORDER BY id").fetchall()
            return [row["file_path"] for row in rows]

    def delete_all_orders(self) -> None:
        """Delete every file row and every order row in one transaction."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM order_files")
            conn.execute("DELETE FROM orders")

    def count_orders(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0]

    def latest_order_millis(self) -> int:
        """Largest millisecond value among stored ``ORD-<millis>`` ids, 0 if none."""
        with self._get_connection() as conn:
            value = conn.execute(
                "SELECT MAX(CAST(substr(order_id, 5) AS INTEGER)) FROM orders "
                "WHERE order_id LIKE 'ORD-%'"
            ).fetchone()[0]
            return int(value or 0)

    def count_order_files(self, order_id: Optional[str] = None) -> int:
        with self._get_connection() as conn:
            if order_id is None:
                return conn.execute("SELECT COUNT(*) FROM order_files").fetchone()[0]
            return conn.execute(
                "SELECT COUNT(*) FROM order_files WHERE order_id = ?", (order_id,)
            ).fetchone()[0]

    # -- sessions -----------------------------------------------------------

    def create_session(self, session_id: str, created_at: datetime, expires_at: datetime) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO admin_sessions (session_id, created_at, expires_at) VALUES (?, ?, ?)",
                (session_id, _serialize_datetime(created_at), _serialize_datetime(expires_at)),
            )

    def get_session_expiry(self, session_id: str) -> Optional[datetime]:
        """Expiry of a session, or None if the token is unknown."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT expires_at FROM admin_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            return _deserialize_datetime(row["expires_at"]) if row else None

    # -- helpers ------------------------------------------------------------

    def _parse_files(self, order_id: str, raw: Optional[str]) -> List[Dict[str, Any]]:
        if not raw:
            return []
        try:
            files = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.error(f"Error parsing files for order {order_id}: {exc}")
            return []
        if not isinstance(files, list):
            logger.error(f"Unexpected file aggregation for order {order_id}: {raw!r}")
            return []
        return files

    def _row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        """Convert an orders row to an order dictionary."""
        return {column: row[column] for column in ORDER_COLUMNS}
