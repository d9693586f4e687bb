"""SQLite persistence of the last known status per monitor."""

import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path

from .models import MonitorCheckResult, MonitorStatus


class DatabaseError(Exception):
    """Raised when a database operation fails."""

    pass


# SQLite allows concurrent reads but only one writer at a time.
_db_lock = threading.Lock()


def init_db(db_path: str) -> sqlite3.Connection:
    """Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        Database connection with WAL mode enabled.

    Raises:
        DatabaseError: If database initialization fails.
    """
    try:
        parent_dir = Path(db_path).parent
        if not parent_dir.exists():
            parent_dir.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS monitor_status (
                monitor_id TEXT PRIMARY KEY,
                last_status INTEGER NOT NULL,
                message TEXT NOT NULL,
                ping INTEGER NOT NULL,
                certificate_days_remaining INTEGER,
                checked_at TEXT NOT NULL
            )
        """)
        conn.commit()
        return conn

    except (sqlite3.Error, OSError) as e:
        raise DatabaseError(f"Failed to initialize database: {e}") from e


class StatusStore:
    """Reads and writes the last status of each monitor."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def record_result(self, monitor_id: str, result: MonitorCheckResult, checked_at: datetime | None = None) -> None:
        """Store a check result as the monitor's last known status.

        Raises:
            DatabaseError: If the write fails.
        """
        checked_at = checked_at or datetime.now(UTC)
        try:
            with _db_lock:
                self._conn.execute(
                    """
                    INSERT INTO monitor_status
                        (monitor_id, last_status, message, ping, certificate_days_remaining, checked_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(monitor_id) DO UPDATE SET
                        last_status = excluded.last_status,
                        message = excluded.message,
                        ping = excluded.ping,
                        certificate_days_remaining = excluded.certificate_days_remaining,
                        checked_at = excluded.checked_at
                    """,
                    (
                        monitor_id,
                        int(result.status),
                        result.message,
                        result.ping,
                        result.certificate_days_remaining,
                        checked_at.isoformat(),
                    ),
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to record status for {monitor_id}: {e}") from e

    def get_last_status(self, monitor_id: str) -> MonitorStatus | None:
        """Return the last recorded status, or None if the monitor was never recorded.

        Raises:
            DatabaseError: If the read fails.
        """
        try:
            with _db_lock:
                row = self._conn.execute(
                    "SELECT last_status FROM monitor_status WHERE monitor_id = ?",
                    (monitor_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read status for {monitor_id}: {e}") from e

        if row is None:
            return None
        return MonitorStatus(row["last_status"])
