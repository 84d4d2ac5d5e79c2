"""
SQLite Storage Layer.
Append-only trade log: one row per execution attempt, whatever the outcome.
All monetary values stored as TEXT to preserve Decimal precision.
"""

from __future__ import annotations
import sqlite3
from decimal import Decimal
from datetime import datetime, timezone
from typing import List, Optional
from exchange.models import Direction, TradeLogRecord
import logging

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 50


def _as_utc(ts: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


class Database:
    """SQLite database manager with typed accessors."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Initialize database connection and create tables."""
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        logger.info(f"[DB] Connected to {self.db_path}")

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        assert self._conn is not None, "Database not connected"
        return self._conn

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS trade_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                symbol TEXT NOT NULL,
                direction TEXT NOT NULL,
                size TEXT NOT NULL,
                entry_price TEXT NOT NULL,
                status TEXT NOT NULL,
                exchange_order_id TEXT,
                error_message TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_trade_log_timestamp ON trade_log(timestamp);
            CREATE INDEX IF NOT EXISTS idx_trade_log_status ON trade_log(status);
        """)
        self.conn.commit()

    # ==================== Trade Log ====================

    def append(self, record: TradeLogRecord) -> int:
        """Insert one log record and return its ID. Records are never updated."""
        if not record.symbol or not record.status:
            raise ValueError("Missing required fields for trade log entry.")

        cursor = self.conn.execute(
            """INSERT INTO trade_log (timestamp, symbol, direction, size, entry_price,
               status, exchange_order_id, error_message)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                _as_utc(record.timestamp).isoformat(),
                record.symbol,
                record.direction.value,
                str(record.size),
                str(record.entry_price),
                record.status,
                record.exchange_order_id or None,
                record.error_message or None,
            ),
        )
        self.conn.commit()
        record_id = cursor.lastrowid
        logger.info(f"[DB] Trade log #{record_id}: {record.symbol} {record.direction.value} -> {record.status}")
        return record_id

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[TradeLogRecord]:
        """Newest first."""
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            logger.warning(f"[DB] Invalid limit {limit!r}. Using default of {DEFAULT_RECENT_LIMIT}.")
            limit = DEFAULT_RECENT_LIMIT

        rows = self.conn.execute(
            "SELECT * FROM trade_log ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS n FROM trade_log").fetchone()
        return row["n"]

    # ==================== Row Converters ====================

    def _row_to_record(self, row) -> TradeLogRecord:
        return TradeLogRecord(
            id=row["id"],
            timestamp=_as_utc(datetime.fromisoformat(row["timestamp"])),
            symbol=row["symbol"],
            direction=Direction(row["direction"]),
            size=Decimal(row["size"]),
            entry_price=Decimal(row["entry_price"]),
            status=row["status"],
            exchange_order_id=row["exchange_order_id"],
            error_message=row["error_message"],
        )
