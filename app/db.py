# app/db.py

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple
import logging

from app.errors import StoreError


logger = logging.getLogger(__name__)


@dataclass
class GameObservation:
    game_id: str  # LAD-<espn event id>
    won_home_game: bool
    summary: str  # "on June 1, 2024 against the San Francisco Giants"
    observed_at: str  # ISO string


@dataclass
class GameRecord:
    game_id: str
    won_home_game: bool
    summary: str
    last_updated: str  # ISO string

    last_home_win_at: Optional[str] = None
    notification_sent: bool = False
    notifications_sent_count: int = 0


@dataclass
class Subscriber:
    email: str
    subscribed_at: str
    active: bool


@dataclass
class EmailLog:
    game_id: str
    subscriber_email: str
    sent_at: str
    status: str  # sent, failed
    error_message: Optional[str] = None


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS game_data (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id        TEXT NOT NULL UNIQUE,
    did_win        INTEGER NOT NULL,
    game_info      TEXT NOT NULL,
    last_updated   TEXT NOT NULL,
    last_home_win  TEXT,
    email_sent     INTEGER NOT NULL DEFAULT 0,
    emails_sent    INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subscribers (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    email          TEXT NOT NULL UNIQUE,
    subscribed_at  TEXT NOT NULL,
    active         INTEGER NOT NULL DEFAULT 1,
    created_at     TEXT NOT NULL
);

-- append-only audit of every delivery attempt
CREATE TABLE IF NOT EXISTS email_logs (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id           TEXT NOT NULL,
    subscriber_email  TEXT NOT NULL,
    sent_at           TEXT NOT NULL,
    status            TEXT NOT NULL CHECK (status IN ('sent', 'failed')),
    error_message     TEXT,
    created_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_email_logs_game ON email_logs(game_id);
"""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def connect(db_path: Path) -> sqlite3.Connection:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # FastAPI runs sync routes in a threadpool, so the connection may cross threads
    conn = sqlite3.connect(db_path, timeout=10, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def _row_to_record(row: sqlite3.Row) -> GameRecord:
    return GameRecord(
        game_id=row["game_id"],
        won_home_game=bool(row["did_win"]),
        summary=row["game_info"] or "",
        last_updated=row["last_updated"],
        last_home_win_at=row["last_home_win"],
        notification_sent=bool(row["email_sent"]),
        notifications_sent_count=int(row["emails_sent"] or 0),
    )


class GameStore:
    """
    SQLite-backed persistence for the last processed game, the subscriber list
    and the email audit log.

    Only the most recently created game_data row is authoritative; older rows
    are kept as history.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @classmethod
    def open(cls, db_path: Path) -> "GameStore":
        store = cls(connect(db_path))
        store.ensure_schema()
        return store

    def close(self):
        self.conn.close()

    def ensure_schema(self):
        try:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"schema setup failed: {e}") from e

    # -- game_data -----------------------------------------------------------

    def get_most_recent(self) -> Optional[GameRecord]:
        try:
            row = self.conn.execute(
                "SELECT * FROM game_data ORDER BY id DESC LIMIT 1;"
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"read game_data failed: {e}") from e
        return _row_to_record(row) if row else None

    def insert_if_new(self, record: GameRecord) -> bool:
        """
        Insert the record unless a row with the same game_id already exists.

        Returns True when this call created the row. SQLite serializes writers,
        so of two overlapping ticks only one sees True.
        """
        try:
            cur = self.conn.execute(
                """
                INSERT INTO game_data (
                    game_id, did_win, game_info, last_updated,
                    last_home_win, email_sent, emails_sent, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(game_id) DO NOTHING;
                """,
                (
                    record.game_id,
                    int(record.won_home_game),
                    record.summary,
                    record.last_updated,
                    record.last_home_win_at,
                    int(record.notification_sent),
                    record.notifications_sent_count,
                    utc_now_iso(),
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"insert game {record.game_id} failed: {e}") from e
        return cur.rowcount == 1

    def upsert(self, record: GameRecord) -> GameRecord:
        """Insert or overwrite the row keyed by game_id."""
        try:
            self.conn.execute(
                """
                INSERT INTO game_data (
                    game_id, did_win, game_info, last_updated,
                    last_home_win, email_sent, emails_sent, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(game_id) DO UPDATE SET
                    did_win = excluded.did_win,
                    game_info = excluded.game_info,
                    last_updated = excluded.last_updated,
                    last_home_win = excluded.last_home_win,
                    email_sent = excluded.email_sent,
                    emails_sent = excluded.emails_sent;
                """,
                (
                    record.game_id,
                    int(record.won_home_game),
                    record.summary,
                    record.last_updated,
                    record.last_home_win_at,
                    int(record.notification_sent),
                    record.notifications_sent_count,
                    utc_now_iso(),
                ),
            )
            self.conn.commit()
            row = self.conn.execute(
                "SELECT * FROM game_data WHERE game_id = ?;",
                (record.game_id,),
            ).fetchone()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"upsert game {record.game_id} failed: {e}") from e
        return _row_to_record(row)

    # -- subscribers ---------------------------------------------------------

    def active_subscriber_emails(self) -> List[str]:
        try:
            rows = self.conn.execute(
                "SELECT email FROM subscribers WHERE active = 1 ORDER BY id;"
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"read subscribers failed: {e}") from e
        return [r["email"] for r in rows]

    def all_subscribers(self) -> List[Subscriber]:
        try:
            rows = self.conn.execute(
                "SELECT email, subscribed_at, active FROM subscribers ORDER BY id DESC;"
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"read subscribers failed: {e}") from e
        return [Subscriber(r["email"], r["subscribed_at"], bool(r["active"])) for r in rows]

    def add_subscriber(self, email: str) -> Tuple[bool, str]:
        """
        Add a new subscriber or reactivate one that opted out.
        Returns (success, message) for display.
        """
        email = email.strip().lower()
        now = utc_now_iso()
        try:
            row = self.conn.execute(
                "SELECT active FROM subscribers WHERE email = ?;", (email,)
            ).fetchone()

            if row and row["active"]:
                return False, "Email already subscribed"

            if row:
                self.conn.execute(
                    "UPDATE subscribers SET active = 1, subscribed_at = ? WHERE email = ?;",
                    (now, email),
                )
                self.conn.commit()
                return True, "Successfully reactivated subscription!"

            self.conn.execute(
                """
                INSERT INTO subscribers (email, subscribed_at, active, created_at)
                VALUES (?, ?, 1, ?);
                """,
                (email, now, now),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"add subscriber failed: {e}") from e

        return True, "Successfully subscribed! You'll get notified when the team wins at home."

    def remove_subscriber(self, email: str) -> Tuple[bool, str]:
        # soft delete, keeps email_logs linkage intact
        email = email.strip().lower()
        try:
            cur = self.conn.execute(
                "UPDATE subscribers SET active = 0 WHERE email = ? AND active = 1;",
                (email,),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"remove subscriber failed: {e}") from e

        if cur.rowcount == 0:
            return False, "Email is not subscribed"
        return True, "Successfully unsubscribed"

    # -- email_logs ----------------------------------------------------------

    def log_email(self, game_id: str, email: str, status: str, error_message: Optional[str] = None):
        now = utc_now_iso()
        try:
            self.conn.execute(
                """
                INSERT INTO email_logs
                (game_id, subscriber_email, sent_at, status, error_message, created_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (game_id, email, now, status, error_message, now),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"log email failed: {e}") from e

    def email_logs_for_game(self, game_id: str) -> List[EmailLog]:
        try:
            rows = self.conn.execute(
                """
                SELECT game_id, subscriber_email, sent_at, status, error_message
                FROM email_logs
                WHERE game_id = ?
                ORDER BY id;
                """,
                (game_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"read email_logs failed: {e}") from e
        return [
            EmailLog(r["game_id"], r["subscriber_email"], r["sent_at"], r["status"], r["error_message"])
            for r in rows
        ]
