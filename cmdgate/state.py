"""
Clock-in ledger backed by SQLite.

One row per calendar date that has been marked done. A missing row means
"not done"; marking is monotonic (false -> true only), so concurrent writers
for the same date cannot disagree.
"""

from __future__ import annotations

import calendar
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import InvalidDate

DATE_FORMAT = "%Y-%m-%d"

_WRITE_LOCK = threading.RLock()


def parse_date(value: object) -> date:
    """Parse a strict ``YYYY-MM-DD`` string, raising InvalidDate otherwise."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or len(value) != 10:
        raise InvalidDate(value)
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise InvalidDate(value) from exc


def format_date(day: date) -> str:
    # strftime("%Y") does not zero-pad years below 1000 on every platform.
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def local_today() -> date:
    return datetime.now().date()


class ClockStore:
    """Persistent mapping of calendar date -> done flag."""

    def __init__(self, db_path: Path, today: Optional[Callable[[], date]] = None):
        self.db_path = Path(db_path)
        self.today = today or local_today
        self._ready = False

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_db(self) -> None:
        # Created lazily on first access, then kept for the process lifetime.
        if self._ready:
            return
        with _WRITE_LOCK:
            if self._ready:
                return
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._conn() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS clock_log (
                        day TEXT PRIMARY KEY,
                        done INTEGER NOT NULL DEFAULT 1,
                        marked_at TEXT NOT NULL
                    )
                    """
                )
            self._ready = True

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Clear every entry."""
        self._ensure_db()
        with _WRITE_LOCK, self._conn() as conn:
            conn.execute("DELETE FROM clock_log")

    def mark_done(self, day: object) -> str:
        """Mark a date done. Idempotent; returns the normalised date string."""
        key = format_date(parse_date(day))
        self._ensure_db()
        with _WRITE_LOCK, self._conn() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO clock_log (day, done, marked_at) VALUES (?, 1, ?)",
                (key, datetime.now(timezone.utc).isoformat()),
            )
        return key

    def mark_today(self) -> str:
        return self.mark_done(self.today())

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_done(self, day: object) -> bool:
        """True when the date has been marked; False for unset or invalid dates."""
        try:
            key = format_date(parse_date(day))
        except InvalidDate:
            return False
        self._ensure_db()
        with self._conn() as conn:
            row = conn.execute("SELECT done FROM clock_log WHERE day = ?", (key,)).fetchone()
        return bool(row and row[0])

    def is_done_today(self) -> bool:
        return self.is_done(self.today())

    def done_dates(self) -> List[str]:
        self._ensure_db()
        with self._conn() as conn:
            rows = conn.execute("SELECT day FROM clock_log WHERE done = 1 ORDER BY day").fetchall()
        return [row[0] for row in rows]

    def month_view(self, year: int, month: int) -> Dict[int, bool]:
        """Done flag for every day of a month, keyed 1..days_in_month."""
        if not 1 <= month <= 12:
            raise ValueError(f"month must be 1..12, got {month}")
        last_day = calendar.monthrange(year, month)[1]
        prefix = f"{year:04d}-{month:02d}-"
        self._ensure_db()
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT day FROM clock_log WHERE done = 1 AND day LIKE ?",
                (prefix + "%",),
            ).fetchall()
        marked = {int(row[0][-2:]) for row in rows}
        return {day: day in marked for day in range(1, last_day + 1)}

    def consecutive_streak(self, as_of: Optional[object] = None) -> int:
        """Count back from ``as_of`` (default today) while each day is done."""
        cursor = parse_date(as_of) if as_of is not None else self.today()
        marked = set(self.done_dates())
        count = 0
        while format_date(cursor) in marked:
            count += 1
            cursor -= timedelta(days=1)
        return count
