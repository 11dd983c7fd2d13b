"""
UI notifier interface.

The gateway never talks to a UI framework directly. Handlers describe the
notifications they want as ``Notice`` values; the dispatcher hands them to a
``Notifier``. Two notifications exist: "simulate primary action" and
"backfill completed for date D".
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class NoticeKind(str, Enum):
    PRIMARY_ACTION = "primary_action"
    BACKFILL_DONE = "backfill_done"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    date: Optional[str] = None

    @classmethod
    def primary_action(cls) -> "Notice":
        return cls(NoticeKind.PRIMARY_ACTION)

    @classmethod
    def backfill_done(cls, date: str) -> "Notice":
        return cls(NoticeKind.BACKFILL_DONE, date)


class Notifier(Protocol):
    def notify_primary_action(self) -> None: ...

    def notify_backfill_done(self, date: str) -> None: ...


def deliver_notice(notifier: Notifier, notice: Notice) -> None:
    if notice.kind is NoticeKind.PRIMARY_ACTION:
        notifier.notify_primary_action()
    elif notice.kind is NoticeKind.BACKFILL_DONE:
        notifier.notify_backfill_done(notice.date or "")
    else:  # pragma: no cover
        raise ValueError(f"unknown notice kind: {notice.kind}")


class NullNotifier:
    def notify_primary_action(self) -> None:
        return None

    def notify_backfill_done(self, date: str) -> None:
        return None


class RecordingNotifier:
    """Keeps every notification in memory, in arrival order."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[Tuple[str, Optional[str]]] = []

    def notify_primary_action(self) -> None:
        with self._lock:
            self.events.append((NoticeKind.PRIMARY_ACTION.value, None))

    def notify_backfill_done(self, date: str) -> None:
        with self._lock:
            self.events.append((NoticeKind.BACKFILL_DONE.value, date))


Listener = Callable[[Notice], None]


class BroadcastNotifier:
    """Fans each notification out to subscribed listeners.

    A listener that raises is logged and skipped; the others still run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _broadcast(self, notice: Notice) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(notice)
            except Exception:
                logger.exception("notice listener failed for %s", notice.kind.value)

    def notify_primary_action(self) -> None:
        self._broadcast(Notice.primary_action())

    def notify_backfill_done(self, date: str) -> None:
        self._broadcast(Notice.backfill_done(date))
