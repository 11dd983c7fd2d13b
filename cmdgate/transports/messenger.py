"""
Message + reply-channel binding.

Callers post ``Message(what=MSG_COMMAND, payload=..., reply_to=<address>)`` to
the gateway's addressed inbox. A worker thread drains the inbox in arrival
order and posts ``Message(what=MSG_RESULT, payload=<encoded Response>)`` to the
caller's reply address. Reply addresses come and go; a reply to a missing or
closed mailbox is traced as a delivery fault and dropped.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..dispatcher import Dispatcher
from ..errors import ChannelClosed
from .base import DiscardSink

logger = logging.getLogger(__name__)

TRANSPORT = "messenger"

MSG_COMMAND = 1
MSG_RESULT = 2

DEFAULT_ADDRESS = "cmdgate.gateway"


@dataclass(frozen=True)
class Message:
    what: int
    payload: Any = None
    reply_to: Optional[str] = None
    # Lets a caller pair replies with requests even when the payload had no id.
    correlation_id: Optional[str] = None


class Mailbox:
    """A FIFO inbox that refuses messages once closed."""

    def __init__(self, address: str):
        self.address = address
        self._queue: "queue.Queue[Message]" = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, message: Message) -> None:
        if self._closed.is_set():
            raise ChannelClosed(f"mailbox {self.address} is closed")
        self._queue.put(message)

    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._closed.set()


class MessageRouter:
    """Address book of live mailboxes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._boxes: Dict[str, Mailbox] = {}

    def register(self, address: str) -> Mailbox:
        with self._lock:
            if address in self._boxes:
                raise ValueError(f"address already registered: {address}")
            box = Mailbox(address)
            self._boxes[address] = box
            return box

    def unregister(self, address: str) -> None:
        with self._lock:
            box = self._boxes.pop(address, None)
        if box is not None:
            box.close()

    def post(self, address: str, message: Message) -> None:
        with self._lock:
            box = self._boxes.get(address)
        if box is None:
            raise ChannelClosed(f"no mailbox registered at {address}")
        box.put(message)


class MailboxReplySink:
    def __init__(self, router: MessageRouter, address: str, correlation_id: Optional[str]):
        self.router = router
        self.address = address
        self.correlation_id = correlation_id

    def send(self, encoded: str) -> None:
        self.router.post(
            self.address,
            Message(MSG_RESULT, payload=encoded, correlation_id=self.correlation_id),
        )


class MessengerBinding:
    def __init__(
        self,
        dispatcher: Dispatcher,
        router: MessageRouter,
        address: str = DEFAULT_ADDRESS,
        poll_interval_s: float = 0.1,
    ):
        self.dispatcher = dispatcher
        self.router = router
        self.address = address
        self.poll_interval_s = poll_interval_s
        self._inbox: Optional[Mailbox] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._inbox = self.router.register(self.address)
        self._thread = threading.Thread(
            target=self._run, args=(self._inbox,), name=f"messenger:{self.address}", daemon=True
        )
        self._thread.start()
        logger.info("messenger binding listening at %s", self.address)

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self.router.unregister(self.address)
        self._thread.join(timeout)
        self._thread = None
        self._inbox = None

    def _run(self, inbox: Mailbox) -> None:
        while not self._stop.is_set():
            message = inbox.get(timeout=self.poll_interval_s)
            if message is None:
                continue
            try:
                self.handle(message)
            except Exception:
                logger.exception("messenger worker failed on message what=%s", message.what)

    def handle(self, message: Message) -> None:
        if message.what != MSG_COMMAND:
            logger.warning("ignoring message what=%s at %s", message.what, self.address)
            return
        if message.reply_to:
            sink = MailboxReplySink(self.router, message.reply_to, message.correlation_id)
        else:
            logger.info("command message without reply_to at %s; reply will be discarded", self.address)
            sink = DiscardSink()
        self.dispatcher.dispatch(
            message.payload,
            sink,
            fallback_request_id=message.correlation_id,
            correlated=bool(message.reply_to),
            transport=TRANSPORT,
        )
