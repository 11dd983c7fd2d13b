"""
Process wiring.

Builds the process-lifetime objects (clock store, trace logger, notifier,
dispatcher, worker pool) once and hands the same instances to every binding.
Nothing here is a module-level singleton; tests build their own ``Gateway``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from .capabilities import CapabilityRegistry
from .config import GatewaySettings, load_settings
from .dispatcher import Dispatcher
from .notifier import BroadcastNotifier, Notifier
from .state import ClockStore
from .trace import TraceLogger
from .transports.extras import ExtrasBinding
from .transports.messenger import DEFAULT_ADDRESS, MessageRouter, MessengerBinding
from .transports.oneway import OneWayBinding
from .transports.sync import SyncBinding

logger = logging.getLogger(__name__)


class Gateway:
    def __init__(
        self,
        settings: GatewaySettings,
        notifier: Optional[Notifier] = None,
        registry: Optional[CapabilityRegistry] = None,
        store: Optional[ClockStore] = None,
        tracer: Optional[TraceLogger] = None,
    ):
        self.settings = settings
        self.notifier = notifier if notifier is not None else BroadcastNotifier()
        self.store = store or ClockStore(settings.state_path)
        self.tracer = tracer or TraceLogger(
            settings.trace_path, source=settings.trace_source, fsync=settings.trace_fsync
        )
        self.dispatcher = Dispatcher(
            store=self.store,
            tracer=self.tracer,
            notifier=self.notifier,
            registry=registry,
            settings=settings,
        )
        self.executor = ThreadPoolExecutor(
            max_workers=settings.worker_threads, thread_name_prefix="cmdgate"
        )
        self.router = MessageRouter()
        self.oneway = OneWayBinding(self.dispatcher, self.executor)
        self.extras = ExtrasBinding(self.dispatcher, self.executor)
        self.sync = SyncBinding(self.dispatcher, self.executor, timeout_s=settings.sync_timeout_s)
        self.messenger = MessengerBinding(self.dispatcher, self.router, address=DEFAULT_ADDRESS)
        self._closed = False

    @classmethod
    def from_env(cls, config_path: Optional[Path] = None, notifier: Optional[Notifier] = None) -> "Gateway":
        return cls(load_settings(config_path), notifier=notifier)

    def start(self) -> "Gateway":
        self.messenger.start()
        logger.info(
            "gateway started: state=%s trace=%s workers=%d",
            self.settings.state_path, self.settings.trace_path, self.settings.worker_threads,
        )
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.messenger.stop()
        self.executor.shutdown(wait=True)
        logger.info("gateway stopped")

    def __enter__(self) -> "Gateway":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()
