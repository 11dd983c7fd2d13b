"""
Capability handlers and the registry the dispatcher routes through.

A handler is a plain function ``(args, ctx) -> CapabilityResult``. It reads
or writes the clock store through ``ctx`` and describes UI notifications as
``Notice`` values instead of sending them; the dispatcher performs them in
its own traced phase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import GatewaySettings
from .errors import InvalidDate, MissingArgument, UnknownCapability
from .models import OutputValue
from .notifier import Notice
from .state import ClockStore

CLOCK_IN_TODAY = "clock_in_today"
QUERY_CLOCK_IN = "query_clock_in"
MAKE_UP_CLOCK_IN = "make_up_clock_in"


@dataclass
class CapabilityResult:
    message: str
    output: List[OutputValue] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)


@dataclass
class HandlerContext:
    store: ClockStore
    clock_in_writes_state: bool = False

    def today(self) -> date:
        return self.store.today()

    @classmethod
    def from_settings(cls, store: ClockStore, settings: Optional[GatewaySettings]) -> "HandlerContext":
        writes = settings.clock_in_writes_state if settings is not None else False
        return cls(store=store, clock_in_writes_state=writes)


Handler = Callable[[Mapping[str, Any], HandlerContext], CapabilityResult]


def _require_date(args: Mapping[str, Any]) -> str:
    value = args.get("date")
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingArgument("date")
    if not isinstance(value, str):
        raise InvalidDate(value)
    return value.strip()


def clock_in_today(args: Mapping[str, Any], ctx: HandlerContext) -> CapabilityResult:
    """Ask the UI to perform its primary action (the clock-in button)."""
    result = CapabilityResult(message="Clock in successfully!", notices=[Notice.primary_action()])
    if ctx.clock_in_writes_state:
        day = ctx.store.mark_done(ctx.today())
        result.output = [OutputValue.of("date", day), OutputValue.of("success", True)]
    return result


def query_clock_in(args: Mapping[str, Any], ctx: HandlerContext) -> CapabilityResult:
    day = _require_date(args)
    done = ctx.store.is_done(day)
    return CapabilityResult(
        message="Has clocked in." if done else "Hasn't clocked in.",
        output=[OutputValue.of("date", day), OutputValue.of("has_clocked_in", done)],
    )


def make_up_clock_in(args: Mapping[str, Any], ctx: HandlerContext) -> CapabilityResult:
    day = ctx.store.mark_done(_require_date(args))
    return CapabilityResult(
        message=f"Make up clock-in successful for {day}",
        output=[OutputValue.of("date", day), OutputValue.of("success", True)],
        notices=[Notice.backfill_done(day)],
    )


class CapabilityRegistry:
    """Maps capability ids to handlers."""

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}

    def register(self, capability_id: str, handler: Handler) -> None:
        if not capability_id:
            raise ValueError("capability id must not be empty")
        if capability_id in self._handlers:
            raise ValueError(f"capability already registered: {capability_id}")
        self._handlers[capability_id] = handler

    def resolve(self, capability_id: str) -> Handler:
        try:
            return self._handlers[capability_id]
        except KeyError:
            raise UnknownCapability(capability_id) from None

    def ids(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, capability_id: object) -> bool:
        return capability_id in self._handlers


def default_registry() -> CapabilityRegistry:
    registry = CapabilityRegistry()
    registry.register(CLOCK_IN_TODAY, clock_in_today)
    registry.register(QUERY_CLOCK_IN, query_clock_in)
    registry.register(MAKE_UP_CLOCK_IN, make_up_clock_in)
    return registry
