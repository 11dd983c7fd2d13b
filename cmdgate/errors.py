"""
Gateway error taxonomy.

Every protocol-level fault is a ``GatewayError``. The dispatcher is the one
place these (and any other exception raised by a handler) are turned into a
``failure`` Response; nothing here should escape a transport binding.
"""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base class for faults that become part of the protocol."""

    code = "gateway_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedPayload(GatewayError):
    """The request envelope could not be decoded."""

    code = "malformed_payload"

    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message)
        # Best-effort id recovered from a partially valid envelope.
        self.request_id = request_id


class MissingRequestId(GatewayError):
    code = "missing_request_id"

    def __init__(self, message: str = "request id is missing or empty"):
        super().__init__(message)


class UnknownCapability(GatewayError):
    code = "unknown_capability"

    def __init__(self, capability_id: str):
        super().__init__(f"Unknown capability ID: {capability_id}")
        self.capability_id = capability_id


class MissingArgument(GatewayError):
    code = "missing_argument"

    def __init__(self, argument: str):
        super().__init__(f"Missing required argument: {argument}")
        self.argument = argument


class InvalidDate(GatewayError):
    code = "invalid_date"

    def __init__(self, value: object):
        super().__init__(f"Invalid date {value!r}, expected YYYY-MM-DD")
        self.value = value


class ReplyDeliveryFailed(GatewayError):
    """The reply channel refused or lost the encoded Response."""

    code = "reply_delivery_failed"


class HandleCanceled(ReplyDeliveryFailed):
    """A callback handle was invalidated before the reply was sent."""

    code = "handle_canceled"


class ChannelClosed(ReplyDeliveryFailed):
    """A reply mailbox is closed or no longer registered."""

    code = "channel_closed"
