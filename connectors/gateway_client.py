from __future__ import annotations

import uuid
from typing import Any, Optional

import httpx

from cmdgate.models import UNTRACKED_RUN, Request, Response, decode_response, encode_request
from cmdgate.trace import TraceLogger, now_ns

STEP_SEND = "send"
STEP_RECEIVE = "receive"


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text if text else response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail")
        if detail is None:
            return str(body)
        return str(detail)
    return str(body)


def _raise_for_status(response: httpx.Response) -> None:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        request = exc.request
        method = request.method if request else "REQUEST"
        url = request.url.path if request else str(response.url)
        detail = _extract_error_detail(response)
        raise RuntimeError(f"{method} {url} -> {response.status_code}: {detail}") from exc


def _build_request(capability_id: str, args: Optional[dict[str, Any]], request_id: Optional[str], run_index: int) -> Request:
    if not capability_id:
        raise ValueError("capability_id must be non-empty")
    return Request(
        request_id=request_id or uuid.uuid4().hex,
        capability_id=capability_id,
        args=dict(args or {}),
        run_index=run_index,
    )


class GatewayClient:
    """
    Client for the gateway HTTP surface (`cmdgate/api_server.py`).

    When given a TraceLogger, the client marks ``send`` just before the call
    and ``receive`` as soon as the reply is in hand, so controller-side marks
    can be joined with the gateway's own spans on ``request_id``.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 30.0,
        tracer: Optional[TraceLogger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout_s)
        self._owns_client = client is None
        self.tracer = tracer

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "GatewayClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _mark(self, request: Request, step: str, success: bool = True, error: Optional[str] = None) -> None:
        if self.tracer is None:
            return
        self.tracer.mark(
            request.request_id, request.capability_id, request.run_index, step, now_ns(),
            success=success, error=error,
        )

    def health_check(self) -> dict[str, Any]:
        """Check gateway health endpoint."""
        r = self._client.get("/health")
        _raise_for_status(r)
        return r.json()

    # --- Bindings ---
    def invoke(
        self,
        capability_id: str,
        args: Optional[dict[str, Any]] = None,
        *,
        request_id: Optional[str] = None,
        run_index: int = UNTRACKED_RUN,
    ) -> Response:
        request = _build_request(capability_id, args, request_id, run_index)
        self._mark(request, STEP_SEND)
        try:
            r = self._client.post(
                "/v1/invoke",
                content=encode_request(request),
                headers={"Content-Type": "application/json"},
            )
            _raise_for_status(r)
        except (httpx.HTTPError, RuntimeError) as exc:
            self._mark(request, STEP_RECEIVE, success=False, error=str(exc))
            raise
        self._mark(request, STEP_RECEIVE)
        return decode_response(r.text)

    def signal(
        self,
        capability_id: str,
        args: Optional[dict[str, Any]] = None,
        *,
        run_index: int = UNTRACKED_RUN,
    ) -> dict[str, Any]:
        if not capability_id:
            raise ValueError("capability_id must be non-empty")
        r = self._client.post(
            f"/v1/signal/{capability_id}",
            json=args or {},
            params={"run_index": run_index},
        )
        _raise_for_status(r)
        return r.json()

    # --- Clock store queries ---
    def clock_state(self, day: str) -> dict[str, Any]:
        r = self._client.get(f"/v1/state/{day}")
        _raise_for_status(r)
        return r.json()

    def month_view(self, year: int, month: int) -> dict[str, Any]:
        r = self._client.get(f"/v1/state/month/{year}/{month}")
        _raise_for_status(r)
        return r.json()

    def streak(self, as_of: Optional[str] = None) -> dict[str, Any]:
        params = {"as_of": as_of} if as_of else None
        r = self._client.get("/v1/state/streak", params=params)
        _raise_for_status(r)
        return r.json()

    def waterfall(self, request_id: str) -> dict[str, Any]:
        r = self._client.get(f"/v1/trace/{request_id}")
        _raise_for_status(r)
        return r.json()


class GatewayAsyncClient:
    """Async variant of GatewayClient (useful for asyncio-based controllers)."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_s)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def health_check(self) -> dict[str, Any]:
        r = await self._client.get("/health")
        _raise_for_status(r)
        return r.json()

    async def invoke(
        self,
        capability_id: str,
        args: Optional[dict[str, Any]] = None,
        *,
        request_id: Optional[str] = None,
        run_index: int = UNTRACKED_RUN,
    ) -> Response:
        request = _build_request(capability_id, args, request_id, run_index)
        r = await self._client.post(
            "/v1/invoke",
            content=encode_request(request),
            headers={"Content-Type": "application/json"},
        )
        _raise_for_status(r)
        return decode_response(r.text)

    async def signal(
        self,
        capability_id: str,
        args: Optional[dict[str, Any]] = None,
        *,
        run_index: int = UNTRACKED_RUN,
    ) -> dict[str, Any]:
        if not capability_id:
            raise ValueError("capability_id must be non-empty")
        r = await self._client.post(
            f"/v1/signal/{capability_id}",
            json=args or {},
            params={"run_index": run_index},
        )
        _raise_for_status(r)
        return r.json()
