from __future__ import annotations

import asyncio
import copy
import logging
from time import perf_counter
from typing import TYPE_CHECKING, Any, Mapping

import httpx

from resource_query.core.config import settings
from resource_query.core.errors import QueryCancelled, UnexpectedResponseError

if TYPE_CHECKING:
    from resource_query.client.page_result import PageResult
    from resource_query.client.paginator import Paginator

_LOG = logging.getLogger("resource_query.client")

METHOD_OVERRIDE_FIELD = "_method"


def flatten_params(params: Any, prefix: str | None = None) -> dict[str, Any]:
    """Flatten nested filters into ``prefix[key][sub]`` query keys."""
    data: dict[str, Any] = {}
    if isinstance(params, Mapping):
        items = params.items()
    elif isinstance(params, (list, tuple)):
        items = enumerate(params)
    else:
        return {prefix: params} if prefix else {}
    for key, value in items:
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, (Mapping, list, tuple)):
            data.update(flatten_params(value, name))
        else:
            data[name] = value
    return data


def _wire_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "1" if value else "0"
    if value is None:
        return ""
    return value


class CancelSource:
    """Cooperative cancellation token shared by one or more remote calls."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Any = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Any = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class RemoteQuery:
    """Client mirror of the server's filter/order/page parameter contract."""

    def __init__(
        self,
        action: str = "",
        method: str = "get",
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: list[Any] | None = None,
        page: int = 1,
        page_size: int | None = None,
        filter_parameter: str | None = None,
        order_parameter: str | None = None,
        page_parameter: str | None = None,
        page_size_parameter: str | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.action = action or ""
        self.method = (method or "get").lower()
        self.filters: dict[str, Any] = dict(filters or {})
        self.order_by_tokens: list[Any] = list(order_by or [])
        self.page = page
        self.page_size = page_size
        if filter_parameter is None:
            filter_parameter = settings.filter_parameter
        self.filter_parameter = filter_parameter or None
        self.order_parameter = order_parameter or settings.RQ_ORDER_PARAMETER
        self.page_parameter = page_parameter or settings.RQ_PAGE_PARAMETER
        self.page_size_parameter = page_size_parameter or settings.RQ_PAGE_SIZE_PARAMETER
        self.client = client
        self.transport = transport
        self.timeout = settings.RQ_CLIENT_TIMEOUT_SECONDS if timeout is None else timeout

    def __repr__(self) -> str:
        return f"RemoteQuery({self.method.upper()} {self.action!r}, page={self.page})"

    # -- building --------------------------------------------------------

    def filter(self, name: str, value: Any) -> "RemoteQuery":
        self.filters[name] = value
        return self

    def add_filters(self, filters: Mapping[str, Any]) -> "RemoteQuery":
        self.filters.update(filters)
        return self

    def clear_filters(self) -> "RemoteQuery":
        self.filters = {}
        return self

    def order_by(self, field: str, direction: str | None = None) -> "RemoteQuery":
        self.order_by_tokens.append((field, direction or "asc"))
        return self

    def clear_order_by(self) -> "RemoteQuery":
        self.order_by_tokens = []
        return self

    def reset_query(self) -> "RemoteQuery":
        self.filters = {}
        self.order_by_tokens = []
        self.page = 1
        return self

    def clone(self) -> "RemoteQuery":
        other = copy.copy(self)
        other.filters = copy.deepcopy(self.filters)
        other.order_by_tokens = copy.deepcopy(self.order_by_tokens)
        return other

    # -- wire format -----------------------------------------------------

    def to_params(self) -> dict[str, Any]:
        data = flatten_params(self.filters, self.filter_parameter)
        if self.order_by_tokens:
            data[self.order_parameter] = ",".join(
                ":".join(str(part) for part in token) if isinstance(token, (list, tuple)) else str(token)
                for token in self.order_by_tokens
            )
        data[self.page_parameter] = self.page
        if self.page_size:
            data[self.page_size_parameter] = self.page_size
        return {key: _wire_value(value) for key, value in data.items()}

    def build_request(self) -> tuple[str, dict[str, Any]]:
        data = self.to_params()
        if self.method == "get":
            return "GET", {"params": data}
        data[METHOD_OVERRIDE_FIELD] = self.method.upper()
        return "POST", {"json": data}

    def to_wire(self) -> str:
        method, kwargs = self.build_request()
        data = kwargs.get("params") or kwargs.get("json") or {}
        return f"{method} {self.action}?{httpx.QueryParams(data)}"

    # -- execution -------------------------------------------------------

    @staticmethod
    def cancel_source() -> CancelSource:
        return CancelSource()

    @staticmethod
    def is_cancel(exc: BaseException) -> bool:
        return isinstance(exc, QueryCancelled)

    async def _send(self, **request_kwargs: Any) -> httpx.Response:
        method, kwargs = self.build_request()
        kwargs.update(request_kwargs)
        if self.client is not None:
            return await self.client.request(method, self.action, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.request(method, self.action, **kwargs)

    async def _send_cancellable(self, cancel: CancelSource, **request_kwargs: Any) -> httpx.Response:
        if cancel.cancelled:
            raise QueryCancelled(reason=cancel.reason)
        send_task = asyncio.ensure_future(self._send(**request_kwargs))
        cancel_task = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not send_task.done():
                send_task.cancel()
        if send_task in done and not send_task.cancelled():
            return send_task.result()
        raise QueryCancelled(reason=cancel.reason)

    async def get(self, cancel: CancelSource | None = None, **request_kwargs: Any) -> dict[str, Any]:
        """Execute the query and return the decoded payload."""
        started_at = perf_counter()
        if cancel is None:
            response = await self._send(**request_kwargs)
        else:
            response = await self._send_cancellable(cancel, **request_kwargs)
        duration_ms = (perf_counter() - started_at) * 1000.0
        _LOG.info(
            "%s %s page=%s status=%s duration_ms=%.2f",
            self.method.upper(),
            self.action,
            self.page,
            response.status_code,
            duration_ms,
        )
        response.raise_for_status()
        try:
            payload = response.json() if response.content else None
        except ValueError as exc:
            raise UnexpectedResponseError("Response body is not valid JSON", response=response) from exc
        if not payload or not isinstance(payload, dict):
            raise UnexpectedResponseError("Unexpected value encountered", response=response)
        return payload

    async def get_result(self, cancel: CancelSource | None = None, **request_kwargs: Any) -> "PageResult":
        from resource_query.client.page_result import PageResult

        payload = await self.get(cancel, **request_kwargs)
        return PageResult(payload, self.clone())

    def paginate(self, prefetch: bool = True) -> "Paginator":
        from resource_query.client.paginator import Paginator

        return Paginator(self.clone(), prefetch=prefetch)
