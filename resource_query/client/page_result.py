from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Literal

from resource_query.schemas.query import PageMeta

if TYPE_CHECKING:
    from resource_query.client.remote_query import CancelSource, RemoteQuery


class PageResult:
    """One decoded page plus navigation to its neighbours."""

    def __init__(self, payload: dict[str, Any], query: "RemoteQuery"):
        self.response = payload
        self._query = query
        self.data: list[Any] = list(payload.get("data") or [])
        self.applied_filters: list[str] = list(payload.get("applied_filters") or [])
        self.order_by: list[Any] = [tuple(item) for item in payload.get("order_by") or []]
        meta = payload.get("meta")
        self.meta: PageMeta | None = PageMeta.model_validate(meta) if isinstance(meta, dict) else None

    def __repr__(self) -> str:
        return f"PageResult(items={len(self.data)}, current_page={self.current_page}, last_page={self.last_page})"

    def __iter__(self):
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def current_page(self) -> int | None:
        return self.meta.current_page if self.meta else None

    @property
    def last_page(self) -> int | None:
        return self.meta.last_page if self.meta else None

    @property
    def per_page(self) -> int | None:
        return self.meta.per_page if self.meta else None

    @property
    def total(self) -> int | None:
        return self.meta.total if self.meta else None

    def has_prev_page(self) -> bool:
        return self.current_page is not None and self.current_page > 1

    def has_next_page(self) -> bool:
        return self.current_page is not None and self.last_page is not None and self.current_page < self.last_page

    def _fetch_page(self, page: int, cancel: "CancelSource | None") -> Awaitable["PageResult"]:
        query = self._query.clone()
        query.page = page
        return query.get_result(cancel)

    def fetch_prev_page(self, cancel: "CancelSource | None" = None) -> Awaitable["PageResult"] | Literal[False]:
        if not self.has_prev_page():
            return False
        return self._fetch_page(self.current_page - 1, cancel)

    def fetch_next_page(self, cancel: "CancelSource | None" = None) -> Awaitable["PageResult"] | Literal[False]:
        if not self.has_next_page():
            return False
        return self._fetch_page(self.current_page + 1, cancel)
