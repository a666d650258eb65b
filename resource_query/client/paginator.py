from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from resource_query.schemas.query import PageMeta

if TYPE_CHECKING:
    from resource_query.client.remote_query import CancelSource, RemoteQuery

_LOG = logging.getLogger("resource_query.paginator")


class Paginator:
    """Accumulates successive pages of one query into ``data``.

    ``load_more()`` must be called from a running event loop. While a page is
    in flight every call returns the same task; once the last page has been
    read it resolves straight away with the items collected so far. A failed
    prefetch that nobody awaited is raised by the next ``load_more()``.
    """

    def __init__(self, query: "RemoteQuery", prefetch: bool = False):
        self.data: list[Any] = []
        self.loading = False
        self.last_meta: PageMeta | None = None
        self._query = query
        self._fetched = False
        self._pending: asyncio.Future | None = None
        self._prefetch_task: asyncio.Future | None = None
        self._prefetch_error: BaseException | None = None
        if prefetch:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                _LOG.debug("No running event loop, prefetch deferred to the first load_more()")
            else:
                self._prefetch_task = self.load_more()
                self._prefetch_task.add_done_callback(self._prefetch_done)

    def _prefetch_done(self, task: asyncio.Future) -> None:
        if task is not self._prefetch_task:
            # handed to a load_more() caller, who sees the outcome
            return
        self._prefetch_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._prefetch_error = exc
            _LOG.warning("Prefetch of %r failed: %s", self._query, exc)

    @property
    def current_page(self) -> int | None:
        return self.last_meta.current_page if self.last_meta else None

    @property
    def last_page(self) -> int | None:
        return self.last_meta.last_page if self.last_meta else None

    def has_more(self) -> bool:
        if not self._fetched:
            return True
        meta = self.last_meta
        if meta is None or meta.current_page is None or meta.last_page is None:
            return False
        return meta.current_page < meta.last_page

    def _next_page(self) -> int:
        if self.current_page is None:
            return self._query.page
        return self.current_page + 1

    def _load_data(self, payload: dict[str, Any]) -> None:
        items = payload.get("data")
        if items:
            self.data.extend(items)
        meta = payload.get("meta")
        self.last_meta = PageMeta.model_validate(meta) if isinstance(meta, dict) else None
        self._fetched = True

    async def _fetch(self, page: int, cancel: "CancelSource | None") -> list[Any]:
        try:
            query = self._query.clone()
            query.page = page
            payload = await query.get(cancel)
            self._load_data(payload)
            return self.data
        finally:
            self.loading = False
            self._pending = None

    def load_more(self, cancel: "CancelSource | None" = None) -> asyncio.Future:
        if self.loading and self._pending is not None:
            if self._pending is self._prefetch_task:
                self._prefetch_task = None
            return self._pending
        loop = asyncio.get_running_loop()
        if self._prefetch_task is not None and self._prefetch_task.done():
            self._prefetch_done(self._prefetch_task)
        if self._prefetch_error is not None:
            failed = loop.create_future()
            failed.set_exception(self._prefetch_error)
            self._prefetch_error = None
            return failed
        if not self.has_more():
            done = loop.create_future()
            done.set_result(self.data)
            return done
        self.loading = True
        self._pending = loop.create_task(self._fetch(self._next_page(), cancel))
        return self._pending
