from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from fastapi.responses import JSONResponse

from resource_query.api.params import extract_query_params
from resource_query.api.serialization import row_to_dict
from resource_query.core.config import settings
from resource_query.schemas.query import PageMeta, QueryParams, ResourcePayload
from resource_query.services.compiler import CompiledQuery, Pagination, QueryCompiler
from resource_query.services.filters import FilterRule, FilterSet
from resource_query.services.ordering import OrderRule, OrderSet

_LOG = logging.getLogger("resource_query.resource")

# pagination not given: use settings.default_pagination
_DEFAULT: Any = object()


@dataclass
class ResourceResult:
    rows: list[Any]
    compiled: CompiledQuery
    meta: PageMeta | None = None


class ResourceQuery(ABC):
    """Declarative filters/ordering for one resource listing.

    Subclasses declare their rules in ``init()`` and return a fresh query target
    from ``get_query()``::

        class ArticleQuery(ResourceQuery):
            def init(self):
                self.filter("status", "=", "state")
                self.order_by("created_at").default_order("desc")
                self.ordering.set_default_order(("created_at", "desc"))

            def get_query(self):
                return SqlAlchemyTarget(self.db.query(Article), Article)
    """

    def __init__(self, params: QueryParams | None = None, *, pagination: Pagination = _DEFAULT):
        self.params = params
        self.compiler = QueryCompiler(settings.default_pagination if pagination is _DEFAULT else pagination)
        self.serializer: Callable[[Any], Any] = row_to_dict
        self.init()

    def init(self) -> None:
        """Declare filters and ordering here."""

    @abstractmethod
    def get_query(self) -> Any:
        ...

    @property
    def filters(self) -> FilterSet:
        return self.compiler.filters

    @property
    def ordering(self) -> OrderSet:
        return self.compiler.ordering

    @property
    def pagination(self) -> Pagination:
        return self.compiler.pagination

    def filter(self, name: str, condition=None, field=None) -> FilterRule:
        return self.compiler.filter(name, condition, field)

    def order_by(self, name: str, field=None, direction: str | None = None) -> OrderRule:
        return self.compiler.order_by(name, field, direction)

    def set_pagination(self, pagination: Pagination) -> "ResourceQuery":
        self.compiler.set_pagination(pagination)
        return self

    def remove_filters(self) -> "ResourceQuery":
        self.filters.remove_all()
        return self

    def use_resource(self, serializer: Callable[[Any], Any] | None) -> "ResourceQuery":
        self.serializer = serializer or row_to_dict
        return self

    def _params(self, params: QueryParams | None) -> QueryParams:
        p = params or self.params or QueryParams()
        if p.raw is None:
            return p
        return extract_query_params(
            p.raw,
            method=p.method,
            filter_parameter=self.filters.filter_parameter,
            order_parameter=self.ordering.order_parameter,
            page_parameter=self.compiler.page_parameter,
            page_size_parameter=self.compiler.page_size_parameter,
        )

    def query(self, params: QueryParams | None = None, opts: dict[str, Any] | None = None) -> Any:
        """Build the target with filters and ordering applied, without pagination."""
        p = self._params(params)
        compiled = self.compiler.compile(self.get_query(), p.filters, p.order_by, p.page, p.per_page, paginate=False)
        if opts is not None:
            opts.update(compiled.meta())
        return compiled.target

    def compile(self, params: QueryParams | None = None) -> CompiledQuery:
        p = self._params(params)
        return self.compiler.compile(self.get_query(), p.filters, p.order_by, p.page, p.per_page)

    def get(self, params: QueryParams | None = None) -> ResourceResult:
        compiled = self.compile(params)
        target = compiled.target
        meta = None
        if compiled.is_paginated:
            page_meta = target.page_meta() if hasattr(target, "page_meta") else None
            if page_meta:
                meta = PageMeta(**page_meta)
        rows = list(target.all())
        _LOG.info(
            "%s rows=%s page=%s per_page=%s filters=%s",
            type(self).__name__,
            len(rows),
            compiled.page,
            compiled.per_page,
            compiled.applied_filters,
        )
        return ResourceResult(rows=rows, compiled=compiled, meta=meta)

    def to_payload(self, params: QueryParams | None = None) -> dict[str, Any]:
        result = self.get(params)
        payload = ResourcePayload(
            data=[self.serializer(row) for row in result.rows],
            meta=result.meta,
            applied_filters=result.compiled.applied_filters,
            order_by=result.compiled.order_by,
        ).model_dump(mode="json")
        if result.meta is None:
            del payload["meta"]
        return payload

    def to_response(self, params: QueryParams | None = None) -> JSONResponse:
        return JSONResponse(self.to_payload(params))

    def to_sql(self, params: QueryParams | None = None) -> str:
        return self.query(params).to_sql()

    def __str__(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)


class ResourceQueryBuilder(ResourceQuery):
    """In-place variant: rules are declared on the instance, targets come from a factory."""

    def __init__(
        self,
        target_factory: Callable[[], Any],
        params: QueryParams | None = None,
        *,
        pagination: Pagination = _DEFAULT,
    ):
        self._target_factory = target_factory
        super().__init__(params, pagination=pagination)

    def get_query(self) -> Any:
        return self._target_factory()
