from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from resource_query.core.config import settings
from resource_query.core.errors import RuleConfigurationError
from resource_query.services.filters import FilterRule, FilterSet
from resource_query.services.ordering import OrderRule, OrderSet

_LOG = logging.getLogger("resource_query.compiler")

Pagination = int | Sequence[int] | None


@dataclass
class CompiledQuery:
    target: Any
    applied_filters: list[str] = field(default_factory=list)
    order_by: list[tuple[str, str]] = field(default_factory=list)
    page: int = 1
    per_page: int | None = None

    @property
    def is_paginated(self) -> bool:
        return self.per_page is not None

    def meta(self) -> dict[str, Any]:
        return {
            "applied_filters": list(self.applied_filters),
            "order_by": [list(item) for item in self.order_by],
        }


def _check_pagination(pagination: Any) -> Pagination:
    if pagination is None:
        return None
    if isinstance(pagination, bool):
        raise RuleConfigurationError("Page size must be an integer, a list of integers or None")
    if isinstance(pagination, int):
        if pagination <= 0:
            raise RuleConfigurationError(f"Page size must be positive, got {pagination}")
        return pagination
    if isinstance(pagination, (list, tuple)):
        sizes = list(pagination)
        if not sizes or any(isinstance(v, bool) or not isinstance(v, int) or v <= 0 for v in sizes):
            raise RuleConfigurationError(f"Allowed page sizes must be positive integers, got {pagination!r}")
        return tuple(sizes)
    raise RuleConfigurationError(f"Unsupported pagination setting: {pagination!r}")


def _coerce_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def normalize_order_input(raw: Any) -> list[Any]:
    """Split ``"a:asc,-b"`` style input into tokens; lists pass through token by token."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    elif not isinstance(raw, (list, tuple)):
        return []
    tokens: list[Any] = []
    for item in raw:
        if isinstance(item, str):
            text = item.strip()
            if not text:
                continue
            parts = text.split(":")
            tokens.append(parts if len(parts) > 1 else parts[0])
        else:
            tokens.append(item)
    return tokens


class QueryCompiler:
    """Applies declared filter and ordering rules plus pagination to a query target."""

    def __init__(
        self,
        pagination: Pagination = None,
        *,
        filter_parameter: str | None = None,
        order_parameter: str | None = None,
        page_parameter: str | None = None,
        page_size_parameter: str | None = None,
    ):
        if filter_parameter is None:
            filter_parameter = settings.filter_parameter
        # "" reads filters from the top level of the request
        self.filters = FilterSet(filter_parameter or None)
        self.ordering = OrderSet(order_parameter or settings.RQ_ORDER_PARAMETER)
        self.page_parameter = page_parameter or settings.RQ_PAGE_PARAMETER
        self.page_size_parameter = page_size_parameter or settings.RQ_PAGE_SIZE_PARAMETER
        self.pagination = _check_pagination(pagination)

    def filter(
        self,
        name: str,
        condition: str | Callable[..., Any] | None = None,
        field: str | Callable[..., Any] | None = None,
    ) -> FilterRule:
        return self.filters.add(name, condition, field)

    def order_by(self, name: str, field: str | Callable[..., Any] | None = None, direction: str | None = None) -> OrderRule:
        return self.ordering.add(name, field, direction)

    def set_pagination(self, pagination: Pagination) -> "QueryCompiler":
        self.pagination = _check_pagination(pagination)
        return self

    def page_size(self, requested: Any = None) -> int | None:
        pagination = self.pagination
        if pagination is None or isinstance(pagination, int):
            return pagination
        size = _coerce_int(requested)
        return size if size in pagination else pagination[0]

    def apply_filters(self, target: Any, filters: Mapping[str, Any] | None, applied: list[str] | None = None) -> list[str]:
        return self.filters.apply_conditions(target, filters or {}, applied)

    def apply_ordering(
        self,
        target: Any,
        order: Any,
        applied: list[tuple[str, str]] | None = None,
    ) -> list[tuple[str, str]]:
        return self.ordering.apply_conditions(target, normalize_order_input(order), applied)

    def compile(
        self,
        target: Any,
        filters: Mapping[str, Any] | None = None,
        order: str | Iterable[Any] | None = None,
        page: Any = 1,
        per_page: Any = None,
        *,
        paginate: bool = True,
    ) -> CompiledQuery:
        applied_filters = self.apply_filters(target, filters)
        order_by = self.apply_ordering(target, order)

        page_number = _coerce_int(page) or 1
        if page_number < 1:
            page_number = 1
        size = self.page_size(per_page) if paginate else None
        if size is not None:
            target.paginate(page_number, size)
        _LOG.debug(
            "Compiled query filters=%s order_by=%s page=%s per_page=%s",
            applied_filters,
            order_by,
            page_number,
            size,
        )
        return CompiledQuery(
            target=target,
            applied_filters=applied_filters,
            order_by=order_by,
            page=page_number,
            per_page=size,
        )
