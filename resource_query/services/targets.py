from __future__ import annotations

import logging
import math
from typing import Any, Protocol, Sequence

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

_LOG = logging.getLogger("resource_query.targets")


class QueryTarget(Protocol):
    """Mutable query collaborator that filter and ordering rules write into."""

    def where(self, field: str, operator: str, value: Any) -> Any:
        ...

    def where_in(self, field: str, values: Sequence[Any]) -> Any:
        ...

    def order_by(self, field: str, direction: str) -> Any:
        ...

    def paginate(self, page: int, per_page: int) -> Any:
        ...


class SqlAlchemyTarget:
    """Wraps an ORM ``Query`` so that rules can mutate it in place."""

    def __init__(self, query: Query, model):
        self.query = query
        self.model = model
        self.page: int | None = None
        self.per_page: int | None = None

    def _column(self, field: str):
        col = getattr(self.model, field, None)
        if col is None:
            _LOG.debug("Unknown column %r on %s, clause skipped", field, getattr(self.model, "__name__", self.model))
        return col

    def filter(self, *criteria) -> "SqlAlchemyTarget":
        self.query = self.query.filter(*criteria)
        return self

    def where(self, field: str, operator: str, value: Any) -> "SqlAlchemyTarget":
        col = self._column(field)
        if col is None:
            return self
        if operator == "=":
            return self.filter(col == value)
        if operator in {"!=", "<>"}:
            return self.filter(col != value)
        if operator == ">":
            return self.filter(col > value)
        if operator == "<":
            return self.filter(col < value)
        if operator == ">=":
            return self.filter(col >= value)
        if operator == "<=":
            return self.filter(col <= value)
        if operator == "like":
            return self.filter(col.like(value))
        _LOG.warning("Unsupported comparison operator %r for column %r", operator, field)
        return self

    def where_in(self, field: str, values: Sequence[Any]) -> "SqlAlchemyTarget":
        col = self._column(field)
        if col is None:
            return self
        return self.filter(col.in_(list(values)))

    def order_by(self, field: str, direction: str) -> "SqlAlchemyTarget":
        col = self._column(field)
        if col is None:
            return self
        self.query = self.query.order_by(desc(col) if direction == "desc" else asc(col))
        return self

    def paginate(self, page: int, per_page: int) -> "SqlAlchemyTarget":
        self.page = max(int(page), 1)
        self.per_page = int(per_page)
        return self

    @property
    def is_paginated(self) -> bool:
        return bool(self.per_page)

    @property
    def offset(self) -> int:
        if not self.is_paginated:
            return 0
        return (self.page - 1) * self.per_page

    def count(self) -> int:
        return self.query.order_by(None).count()

    def all(self) -> list[Any]:
        if not self.is_paginated:
            return self.query.all()
        return self.query.offset(self.offset).limit(self.per_page).all()

    def page_meta(self, total: int | None = None) -> dict[str, int] | None:
        if not self.is_paginated:
            return None
        if total is None:
            total = self.count()
        return {
            "current_page": self.page,
            "last_page": max(int(math.ceil(total / self.per_page)), 1),
            "per_page": self.per_page,
            "total": total,
        }

    def to_sql(self) -> str:
        return str(self.query.statement)
