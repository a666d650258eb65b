from __future__ import annotations

import re
from typing import Any, Iterable

from fastapi import Request

from resource_query.core.config import settings
from resource_query.schemas.query import QueryParams

METHOD_OVERRIDE_FIELD = "_method"
_BRACKET_RE = re.compile(r"\[([^\[\]]*)\]")


def _split_key(key: str) -> list[str]:
    head, sep, rest = key.partition("[")
    if not sep or not head:
        return [key]
    rest = "[" + rest
    parts = _BRACKET_RE.findall(rest)
    if "".join(f"[{p}]" for p in parts) != rest:
        # unbalanced brackets, keep the raw key
        return [key]
    return [head, *parts]


def _listify(node: Any) -> Any:
    if isinstance(node, list):
        return [_listify(v) for v in node]
    if not isinstance(node, dict):
        return node
    converted = {k: _listify(v) for k, v in node.items()}
    if converted and all(isinstance(k, str) and k.isdigit() for k in converted):
        return [converted[k] for k in sorted(converted, key=int)]
    return converted


def unflatten_params(items: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Rebuild ``filters[status]=a`` style keys into nested dicts and lists."""
    root: dict[str, Any] = {}
    for key, value in items:
        parts = _split_key(str(key))
        node = root
        for index, part in enumerate(parts):
            last = index == len(parts) - 1
            if part == "":
                # "tags[]" appends
                existing = node.setdefault("__append__", [])
                if last:
                    existing.append(value)
                    break
                child: dict[str, Any] = {}
                existing.append(child)
                node = child
                continue
            if last:
                if part in node and not isinstance(node[part], dict):
                    previous = node[part]
                    node[part] = (previous if isinstance(previous, list) else [previous]) + [value]
                else:
                    node[part] = value
                break
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
    return _resolve_appends(_listify(root))


def _resolve_appends(node: Any) -> Any:
    if isinstance(node, list):
        return [_resolve_appends(v) for v in node]
    if not isinstance(node, dict):
        return node
    if set(node) == {"__append__"}:
        return [_resolve_appends(v) for v in node["__append__"]]
    return {k: _resolve_appends(v) for k, v in node.items() if k != "__append__"}


def extract_query_params(
    data: dict[str, Any],
    *,
    method: str = "GET",
    filter_parameter: str | None = None,
    order_parameter: str | None = None,
    page_parameter: str | None = None,
    page_size_parameter: str | None = None,
) -> QueryParams:
    order_parameter = order_parameter or settings.RQ_ORDER_PARAMETER
    page_parameter = page_parameter or settings.RQ_PAGE_PARAMETER
    page_size_parameter = page_size_parameter or settings.RQ_PAGE_SIZE_PARAMETER
    if filter_parameter:
        filters = data.get(filter_parameter)
        if not isinstance(filters, dict):
            filters = {} if filters in (None, "") else {filter_parameter: filters}
    else:
        filters = dict(data)
    return QueryParams(
        filters=filters,
        order_by=data.get(order_parameter),
        page=data.get(page_parameter, 1),
        per_page=data.get(page_size_parameter),
        method=method,
        raw=data,
    )


async def read_request_data(request: Request) -> tuple[str, dict[str, Any]]:
    """Return ``(effective_method, unflattened_input)`` for a request."""
    items: list[tuple[str, Any]] = list(request.query_params.multi_items())
    method = request.method.upper()
    if method != "GET":
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            body = await request.json()
            if isinstance(body, dict):
                items.extend(body.items())
        elif content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            form = await request.form()
            items.extend(form.multi_items())
    data = unflatten_params(items)
    override = data.pop(METHOD_OVERRIDE_FIELD, None)
    if isinstance(override, str) and override.strip():
        method = override.strip().upper()
    return method, data


async def get_query_params(request: Request) -> QueryParams:
    method, data = await read_request_data(request)
    return extract_query_params(data, method=method, filter_parameter=settings.filter_parameter)
