from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping

from resource_query.core.errors import RuleConfigurationError

_LOG = logging.getLogger("resource_query.ordering")

ASC = "asc"
DESC = "desc"
DIRECTIONS = (ASC, DESC)

OrderToken = tuple[str, "str | None"]


def _flip(direction: str) -> str:
    return ASC if direction == DESC else DESC


def _checked_direction(direction: str | None, *, rule: str) -> str | None:
    if direction is None:
        return None
    normalized = str(direction).strip().lower()
    if normalized not in DIRECTIONS:
        raise RuleConfigurationError(f'Ordering "{rule}": direction must be "asc" or "desc", got {direction!r}')
    return normalized


def parse_order_token(token: Any) -> OrderToken | None:
    """Turn one client ordering token into ``(name, direction)``.

    Accepted shapes: ``("name", "desc")`` pairs, ``"name:desc"``, ``"-name"``,
    ``"+name"``, ``"^name"`` and bare ``"name"``. Returns ``None`` for anything
    that cannot be read.
    """
    if isinstance(token, (list, tuple)):
        if len(token) == 1:
            token = token[0]
        elif len(token) == 2:
            name, direction = token
            if not isinstance(name, str) or not name.strip():
                return None
            direction = str(direction).strip().lower() if direction is not None else None
            return name.strip(), direction if direction in DIRECTIONS else None
        else:
            return None
    if not isinstance(token, str):
        return None
    text = token.strip()
    if not text:
        return None
    if ":" in text:
        name, _, direction = text.partition(":")
        return parse_order_token((name, direction))
    if text[0] == "-":
        name, direction = text[1:], DESC
    elif text[0] in "+^":
        name, direction = text[1:], ASC
    else:
        name, direction = text, None
    name = name.strip()
    if not name:
        return None
    return name, direction


class OrderRule:
    """A sortable field exposed to clients under ``name``."""

    def __init__(self, name: str, field: str | Callable[..., Any] | None = None, direction: str | None = None):
        self.name = name
        self.field: str | Callable[..., Any] = field or name
        self.forced_direction = _checked_direction(direction, rule=name)
        self.default_direction = ASC
        self.inverted = False

    def __repr__(self) -> str:
        return f"OrderRule(name={self.name!r}, field={self.field!r}, direction={self.forced_direction!r})"

    def set_field(self, field: str | Callable[..., Any]) -> "OrderRule":
        if not field:
            raise RuleConfigurationError(f'Ordering "{self.name}": field must not be empty')
        self.field = field
        return self

    def direction(self, direction: str | None) -> "OrderRule":
        """Force a direction regardless of what the client asks for; ``None`` clears it."""
        self.forced_direction = _checked_direction(direction, rule=self.name)
        return self

    def default_order(self, direction: str) -> "OrderRule":
        self.default_direction = DESC if str(direction).strip().lower() == DESC else ASC
        return self

    def invert(self, inverted: bool = True) -> "OrderRule":
        self.inverted = bool(inverted)
        return self

    def resolve_direction(self, requested: str | None, default_pass: bool = False) -> str:
        if requested in DIRECTIONS:
            direction = requested
        elif default_pass:
            direction = self.default_direction
        else:
            direction = ASC
        if self.forced_direction:
            direction = self.forced_direction
        if self.inverted:
            direction = _flip(direction)
        return direction

    def should_apply(self) -> bool:
        return True

    def apply(self, target: Any, requested: str | None, default_pass: bool = False) -> tuple[str, str] | None:
        if not self.should_apply():
            return None
        direction = self.resolve_direction(requested, default_pass)
        if callable(self.field):
            self.field(target, direction)
        else:
            target.order_by(self.field, direction)
        return self.name, direction


class OrderSet:
    """Ordered collection of ordering rules plus the default order."""

    def __init__(self, order_parameter: str = "order_by"):
        self._rules: dict[str, OrderRule] = {}
        self._default_order: list[OrderToken] = []
        self.order_parameter = order_parameter

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[OrderRule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def names(self) -> list[str]:
        return list(self._rules)

    def view(self) -> Mapping[str, OrderRule]:
        return MappingProxyType(self._rules)

    def get(self, name: str) -> OrderRule | None:
        return self._rules.get(name)

    def get_or_create(self, name: str) -> OrderRule:
        return self.add(name)

    def add(self, name: str, field: str | Callable[..., Any] | None = None, direction: str | None = None) -> OrderRule:
        """Declare ``name`` or update the rule already declared under it."""
        if not name:
            raise RuleConfigurationError("Ordering name must not be empty")
        rule = self._rules.get(name)
        if rule is None:
            rule = self._rules[name] = OrderRule(name)
        if field is not None:
            rule.set_field(field)
        if direction is not None:
            rule.direction(direction)
        return rule

    def set(self, name: str, field: str | Callable[..., Any] | None = None, direction: str | None = None) -> OrderRule:
        """Declare ``name``, replacing any rule previously declared under it."""
        if not name:
            raise RuleConfigurationError("Ordering name must not be empty")
        rule = OrderRule(name, field, direction)
        self._rules[name] = rule
        return rule

    def remove(self, name: str) -> None:
        self._rules.pop(name, None)
        self._default_order = [entry for entry in self._default_order if entry[0] != name]

    def remove_all(self) -> None:
        self._rules.clear()
        self._default_order = []

    @property
    def default_order(self) -> list[OrderToken]:
        return list(self._default_order)

    def set_default_order(self, *entries: str | tuple[str, str | None]) -> "OrderSet":
        parsed: list[OrderToken] = []
        for entry in entries:
            if isinstance(entry, (list, tuple)) and len(entry) == 2:
                name = str(entry[0])
                parsed.append((name, _checked_direction(entry[1], rule=name)))
            elif isinstance(entry, str) and entry:
                parsed.append((entry, None))
            else:
                raise RuleConfigurationError(f"Invalid default order entry: {entry!r}")
        self._default_order = parsed
        return self

    def add_default(self, name: str, direction: str | None = None) -> "OrderSet":
        self._default_order.append((name, _checked_direction(direction, rule=name)))
        return self

    def recognized_tokens(self, tokens: Iterable[Any] | None) -> list[OrderToken]:
        recognized: list[OrderToken] = []
        for token in tokens or []:
            parsed = parse_order_token(token)
            if parsed is None:
                _LOG.debug("Dropped malformed order token %r", token)
                continue
            if parsed[0] not in self._rules:
                _LOG.debug("Dropped unknown order field %r", parsed[0])
                continue
            recognized.append(parsed)
        return recognized

    def apply_conditions(
        self,
        target: Any,
        tokens: Iterable[Any] | None,
        applied: list[tuple[str, str]] | None = None,
    ) -> list[tuple[str, str]]:
        if applied is None:
            applied = []
        orders = self.recognized_tokens(tokens)
        default_pass = not orders
        if default_pass:
            orders = [entry for entry in self._default_order if entry[0] in self._rules]
        for name, direction in orders:
            result = self._rules[name].apply(target, direction, default_pass)
            if result:
                applied.append(result)
        return applied
