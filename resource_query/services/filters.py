from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping

from resource_query.core.config import settings
from resource_query.core.errors import RuleConfigurationError

_LOG = logging.getLogger("resource_query.filters")

COMPARISON_OPERATORS = frozenset({"=", "!=", "<>", ">=", "<=", ">", "<", "like"})
PATTERN_OPERATORS = {
    "%like%": "%{}%",  # contains
    "like%": "{}%",  # starts with
    "%like": "%{}",  # ends with
}
IN_OPERATOR = "in"


def _is_empty(value: Any) -> bool:
    # None, "", 0, False and empty containers; the string "0" is a value
    return not value


class FilterRule:
    """A named filter bound to a target field.

    Rules are declared on a ``FilterSet`` and configured through chained calls::

        filters.add("status", "=", "state").default_value("active")
        filters.add("q", "%like%", "title").apply_if_not_present("status")
    """

    def __init__(self, name: str):
        self.name = name
        self.field: str | Callable[..., Any] = name
        self.condition: str | Callable[..., Any] = "="
        self.default: Any = None
        self.value_formatter: Callable[[Any], Any] | None = None
        self.applicability: Callable[[Mapping[str, Any], "FilterRule"], bool] | None = None

    def __repr__(self) -> str:
        return f"FilterRule(name={self.name!r}, condition={self.condition!r}, field={self.field!r})"

    def set_field(self, field: str | Callable[..., Any]) -> "FilterRule":
        if not field:
            raise RuleConfigurationError(f'Filter "{self.name}": field must not be empty')
        self.field = field
        return self

    def set_condition(self, condition: str | Callable[..., Any]) -> "FilterRule":
        if not callable(condition) and not isinstance(condition, str):
            raise RuleConfigurationError(f'Filter "{self.name}": condition must be an operator or a callable')
        self.condition = condition
        return self

    def default_value(self, value: Any) -> "FilterRule":
        self.default = value
        return self

    def format_value(self, formatter: Callable[[Any], Any] | None) -> "FilterRule":
        self.value_formatter = formatter
        return self

    def apply_if(self, predicate: Callable[[Mapping[str, Any], "FilterRule"], bool] | None) -> "FilterRule":
        self.applicability = predicate
        return self

    def apply_if_present(self, *names: str) -> "FilterRule":
        def _all_present(filters: Mapping[str, Any], rule: "FilterRule") -> bool:
            return all(not _is_empty(filters.get(name)) for name in names)

        return self.apply_if(_all_present)

    def apply_if_not_present(self, *names: str) -> "FilterRule":
        def _none_present(filters: Mapping[str, Any], rule: "FilterRule") -> bool:
            return all(_is_empty(filters.get(name)) for name in names)

        return self.apply_if(_none_present)

    def is_applicable(self, filters: Mapping[str, Any]) -> bool:
        return self.applicability is None or bool(self.applicability(filters, self))

    def should_be_applied(self, filters: Mapping[str, Any]) -> bool:
        has_value = not _is_empty(filters.get(self.name)) or not _is_empty(self.default)
        return has_value and self.is_applicable(filters)

    def resolve_value(self, filters: Mapping[str, Any]) -> Any:
        value = filters.get(self.name)
        if _is_empty(value):
            value = self.default
        if self.value_formatter is not None:
            value = self.value_formatter(value)
        return value

    def apply(self, target: Any, filters: Mapping[str, Any], applied: list[str] | None = None) -> Any:
        if not self.should_be_applied(filters):
            return target
        value = self.resolve_value(filters)
        if applied is not None:
            applied.append(self.name)

        condition = self.condition
        if callable(condition):
            condition(target, value, self)
            return target
        if callable(self.field):
            self.field(target, value, self)
            return target

        if condition in PATTERN_OPERATORS:
            target.where(self.field, "like", PATTERN_OPERATORS[condition].format(value))
        elif condition in COMPARISON_OPERATORS:
            target.where(self.field, condition, value)
        elif condition == IN_OPERATOR:
            if not isinstance(value, (list, tuple, set, frozenset)):
                value = str(value).split(settings.RQ_IN_DELIMITER)
            target.where_in(self.field, list(value))
        else:
            _LOG.warning("Filter %r skipped: unknown condition %r", self.name, condition)
        return target


class FilterSet:
    """Ordered collection of filter rules keyed by name."""

    def __init__(self, filter_parameter: str | None = None):
        self._rules: dict[str, FilterRule] = {}
        self.filter_parameter = filter_parameter

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[FilterRule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def names(self) -> list[str]:
        return list(self._rules)

    def view(self) -> Mapping[str, FilterRule]:
        return MappingProxyType(self._rules)

    def get(self, name: str) -> FilterRule | None:
        return self._rules.get(name)

    def get_or_create(self, name: str) -> FilterRule:
        rule = self._rules.get(name)
        if rule is None:
            rule = self.add(name)
        return rule

    def add(
        self,
        name: str,
        condition: str | Callable[..., Any] | None = None,
        field: str | Callable[..., Any] | None = None,
    ) -> FilterRule:
        """Declare ``name``, replacing any rule previously declared under it."""
        if not name:
            raise RuleConfigurationError("Filter name must not be empty")
        rule = FilterRule(name)
        if condition:
            rule.set_condition(condition)
        if field:
            rule.set_field(field)
        self._rules[name] = rule
        return rule

    def set(self, rule: FilterRule) -> FilterRule:
        if not isinstance(rule, FilterRule):
            raise RuleConfigurationError(f"Expected FilterRule, got {type(rule).__name__}")
        self._rules[rule.name] = rule
        return rule

    def remove(self, name: str) -> None:
        self._rules.pop(name, None)

    def remove_all(self) -> None:
        self._rules.clear()

    def apply_conditions(self, target: Any, filters: Mapping[str, Any], applied: list[str] | None = None) -> list[str]:
        if applied is None:
            applied = []
        for rule in self:
            rule.apply(target, filters, applied)
        return applied
