from __future__ import annotations

from typing import Any


class ResourceQueryError(Exception):
    pass


class RuleConfigurationError(ResourceQueryError, ValueError):
    """Raised when a rule or rule set is declared with an unusable setting."""


class QueryCancelled(ResourceQueryError):
    def __init__(self, message: str = "Query cancelled", *, reason: Any = None):
        super().__init__(message)
        self.reason = reason


class UnexpectedResponseError(ResourceQueryError):
    def __init__(self, message: str, *, response: Any = None):
        super().__init__(message)
        self.response = response
