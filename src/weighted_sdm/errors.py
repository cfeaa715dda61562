"""
Error taxonomy for weighted sequential dependency rewriting.

Fatal errors are exceptions and stop the rewrite:
    MalformedQueryError   - a wsdm operator with non-text children
    ConfigurationError    - bad feature records, unreadable value files

Non-fatal conditions never abort a rewrite:
    LoadWarning           - a malformed line in an external value file (skipped)
    StatisticsAbsent      - a provider has no statistics for a node
                            (the feature contributes nothing)
"""

from __future__ import annotations

from typing import Any


class WeightedSDMError(Exception):
    """Base class for fatal rewrite and configuration errors."""


class MalformedQueryError(WeightedSDMError):
    """Raised when a query node does not have the shape the rewriter requires."""

    def __init__(self, message: str, *, operator: str | None = None, child: Any = None):
        self.operator = operator
        self.child = child
        if operator is not None and child is not None:
            message = f"{message} (operator={operator!r}, offending child={child})"
        super().__init__(message)


class ConfigurationError(WeightedSDMError):
    """Raised at construction time for invalid feature configuration."""

    def __init__(self, message: str, *, feature: str | None = None):
        self.feature = feature
        if feature is not None:
            message = f"feature {feature!r}: {message}"
        super().__init__(message)


class StatisticsAbsent(LookupError):
    """Raised by a statistics provider that cannot answer for a node."""


class LoadWarning(UserWarning):
    """Issued for each skipped line while reading an external value file."""
