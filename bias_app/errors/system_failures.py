"""
System failure error classifications for unrecoverable errors.

These exceptions represent misconfiguration or storage failures. Catalog and
configuration errors stop startup; storage errors fail the event being
processed.
"""

from typing import Optional, Dict, Any


class SystemFailureError(Exception):
    """Base class for unrecoverable system failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class ConfigurationError(SystemFailureError):
    """Engine settings failed validation."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []


class CatalogError(SystemFailureError):
    """Rule catalog could not be loaded."""

    def __init__(self, message: str, row_number: Optional[int] = None,
                 source: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.row_number = row_number
        self.source = source


class InvalidMatchTypeError(CatalogError):
    """A catalog row declares an unrecognized match type."""

    def __init__(self, message: str, match_type: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.match_type = match_type


class CatalogConfigurationError(CatalogError):
    """A catalog row is inconsistent (missing score, bad regex, bad number)."""

    def __init__(self, message: str, indicator_name: Optional[str] = None,
                 sub_category: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.indicator_name = indicator_name
        self.sub_category = sub_category


class PersistenceError(SystemFailureError):
    """Snapshot or event store failures."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.target = target
