"""
Error classification system for alert scoring and snapshot aggregation.

Event-level errors (DataQualityError family) are isolated per event; system
failures (SystemFailureError family) indicate misconfiguration or storage
problems.
"""

from .data_quality import (
    DataQualityError,
    NoMatchingRuleError,
    InvalidEventError,
    DegenerateRangeError,
)
from .system_failures import (
    SystemFailureError,
    ConfigurationError,
    CatalogError,
    InvalidMatchTypeError,
    CatalogConfigurationError,
    PersistenceError,
)

__all__ = [
    # Event-level errors
    "DataQualityError",
    "NoMatchingRuleError",
    "InvalidEventError",
    "DegenerateRangeError",
    # System failures
    "SystemFailureError",
    "ConfigurationError",
    "CatalogError",
    "InvalidMatchTypeError",
    "CatalogConfigurationError",
    "PersistenceError",
]
