"""
Event-level error classifications for alert scoring and aggregation.

These exceptions describe problems with a single alert or scored event. They
are handled per event: the event is rejected or marked FAILED and processing
continues with the next one.
"""

from typing import Optional, Dict, Any


class DataQualityError(Exception):
    """Base class for event-level issues that can be handled gracefully."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class NoMatchingRuleError(DataQualityError):
    """No catalog rule matches the alert message, so it cannot be scored."""

    def __init__(self, message: str, indicator_name: Optional[str] = None,
                 alert_message: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.indicator_name = indicator_name
        self.alert_message = alert_message


class InvalidEventError(DataQualityError):
    """Scored event is missing key fields or carries inconsistent scores."""

    def __init__(self, message: str, missing_fields: Optional[list] = None,
                 event_id: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.missing_fields = missing_fields or []
        self.event_id = event_id


class DegenerateRangeError(DataQualityError):
    """Zero-width score bound prevents percentage computation."""

    def __init__(self, message: str, min_score: Optional[Any] = None,
                 max_score: Optional[Any] = None, actual: Optional[Any] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.min_score = min_score
        self.max_score = max_score
        self.actual = actual
