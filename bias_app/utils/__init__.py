"""
Utility functions module.

Time Semantics:
- All persisted timestamps are aware UTC datetimes
- Naive datetimes coming from upstream are interpreted as UTC
- The pending-event lookback window is computed from wall-clock UTC time
"""
