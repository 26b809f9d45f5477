"""
Bias App - Composite Trading Bias Aggregation Engine

Scores indicator alert messages against a configurable rule catalog and rolls
the scored events up into a versioned, per-symbol composite bias snapshot
(symbol -> candle/interval group -> indicator -> sub-category).
"""

__version__ = "0.1.0"
__author__ = "Bias App Team"
