"""
Score normalization module.

Converts bounded raw scores to bipolar percentages and direction categories.
"""
from .normalizer import Direction, bipolar_percentage, classify_direction, score_summary

__all__ = ["Direction", "bipolar_percentage", "classify_direction", "score_summary"]
