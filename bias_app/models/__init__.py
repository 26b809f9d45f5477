"""
Data models module.

Immutable scored events and the versioned composite score tree.
Follows functional programming principles with frozen dataclasses.
"""
