"""Stratagen: AI generation orchestration for strategy planning."""

__version__ = "0.1.0"
