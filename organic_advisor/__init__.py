"""Organic Advisor: context-aware organic action recommendation engine."""

__version__ = "0.1.0"
