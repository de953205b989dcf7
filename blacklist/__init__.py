"""Blacklist cache - mirrors threat-intel feeds and answers membership queries."""

__version__ = "0.1.0"
