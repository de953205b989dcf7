"""Query engine: cached lookups merged with live RPCs."""

from blacklist.query.engine import QueryEngine

__all__ = ["QueryEngine"]
