"""Service layer."""

from blacklist.services.blacklist_service import BlacklistService

__all__ = ["BlacklistService"]
