"""Remote procedure calls merged into queries."""

from blacklist.rpc.base import RPC, RPCError
from blacklist.rpc.config import SafeBrowsingConfig
from blacklist.rpc.safebrowsing import SafeBrowsingRPC

__all__ = [
    "RPC",
    "RPCError",
    "SafeBrowsingConfig",
    "SafeBrowsingRPC",
]
