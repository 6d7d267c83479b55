"""Assertions - validation helpers used by runners."""

from .assertions import Assertions
from .reachability import ReachabilityPoller, ServerOptions, is_reachable

__all__ = ["Assertions", "ReachabilityPoller", "ServerOptions", "is_reachable"]
