"""
Shipped event sources.

Importing this package registers every adapter in ADAPTER_REGISTRY.
"""

from .eventbrite import EventbriteAdapter
from .timeout import TimeOutAdapter

__all__ = ["EventbriteAdapter", "TimeOutAdapter"]
