"""
Remote stores for ganttsync.
"""

from .base import RemoteStore
from .http import HttpRemoteStore
from .memory import InMemoryRemoteStore

__all__ = ["RemoteStore", "InMemoryRemoteStore", "HttpRemoteStore"]
