"""Upstream server connection lifecycle."""

from .health import HttpHealthCheck
from .manager import ConnectionManager, Connector, EventListener

__all__ = [
    "ConnectionManager",
    "Connector",
    "EventListener",
    "HttpHealthCheck",
]
