"""Adapters - concrete implementations of ports."""

from shardctl.core.adapters.memory_adapter import InMemoryControlPlaneAdapter
from shardctl.core.adapters.rest_adapter import RestControlPlaneAdapter

__all__ = [
    "InMemoryControlPlaneAdapter",
    "RestControlPlaneAdapter",
]
