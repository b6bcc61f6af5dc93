"""Inbound ports - interfaces for incoming requests."""

from shardctl.core.ports.inbound.cluster import IClusterLifecyclePort

__all__ = [
    "IClusterLifecyclePort",
]
