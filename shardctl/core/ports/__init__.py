"""Port interfaces for hexagonal architecture."""

from shardctl.core.ports.inbound.cluster import IClusterLifecyclePort
from shardctl.core.ports.outbound.control_plane import ControlPlaneSettings, IControlPlanePort

__all__ = [
    "IClusterLifecyclePort",
    "IControlPlanePort",
    "ControlPlaneSettings",
]
