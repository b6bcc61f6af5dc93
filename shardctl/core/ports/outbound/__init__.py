"""Outbound ports - interfaces for outgoing requests."""

from shardctl.core.ports.outbound.control_plane import ControlPlaneSettings, IControlPlanePort

__all__ = [
    "IControlPlanePort",
    "ControlPlaneSettings",
]
