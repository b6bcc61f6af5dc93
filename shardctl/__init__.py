"""
Shardctl - lifecycle management of sharded database clusters.

Creates clusters from a declared shard layout, reconciles remote
topology back into persistable state, and applies incremental updates
as an ordered sequence of remote actions.
"""

__version__ = "0.1.0"

from shardctl.core.domain.context import ClusterContext, TimeoutPolicy
from shardctl.core.domain.errors import (
    ClusterActionError,
    ClusterCreateError,
    ClusterDeleteError,
    ClusterNotFoundError,
    ClusterValidationError,
    ImmutableFieldError,
    NotReadyError,
    OperationCancelledError,
    OperationTimeoutError,
    PollError,
    RemoteAPIError,
    ShardctlError,
    ShrinkOptionsError,
    TransientFetchError,
    UnexpectedStateError,
    UpdateFailedError,
)
from shardctl.core.domain.models import (
    ClusterSpec,
    ClusterState,
    ClusterStatus,
    ClusterTopology,
    ReconciledShardView,
    ShardSpec,
)
from shardctl.core.domain.services.lifecycle import ClusterLifecycleService
from shardctl.core.domain.services.spec_loader import SpecLoader
from shardctl.core.adapters.memory_adapter import InMemoryControlPlaneAdapter
from shardctl.core.adapters.rest_adapter import RestControlPlaneAdapter
from shardctl.core.ports.outbound.control_plane import ControlPlaneSettings

__all__ = [
    # Main
    "ClusterLifecycleService",
    "ClusterContext",
    "TimeoutPolicy",
    "SpecLoader",
    # Models
    "ClusterSpec",
    "ShardSpec",
    "ClusterState",
    "ClusterStatus",
    "ClusterTopology",
    "ReconciledShardView",
    # Adapters
    "ControlPlaneSettings",
    "InMemoryControlPlaneAdapter",
    "RestControlPlaneAdapter",
    # Errors
    "ShardctlError",
    "ClusterValidationError",
    "ImmutableFieldError",
    "ShrinkOptionsError",
    "ClusterNotFoundError",
    "RemoteAPIError",
    "NotReadyError",
    "PollError",
    "OperationTimeoutError",
    "UnexpectedStateError",
    "TransientFetchError",
    "OperationCancelledError",
    "ClusterCreateError",
    "ClusterDeleteError",
    "ClusterActionError",
    "UpdateFailedError",
]
