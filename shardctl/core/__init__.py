"""Core module - Hexagonal architecture ports, domain and adapters."""

# Domain models
from shardctl.core.domain import (
    ClusterContext,
    ClusterSpec,
    ClusterState,
    ClusterStatus,
    ClusterTopology,
    ReconciledShardView,
    ShardSpec,
    TimeoutPolicy,
)

# Domain services
from shardctl.core.domain.services import (
    ChangePlan,
    ClusterLifecycleService,
    OperationPoller,
    SpecLoader,
    SpecTranslator,
    TopologyReconciler,
    UpdateActionExecutor,
    UpdateSequencer,
)

# Ports
from shardctl.core.ports import (
    ControlPlaneSettings,
    IClusterLifecyclePort,
    IControlPlanePort,
)

# Adapters
from shardctl.core.adapters import (
    InMemoryControlPlaneAdapter,
    RestControlPlaneAdapter,
)

__all__ = [
    # Domain Models
    "ClusterContext",
    "ClusterSpec",
    "ClusterState",
    "ClusterStatus",
    "ClusterTopology",
    "ReconciledShardView",
    "ShardSpec",
    "TimeoutPolicy",
    # Domain Services
    "ChangePlan",
    "ClusterLifecycleService",
    "OperationPoller",
    "SpecLoader",
    "SpecTranslator",
    "TopologyReconciler",
    "UpdateActionExecutor",
    "UpdateSequencer",
    # Ports
    "ControlPlaneSettings",
    "IClusterLifecyclePort",
    "IControlPlanePort",
    # Adapters
    "InMemoryControlPlaneAdapter",
    "RestControlPlaneAdapter",
]
