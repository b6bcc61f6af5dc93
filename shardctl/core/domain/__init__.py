"""Domain layer - business logic and models."""

from shardctl.core.domain.context import ClusterContext, TimeoutPolicy
from shardctl.core.domain.models import (
    ClusterSpec,
    ClusterState,
    ClusterStatus,
    ClusterTopology,
    ReconciledShardView,
    ShardSpec,
)

__all__ = [
    "ClusterSpec",
    "ShardSpec",
    "ClusterState",
    "ClusterStatus",
    "ClusterTopology",
    "ReconciledShardView",
    "ClusterContext",
    "TimeoutPolicy",
]
