"""Cluster lifecycle inbound port interface."""

from abc import ABC, abstractmethod
from typing import Optional

from shardctl.core.domain.context import ClusterContext
from shardctl.core.domain.models import ClusterSpec, ClusterState


class IClusterLifecyclePort(ABC):
    """
    Inbound port for sharded cluster lifecycle management.

    This port defines the interface for:
    - Creating clusters from a declared spec
    - Reading remote truth back into persistable state
    - Applying incremental updates without re-creating
    - Deleting and importing clusters

    Every call takes the explicit context carrying the remote client,
    region and timing policy.
    """

    @abstractmethod
    async def create(self, context: ClusterContext, spec: ClusterSpec) -> ClusterState:
        """
        Create a cluster and wait until it is ready.

        Args:
            context: Call context
            spec: Desired state

        Returns:
            Reconciled state of the new cluster
        """
        pass

    @abstractmethod
    async def read(
        self,
        context: ClusterContext,
        cluster_id: str,
        previous: Optional[ClusterState] = None,
    ) -> Optional[ClusterState]:
        """
        Read and reconcile a cluster.

        Args:
            context: Call context
            cluster_id: ID of the cluster
            previous: Last known state, used for ordering and overlay

        Returns:
            New last known state, None if the cluster is gone
        """
        pass

    @abstractmethod
    async def update(
        self,
        context: ClusterContext,
        previous: ClusterState,
        desired: ClusterSpec,
    ) -> ClusterState:
        """
        Apply changes between the last known and desired state.

        Args:
            context: Call context
            previous: Last known state
            desired: Desired state

        Returns:
            Reconciled state after the update
        """
        pass

    @abstractmethod
    async def delete(self, context: ClusterContext, cluster_id: str) -> None:
        """
        Delete a cluster and wait until it is gone.

        Args:
            context: Call context
            cluster_id: ID of the cluster
        """
        pass

    @abstractmethod
    async def import_cluster(self, context: ClusterContext, cluster_id: str) -> ClusterState:
        """
        Build state for an existing cluster with no prior declaration.

        Args:
            context: Call context
            cluster_id: ID of the cluster

        Returns:
            Reconciled state
        """
        pass
