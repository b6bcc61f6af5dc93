"""Topology reconciler - merges remote shard membership with declared order."""

from typing import Iterable, Optional

import structlog

from shardctl.core.domain.models import (
    ClusterInstance,
    InstanceView,
    ReconciledShardView,
    ShardSpec,
    WalVolume,
)

logger = structlog.get_logger(__name__)


class TopologyReconciler:
    """
    Domain service rebuilding the shard list from remote topology.

    The control plane is the only source of truth for which shards exist
    and how many instances each has. The declared order is the only source
    of truth for presentation order, since the remote side does not keep
    a stable order between calls.
    """

    def group_by_shard(
        self, instances: Iterable[ClusterInstance]
    ) -> dict[str, list[ClusterInstance]]:
        """Group instances by shard id, keeping remote order inside each shard."""
        groups: dict[str, list[ClusterInstance]] = {}
        for instance in instances:
            groups.setdefault(instance.shard_id, []).append(instance)
        return groups

    def reconcile(
        self,
        instances: Iterable[ClusterInstance],
        declared_order: Iterable[str],
    ) -> list[ReconciledShardView]:
        """
        Build reconciled shard views.

        Shards present both remotely and in `declared_order` come first,
        in declared order. Remote shards missing from `declared_order`
        follow, sorted by shard id. Declared shards with no remote
        instances are dropped.

        Args:
            instances: Instances reported by the control plane
            declared_order: Shard ids in last known declared order

        Returns:
            One view per remote shard
        """
        groups = self.group_by_shard(instances)

        ordered: list[str] = []
        for shard_id in declared_order:
            if shard_id in groups and shard_id not in ordered:
                ordered.append(shard_id)
        known = set(ordered)
        discovered = sorted(shard_id for shard_id in groups if shard_id not in known)

        if discovered:
            logger.debug("shards_discovered", shard_ids=discovered)

        return [self._view(shard_id, groups[shard_id]) for shard_id in ordered + discovered]

    def overlay(
        self,
        views: list[ReconciledShardView],
        declared: Iterable[ShardSpec],
        default_volume_type: Optional[str] = None,
    ) -> list[ReconciledShardView]:
        """
        Carry fields the control plane does not report from the last declaration.

        Matching is by shard id. Shards with no declaration get
        `default_volume_type` and keep empty networks.

        Args:
            views: Reconciled views
            declared: Last known shard declarations
            default_volume_type: Volume type for undeclared shards

        Returns:
            New views with volume types, networks and zones filled in
        """
        by_id = {shard.shard_id: shard for shard in declared}
        result: list[ReconciledShardView] = []

        for view in views:
            shard = by_id.get(view.shard_id)
            if shard is None:
                result.append(view.model_copy(update={"volume_type": default_volume_type}))
                continue

            wal_volume = view.wal_volume
            if wal_volume is not None and shard.wal_volume is not None:
                wal_volume = WalVolume(
                    size=wal_volume.size,
                    volume_type=shard.wal_volume.volume_type,
                )

            result.append(
                view.model_copy(
                    update={
                        "volume_type": shard.volume_type,
                        "wal_volume": wal_volume,
                        "networks": list(shard.networks),
                        "availability_zone": shard.availability_zone,
                        "flavor_id": view.flavor_id or shard.flavor_id,
                        "volume_size": (
                            view.volume_size if view.volume_size is not None else shard.volume_size
                        ),
                    }
                )
            )

        return result

    def _view(self, shard_id: str, instances: list[ClusterInstance]) -> ReconciledShardView:
        first = instances[0]
        wal_volume = None
        if first.wal_volume_size is not None:
            wal_volume = WalVolume(size=first.wal_volume_size)

        return ReconciledShardView(
            shard_id=shard_id,
            size=len(instances),
            instances=[
                InstanceView(instance_id=i.instance_id, ips=list(i.ips)) for i in instances
            ],
            flavor_id=first.flavor_id,
            volume_size=first.volume_size,
            wal_volume=wal_volume,
        )
