"""Translation of a declared cluster into concrete instance create requests."""

import structlog

from shardctl.core.domain.errors import ClusterValidationError
from shardctl.core.domain.models import (
    ClusterCreateRequest,
    ClusterSpec,
    InstanceCreateRequest,
    ShardSpec,
    Volume,
)

logger = structlog.get_logger(__name__)

SUPPORTED_DATASTORES = frozenset({"clickhouse"})


class SpecTranslator:
    """
    Domain service that turns shard declarations into instance requests.

    Each shard of size N becomes N identical instance requests tagged
    with the shard id. Requests are emitted shard by shard in declared
    order; position inside the flat list carries no other meaning.
    """

    def validate(self, spec: ClusterSpec) -> None:
        """
        Check cross-field invariants of a declared cluster.

        Args:
            spec: Declared cluster

        Raises:
            ClusterValidationError: If the declaration cannot be created
        """
        if not spec.datastore.type:
            raise ClusterValidationError("Datastore type is not set", field="datastore.type")
        if spec.datastore.type not in SUPPORTED_DATASTORES:
            raise ClusterValidationError(
                f"Datastore type must be one of {sorted(SUPPORTED_DATASTORES)}, "
                f"got: {spec.datastore.type}",
                field="datastore.type",
            )
        if not spec.shards:
            raise ClusterValidationError("Cluster must declare at least one shard", field="shard")

        seen: set[str] = set()
        for index, shard in enumerate(spec.shards):
            if not shard.shard_id:
                raise ClusterValidationError(
                    f"Shard at position {index} has no shard_id",
                    field=f"shard.{index}.shard_id",
                )
            if shard.shard_id in seen:
                raise ClusterValidationError(
                    f"Duplicate shard_id: {shard.shard_id}",
                    field=f"shard.{index}.shard_id",
                )
            seen.add(shard.shard_id)
            self.validate_shard(shard)

    def validate_shard(self, shard: ShardSpec) -> None:
        """Check invariants of a single shard declaration."""
        if shard.size < 1:
            raise ClusterValidationError(
                f"Shard {shard.shard_id} size must be at least 1, got: {shard.size}",
                field="size",
            )
        if shard.volume_type and shard.volume_size is None:
            raise ClusterValidationError(
                f"Shard {shard.shard_id} sets volume_type without volume_size",
                field="volume_size",
            )
        if shard.wal_volume is not None and shard.wal_volume.size is None:
            raise ClusterValidationError(
                f"Shard {shard.shard_id} wal_volume has no size",
                field="wal_volume.size",
            )

    def instance_request(self, spec: ClusterSpec, shard: ShardSpec) -> InstanceCreateRequest:
        """
        Build the create request of one instance of a shard.

        Also used when growing a shard, so new instances match the
        existing ones.
        """
        return InstanceCreateRequest(
            shard_id=shard.shard_id,
            flavor_id=shard.flavor_id,
            volume=Volume(size=shard.volume_size, volume_type=shard.volume_type),
            wal_volume=shard.wal_volume,
            networks=list(shard.networks),
            availability_zone=shard.availability_zone,
            keypair=spec.keypair,
        )

    def translate(self, spec: ClusterSpec) -> ClusterCreateRequest:
        """
        Convert a declared cluster into a create request.

        Args:
            spec: Declared cluster

        Returns:
            Request with sum(shard.size) instance descriptors

        Raises:
            ClusterValidationError: If the declaration is invalid
        """
        self.validate(spec)

        instances: list[InstanceCreateRequest] = []
        for shard in spec.shards:
            request = self.instance_request(spec, shard)
            instances.extend(request for _ in range(shard.size))

        logger.debug(
            "cluster_spec_translated",
            name=spec.name,
            shards=len(spec.shards),
            instances=len(instances),
        )

        return ClusterCreateRequest(
            name=spec.name,
            datastore=spec.datastore,
            instances=instances,
            floating_ip_enabled=spec.floating_ip_enabled,
            cloud_monitoring_enabled=spec.cloud_monitoring_enabled,
            disk_autoexpand=spec.disk_autoexpand,
            wal_disk_autoexpand=spec.wal_disk_autoexpand,
            capabilities=list(spec.capabilities),
            restore_point=spec.restore_point,
        )
