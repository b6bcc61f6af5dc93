"""In-memory control plane adapter implementation."""

from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import uuid4

import structlog

from shardctl.core.domain.errors import ClusterNotFoundError, RemoteAPIError
from shardctl.core.domain.models import (
    LEADER_ROLE,
    ActionKind,
    AutoExpand,
    CapabilityStatus,
    ClusterCapability,
    ClusterCreateRequest,
    ClusterInstance,
    ClusterStatus,
    ClusterTopology,
)
from shardctl.core.ports.outbound.control_plane import IControlPlanePort

logger = structlog.get_logger(__name__)

CAPABILITY_PENDING = "PENDING"


@dataclass
class _SimulatedCluster:
    topology: ClusterTopology
    capabilities: dict[str, ClusterCapability] = field(default_factory=dict)
    settle_status: Optional[ClusterStatus] = None
    polls_left: int = 0
    next_index: int = 0


class InMemoryControlPlaneAdapter(IControlPlanePort):
    """
    In-memory implementation of the control plane port.

    Simulates the remote side for development and tests: every mutating
    call moves the cluster into a transitional status that settles after
    `settle_polls` further `get` calls. The first instance of each shard
    is reported as its leader.

    All calls are recorded in `calls` as `(method, cluster_id, detail)`.
    """

    def __init__(self, settle_polls: int = 1):
        """
        Initialize adapter.

        Args:
            settle_polls: Number of `get` calls a transition takes
        """
        self._settle_polls = settle_polls
        self._clusters: dict[str, _SimulatedCluster] = {}
        self._failures: dict[ActionKind, ClusterStatus] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self.closed = False

    # === Simulation controls ===

    def fail_next(self, kind: ActionKind, status: ClusterStatus = ClusterStatus.ERROR) -> None:
        """Make the next action of `kind` settle in `status` instead of ACTIVE."""
        self._failures[kind] = status

    def set_status(self, cluster_id: str, status: ClusterStatus) -> None:
        """Force the reported status of a cluster."""
        cluster = self._cluster(cluster_id)
        cluster.topology = cluster.topology.model_copy(update={"status": status})
        cluster.settle_status = None

    def set_role(self, cluster_id: str, instance_id: str, role: Optional[str]) -> None:
        """Force the reported role of an instance."""
        cluster = self._cluster(cluster_id)
        cluster.topology = cluster.topology.model_copy(
            update={
                "instances": [
                    i.model_copy(update={"role": role}) if i.instance_id == instance_id else i
                    for i in cluster.topology.instances
                ]
            }
        )

    def calls_of(self, method: str) -> list[tuple[str, str, Any]]:
        """Get recorded calls of one method."""
        return [c for c in self.calls if c[0] == method]

    # === Port ===

    async def create(self, request: ClusterCreateRequest) -> str:
        cluster_id = str(uuid4())
        self.calls.append(("create", cluster_id, request))

        cluster = _SimulatedCluster(
            topology=ClusterTopology(
                cluster_id=cluster_id,
                status=ClusterStatus.BUILDING,
                name=request.name,
                datastore=request.datastore,
                disk_autoexpand=request.disk_autoexpand,
                wal_disk_autoexpand=request.wal_disk_autoexpand,
                cloud_monitoring_enabled=request.cloud_monitoring_enabled,
            ),
            capabilities={
                c.name: ClusterCapability(
                    name=c.name, status=CAPABILITY_PENDING, settings=dict(c.settings)
                )
                for c in request.capabilities
            },
        )
        self._clusters[cluster_id] = cluster

        for instance in request.instances:
            self._add_instance(
                cluster,
                instance.shard_id,
                instance.flavor_id,
                instance.volume.size,
                instance.wal_volume.size if instance.wal_volume is not None else None,
            )
        self._transition(cluster, ClusterStatus.ACTIVE)

        logger.debug("simulated_cluster_created", cluster_id=cluster_id)
        return cluster_id

    async def get(self, cluster_id: str) -> ClusterTopology:
        self.calls.append(("get", cluster_id, None))
        cluster = self._cluster(cluster_id)

        if cluster.settle_status is not None:
            cluster.polls_left -= 1
            if cluster.polls_left <= 0:
                self._settle(cluster)

        topology = cluster.topology.model_copy(deep=True)
        if topology.status == ClusterStatus.DELETED:
            del self._clusters[cluster_id]
        return topology

    async def delete(self, cluster_id: str) -> None:
        self.calls.append(("delete", cluster_id, None))
        cluster = self._cluster(cluster_id)
        cluster.topology = cluster.topology.model_copy(update={"status": ClusterStatus.DELETING})
        self._transition(cluster, ClusterStatus.DELETED)

    async def act(self, cluster_id: str, kind: ActionKind, payload: dict[str, Any]) -> None:
        self.calls.append(("act", cluster_id, (kind, payload)))
        cluster = self._cluster(cluster_id)

        if cluster.topology.status != ClusterStatus.ACTIVE:
            raise RemoteAPIError(
                f"Cluster {cluster_id} is {cluster.topology.status.value}",
                status_code=409,
            )

        self._apply(cluster, kind, payload)
        cluster.topology = cluster.topology.model_copy(update={"status": ClusterStatus.BUILDING})
        self._transition(cluster, self._failures.pop(kind, ClusterStatus.ACTIVE))

    async def get_capabilities(self, cluster_id: str) -> list[ClusterCapability]:
        self.calls.append(("get_capabilities", cluster_id, None))
        return list(self._cluster(cluster_id).capabilities.values())

    async def close(self) -> None:
        self.closed = True

    # === Internals ===

    def _cluster(self, cluster_id: str) -> _SimulatedCluster:
        cluster = self._clusters.get(cluster_id)
        if cluster is None:
            raise ClusterNotFoundError(cluster_id)
        return cluster

    def _transition(self, cluster: _SimulatedCluster, status: ClusterStatus) -> None:
        cluster.settle_status = status
        cluster.polls_left = self._settle_polls
        if self._settle_polls <= 0:
            self._settle(cluster)

    def _settle(self, cluster: _SimulatedCluster) -> None:
        status = cluster.settle_status
        cluster.settle_status = None
        if status is None:
            return
        cluster.topology = cluster.topology.model_copy(update={"status": status})
        if status == ClusterStatus.ACTIVE:
            for name, capability in cluster.capabilities.items():
                if capability.status == CAPABILITY_PENDING:
                    cluster.capabilities[name] = capability.model_copy(
                        update={"status": CapabilityStatus.ACTIVE.value}
                    )

    def _add_instance(
        self,
        cluster: _SimulatedCluster,
        shard_id: str,
        flavor_id: Optional[str],
        volume_size: Optional[int],
        wal_volume_size: Optional[int],
    ) -> None:
        cluster.next_index += 1
        index = cluster.next_index
        has_leader = any(i.shard_id == shard_id for i in cluster.topology.instances)
        instance = ClusterInstance(
            instance_id=f"{cluster.topology.cluster_id[:8]}-{index}",
            shard_id=shard_id,
            ips=[f"10.0.0.{index}"],
            role="replica" if has_leader else LEADER_ROLE,
            status=ClusterStatus.ACTIVE.value,
            flavor_id=flavor_id,
            volume_size=volume_size,
            wal_volume_size=wal_volume_size,
        )
        cluster.topology = cluster.topology.model_copy(
            update={"instances": [*cluster.topology.instances, instance]}
        )

    def _update_shard(self, cluster: _SimulatedCluster, shard_id: str, **changes: Any) -> None:
        cluster.topology = cluster.topology.model_copy(
            update={
                "instances": [
                    i.model_copy(update=changes) if i.shard_id == shard_id else i
                    for i in cluster.topology.instances
                ]
            }
        )

    def _apply(self, cluster: _SimulatedCluster, kind: ActionKind, payload: dict[str, Any]) -> None:
        topology = cluster.topology

        if kind == ActionKind.ATTACH_CONFIGURATION:
            cluster.topology = topology.model_copy(
                update={"configuration_id": payload["configuration_id"]}
            )
        elif kind == ActionKind.DETACH_CONFIGURATION:
            cluster.topology = topology.model_copy(update={"configuration_id": None})
        elif kind in (ActionKind.UPDATE_AUTOEXPAND, ActionKind.UPDATE_WAL_AUTOEXPAND):
            key = "disk_autoexpand" if kind == ActionKind.UPDATE_AUTOEXPAND else "wal_disk_autoexpand"
            autoexpand = AutoExpand(
                enabled=payload["autoexpand"],
                max_disk_size=payload.get("max_disk_size", 0),
            )
            cluster.topology = topology.model_copy(update={key: autoexpand})
        elif kind == ActionKind.APPLY_CAPABILITIES:
            for capability in payload["capabilities"]:
                cluster.capabilities[capability["name"]] = ClusterCapability(
                    name=capability["name"],
                    status=CAPABILITY_PENDING,
                    settings=dict(capability.get("settings", {})),
                )
        elif kind == ActionKind.UPDATE_CLOUD_MONITORING:
            cluster.topology = topology.model_copy(
                update={"cloud_monitoring_enabled": payload["enabled"]}
            )
        elif kind == ActionKind.RESIZE_VOLUME:
            self._update_shard(cluster, payload["shard_id"], volume_size=payload["size"])
        elif kind == ActionKind.RESIZE_WAL_VOLUME:
            self._update_shard(cluster, payload["shard_id"], wal_volume_size=payload["size"])
        elif kind == ActionKind.RESIZE_FLAVOR:
            self._update_shard(cluster, payload["shard_id"], flavor_id=payload["flavor_id"])
        elif kind == ActionKind.GROW:
            for instance in payload["instances"]:
                self._add_instance(
                    cluster,
                    instance.shard_id,
                    instance.flavor_id,
                    instance.volume.size,
                    instance.wal_volume.size if instance.wal_volume else None,
                )
        elif kind == ActionKind.SHRINK:
            existing = {i.instance_id for i in topology.shard_instances(payload["shard_id"])}
            unknown = [i for i in payload["instance_ids"] if i not in existing]
            if unknown:
                raise RemoteAPIError(
                    f"Instances not in shard {payload['shard_id']}: {', '.join(unknown)}",
                    status_code=400,
                )
            removed = set(payload["instance_ids"])
            cluster.topology = topology.model_copy(
                update={"instances": [i for i in topology.instances if i.instance_id not in removed]}
            )
        else:
            raise RemoteAPIError(f"Unsupported action: {kind.value}", status_code=400)
