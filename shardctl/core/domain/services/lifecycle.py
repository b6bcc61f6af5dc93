"""Cluster lifecycle service - create, read, update, delete and import."""

from typing import Optional

import structlog

from shardctl.core.domain.context import ClusterContext
from shardctl.core.domain.errors import (
    ClusterCreateError,
    ClusterDeleteError,
    ClusterNotFoundError,
    ImmutableFieldError,
    OperationCancelledError,
    PollError,
    ShardctlError,
)
from shardctl.core.domain.models import (
    IMPORTED_VOLUME_TYPE,
    CapabilitySpec,
    ClusterSpec,
    ClusterState,
    ClusterStatus,
    ClusterTopology,
    Datastore,
    OperationKind,
    ReconciledShardView,
)
from shardctl.core.domain.services.actions import (
    AttachConfiguration,
    UpdateActionExecutor,
    cluster_status_fetcher,
)
from shardctl.core.domain.services.poller import OperationPoller
from shardctl.core.domain.services.reconciler import TopologyReconciler
from shardctl.core.domain.services.sequencer import ChangePlan, UpdateSequencer
from shardctl.core.domain.services.translator import SpecTranslator
from shardctl.core.ports.inbound.cluster import IClusterLifecyclePort

logger = structlog.get_logger(__name__)


def declared_state(cluster_id: str, spec: ClusterSpec, region: Optional[str] = None) -> ClusterState:
    """
    Build a state record from a declaration alone.

    Used as the `previous` of the first read after create or update, so
    declared order and non-observable fields carry over.
    """
    return ClusterState(
        cluster_id=cluster_id,
        status=ClusterStatus.BUILDING,
        region=region,
        name=spec.name,
        datastore=spec.datastore,
        shards=[
            ReconciledShardView(
                shard_id=shard.shard_id,
                size=shard.size,
                flavor_id=shard.flavor_id or None,
                volume_size=shard.volume_size,
                wal_volume=shard.wal_volume,
                volume_type=shard.volume_type,
                networks=list(shard.networks),
                availability_zone=shard.availability_zone,
            )
            for shard in spec.shards
        ],
        floating_ip_enabled=spec.floating_ip_enabled,
        keypair=spec.keypair,
        cloud_monitoring_enabled=spec.cloud_monitoring_enabled,
        disk_autoexpand=spec.disk_autoexpand,
        wal_disk_autoexpand=spec.wal_disk_autoexpand,
        configuration_id=spec.configuration_id,
        capabilities=list(spec.capabilities),
        restore_point=spec.restore_point,
    )


class ClusterLifecycleService(IClusterLifecyclePort):
    """
    Drives one sharded cluster through its lifecycle.

    The service holds no per-cluster state. Everything it needs about a
    cluster arrives through the context and the last known state, so a
    single instance can serve many clusters concurrently.
    """

    def __init__(
        self,
        translator: Optional[SpecTranslator] = None,
        poller: Optional[OperationPoller] = None,
        reconciler: Optional[TopologyReconciler] = None,
        executor: Optional[UpdateActionExecutor] = None,
        sequencer: Optional[UpdateSequencer] = None,
    ):
        self._translator = translator or SpecTranslator()
        self._poller = poller or OperationPoller()
        self._reconciler = reconciler or TopologyReconciler()
        self._executor = executor or UpdateActionExecutor(self._poller)
        self._sequencer = sequencer or UpdateSequencer(self._executor, self._translator)

    # === Create ===

    async def create(self, context: ClusterContext, spec: ClusterSpec) -> ClusterState:
        """
        Submit the cluster, wait until it is ACTIVE, then attach its configuration.

        Raises:
            ClusterValidationError: Declaration is invalid; nothing was submitted
            ClusterCreateError: Cluster was submitted but did not become ready
        """
        request = self._translator.translate(spec)
        cluster_id = await context.client.create(request)

        logger.info(
            "cluster_create_submitted",
            cluster_id=cluster_id,
            name=spec.name,
            instances=len(request.instances),
        )

        try:
            operation = context.pending_operation(
                OperationKind.CREATE,
                cluster_id,
                pending=[ClusterStatus.BUILDING],
                target=ClusterStatus.ACTIVE,
            )
            await self._poller.wait(
                operation,
                cluster_status_fetcher(
                    context.client,
                    cluster_id,
                    capabilities=[c.name for c in spec.capabilities],
                ),
                delay=context.timeouts.delay,
                min_interval=context.timeouts.min_interval,
                cancel_event=context.cancel_event,
                max_interval=context.timeouts.max_interval,
            )

            if spec.configuration_id:
                logger.info(
                    "configuration_attaching",
                    cluster_id=cluster_id,
                    configuration_id=spec.configuration_id,
                )
                await self._executor.execute(
                    context,
                    cluster_id,
                    AttachConfiguration(configuration_id=spec.configuration_id),
                )
        except OperationCancelledError:
            raise
        except ShardctlError as e:
            logger.error("cluster_create_failed", cluster_id=cluster_id, error=str(e))
            raise ClusterCreateError(cluster_id, e) from e

        state = await self.read(context, cluster_id, declared_state(cluster_id, spec, context.region))
        if state is None:
            raise ClusterCreateError(cluster_id, ClusterNotFoundError(cluster_id))

        logger.info("cluster_created", cluster_id=cluster_id, shards=len(state.shards))
        return state

    # === Read ===

    async def read(
        self,
        context: ClusterContext,
        cluster_id: str,
        previous: Optional[ClusterState] = None,
    ) -> Optional[ClusterState]:
        """Reconcile remote truth with the last known state. None if the cluster is gone."""
        try:
            topology = await context.client.get(cluster_id)
        except ClusterNotFoundError:
            logger.warning("cluster_gone", cluster_id=cluster_id)
            return None

        return self._build_state(context, topology, previous)

    def _build_state(
        self,
        context: ClusterContext,
        topology: ClusterTopology,
        previous: Optional[ClusterState],
        default_volume_type: Optional[str] = None,
        capabilities: Optional[list[CapabilitySpec]] = None,
    ) -> ClusterState:
        declared = previous.to_spec() if previous is not None else None
        declared_shards = declared.shards if declared is not None else []

        views = self._reconciler.reconcile(topology.instances, [s.shard_id for s in declared_shards])
        views = self._reconciler.overlay(views, declared_shards, default_volume_type)

        for view in views:
            if any(network.port for network in view.networks):
                logger.warning(
                    "network_port_deprecated",
                    cluster_id=topology.cluster_id,
                    shard_id=view.shard_id,
                    hint="use subnet_id instead",
                )

        if declared is None:
            declared = ClusterSpec(name=topology.name)

        # Autoexpand is only tracked when declared
        disk_autoexpand = declared.disk_autoexpand
        if disk_autoexpand is not None or previous is None:
            disk_autoexpand = topology.disk_autoexpand or disk_autoexpand
        wal_disk_autoexpand = declared.wal_disk_autoexpand
        if wal_disk_autoexpand is not None or previous is None:
            wal_disk_autoexpand = topology.wal_disk_autoexpand or wal_disk_autoexpand

        monitoring = declared.cloud_monitoring_enabled
        if topology.cloud_monitoring_enabled is not None:
            monitoring = topology.cloud_monitoring_enabled

        state = ClusterState(
            cluster_id=topology.cluster_id,
            status=topology.status,
            region=context.region or (previous.region if previous is not None else None),
            name=topology.name or declared.name,
            datastore=topology.datastore or declared.datastore or Datastore(),
            shards=views,
            floating_ip_enabled=declared.floating_ip_enabled,
            keypair=declared.keypair,
            cloud_monitoring_enabled=monitoring,
            disk_autoexpand=disk_autoexpand,
            wal_disk_autoexpand=wal_disk_autoexpand,
            configuration_id=topology.configuration_id,
            capabilities=capabilities if capabilities is not None else list(declared.capabilities),
            restore_point=declared.restore_point,
        )

        logger.debug(
            "cluster_reconciled",
            cluster_id=state.cluster_id,
            status=state.status.value,
            shards=[(s.shard_id, s.size) for s in state.shards],
        )
        return state

    # === Update ===

    def plan(self, previous: ClusterState, desired: ClusterSpec) -> ChangePlan:
        """
        Compute what an update would do, without calling the remote side.

        Raises:
            ClusterValidationError: Desired state is invalid
        """
        return self._sequencer.diff(previous.to_spec(), desired)

    async def update(
        self,
        context: ClusterContext,
        previous: ClusterState,
        desired: ClusterSpec,
    ) -> ClusterState:
        """
        Apply the update actions between `previous` and `desired`, then re-read.

        Raises:
            ImmutableFieldError: Cluster would have to be re-created
            ClusterValidationError: Desired state is invalid
            UpdateFailedError: An action failed; later actions were abandoned
        """
        cluster_id = previous.cluster_id
        change = self.plan(previous, desired)
        if change.requires_replace:
            raise ImmutableFieldError(change.replace_fields)

        logger.info(
            "cluster_update_started",
            cluster_id=cluster_id,
            actions=[a.describe() for a in change.actions],
        )
        await self._sequencer.apply(context, cluster_id, change.actions)

        state = await self.read(context, cluster_id, declared_state(cluster_id, desired, previous.region))
        if state is None:
            raise ClusterNotFoundError(cluster_id)
        return state

    # === Delete ===

    async def delete(self, context: ClusterContext, cluster_id: str) -> None:
        """
        Delete the cluster and wait until the remote reports it DELETED.

        A cluster that is already gone counts as deleted.

        Raises:
            ClusterDeleteError: Deletion did not complete
        """
        try:
            await context.client.delete(cluster_id)
        except ClusterNotFoundError:
            logger.info("cluster_already_deleted", cluster_id=cluster_id)
            return

        logger.info("cluster_delete_submitted", cluster_id=cluster_id)

        operation = context.pending_operation(
            OperationKind.DELETE,
            cluster_id,
            pending=[ClusterStatus.ACTIVE, ClusterStatus.DELETING],
            target=ClusterStatus.DELETED,
        )
        try:
            await self._poller.wait(
                operation,
                cluster_status_fetcher(
                    context.client,
                    cluster_id,
                    missing_status=ClusterStatus.DELETED,
                ),
                delay=context.timeouts.delay,
                min_interval=context.timeouts.min_interval,
                cancel_event=context.cancel_event,
                max_interval=context.timeouts.max_interval,
            )
        except OperationCancelledError:
            raise
        except PollError as e:
            logger.error("cluster_delete_failed", cluster_id=cluster_id, error=str(e))
            raise ClusterDeleteError(cluster_id, e) from e

        logger.info("cluster_deleted", cluster_id=cluster_id)

    # === Import ===

    async def import_cluster(self, context: ClusterContext, cluster_id: str) -> ClusterState:
        """
        Build state for a cluster created elsewhere.

        Volume types cannot be observed, so they get the IMPORTED
        placeholder.

        Raises:
            ClusterNotFoundError: Cluster does not exist
        """
        topology = await context.client.get(cluster_id)
        remote_capabilities = await context.client.get_capabilities(cluster_id)

        state = self._build_state(
            context,
            topology,
            None,
            default_volume_type=IMPORTED_VOLUME_TYPE,
            capabilities=[
                CapabilitySpec(name=c.name, settings=dict(c.settings)) for c in remote_capabilities
            ],
        )

        logger.info(
            "cluster_imported",
            cluster_id=cluster_id,
            shards=len(state.shards),
            instances=state.instance_count(),
        )
        return state
