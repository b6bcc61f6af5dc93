"""Update actions - one record per remote change, and their executor."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Optional

import structlog

from shardctl.core.domain.context import ClusterContext
from shardctl.core.domain.errors import (
    ACTION_ERRORS,
    ClusterNotFoundError,
    NotReadyError,
    OperationCancelledError,
    ShardNotFoundError,
    ShardctlError,
    ShrinkOptionsError,
)
from shardctl.core.domain.models import (
    ActionKind,
    AutoExpand,
    CapabilitySpec,
    CapabilityStatus,
    ClusterInstance,
    ClusterStatus,
    ClusterTopology,
    InstanceCreateRequest,
    OperationKind,
)
from shardctl.core.domain.services.poller import OperationPoller
from shardctl.core.ports.outbound.control_plane import IControlPlanePort

logger = structlog.get_logger(__name__)


# === Action records ===


class UpdateAction:
    """Base of all update actions."""

    kind: ClassVar[ActionKind]

    def describe(self) -> str:
        """Short human readable description."""
        shard_id = getattr(self, "shard_id", None)
        if shard_id:
            return f"{self.kind.value}({shard_id})"
        return self.kind.value


class ClusterAction(UpdateAction):
    """Action on the cluster as a whole."""

    shard_id: ClassVar[Optional[str]] = None


@dataclass(frozen=True)
class AttachConfiguration(ClusterAction):
    """Swap the configuration group; `None` only detaches."""

    kind: ClassVar[ActionKind] = ActionKind.ATTACH_CONFIGURATION

    configuration_id: Optional[str]
    previous_id: Optional[str] = None


@dataclass(frozen=True)
class UpdateDiskAutoexpand(ClusterAction):
    kind: ClassVar[ActionKind] = ActionKind.UPDATE_AUTOEXPAND

    autoexpand: AutoExpand


@dataclass(frozen=True)
class UpdateWalDiskAutoexpand(ClusterAction):
    kind: ClassVar[ActionKind] = ActionKind.UPDATE_WAL_AUTOEXPAND

    autoexpand: AutoExpand


@dataclass(frozen=True)
class ApplyCapabilities(ClusterAction):
    kind: ClassVar[ActionKind] = ActionKind.APPLY_CAPABILITIES

    capabilities: tuple[CapabilitySpec, ...]


@dataclass(frozen=True)
class ToggleCloudMonitoring(ClusterAction):
    kind: ClassVar[ActionKind] = ActionKind.UPDATE_CLOUD_MONITORING

    enabled: bool


@dataclass(frozen=True)
class ResizeVolume(UpdateAction):
    kind: ClassVar[ActionKind] = ActionKind.RESIZE_VOLUME

    shard_id: str
    size: int


@dataclass(frozen=True)
class ResizeWalVolume(UpdateAction):
    kind: ClassVar[ActionKind] = ActionKind.RESIZE_WAL_VOLUME

    shard_id: str
    size: int


@dataclass(frozen=True)
class ResizeFlavor(UpdateAction):
    kind: ClassVar[ActionKind] = ActionKind.RESIZE_FLAVOR

    shard_id: str
    flavor_id: str


@dataclass(frozen=True)
class GrowShard(UpdateAction):
    """Add `count` instances built from the shard's create request."""

    kind: ClassVar[ActionKind] = ActionKind.GROW

    shard_id: str
    count: int
    instance: InstanceCreateRequest


@dataclass(frozen=True)
class ShrinkShard(UpdateAction):
    """
    Remove `count` instances from a shard.

    `shrink_options` names the instances to remove. When empty, the
    first non-leader instances in remote-reported order are removed.
    """

    kind: ClassVar[ActionKind] = ActionKind.SHRINK

    shard_id: str
    count: int
    shrink_options: tuple[str, ...] = ()


# === Status sampling ===


def cluster_status_fetcher(
    client: IControlPlanePort,
    cluster_id: str,
    capabilities: Optional[list[str]] = None,
    missing_status: Optional[ClusterStatus] = None,
) -> Callable[[], Awaitable[ClusterStatus]]:
    """
    Build a status fetch function for the poller.

    Args:
        client: Control plane client
        cluster_id: ID of the cluster
        capabilities: Capability names that must be ACTIVE before the
            cluster counts as ACTIVE. A capability in ERROR turns the
            observed status into ERROR.
        missing_status: Status reported when the cluster is not found.
            When unset, ClusterNotFoundError propagates.
    """

    async def fetch() -> ClusterStatus:
        try:
            topology = await client.get(cluster_id)
        except ClusterNotFoundError:
            if missing_status is None:
                raise
            return missing_status

        if topology.status != ClusterStatus.ACTIVE or not capabilities:
            return topology.status

        remote = {c.name: c for c in await client.get_capabilities(cluster_id)}
        for name in capabilities:
            capability = remote.get(name)
            if capability is not None and capability.status == CapabilityStatus.ERROR.value:
                logger.warning("capability_failed", cluster_id=cluster_id, capability=name)
                return ClusterStatus.ERROR
            if capability is None or capability.status != CapabilityStatus.ACTIVE.value:
                return ClusterStatus.BUILDING
        return ClusterStatus.ACTIVE

    return fetch


# === Executor ===


class UpdateActionExecutor:
    """
    Runs single update actions against the control plane.

    Every action is a precondition check (cluster must be ACTIVE), one or
    more remote calls, and a poll until the cluster is ACTIVE again.
    Failures are raised as the action's own error type wrapping the cause.
    """

    def __init__(self, poller: Optional[OperationPoller] = None):
        self._poller = poller or OperationPoller()
        self._handlers: dict[ActionKind, Callable[..., Awaitable[None]]] = {
            ActionKind.ATTACH_CONFIGURATION: self._attach_configuration,
            ActionKind.UPDATE_AUTOEXPAND: self._update_autoexpand,
            ActionKind.UPDATE_WAL_AUTOEXPAND: self._update_wal_autoexpand,
            ActionKind.APPLY_CAPABILITIES: self._apply_capabilities,
            ActionKind.UPDATE_CLOUD_MONITORING: self._toggle_monitoring,
            ActionKind.RESIZE_VOLUME: self._resize_volume,
            ActionKind.RESIZE_WAL_VOLUME: self._resize_wal_volume,
            ActionKind.RESIZE_FLAVOR: self._resize_flavor,
            ActionKind.GROW: self._grow,
            ActionKind.SHRINK: self._shrink,
        }

    async def execute(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: UpdateAction,
    ) -> None:
        """
        Execute one action and wait for it to complete.

        Raises:
            NotReadyError: Cluster is not ACTIVE; nothing was issued
            ShrinkOptionsError: Shrink options do not match the shard
            OperationCancelledError: Waiting was cancelled through the context
            ClusterActionError: Remote call or completion wait failed
        """
        handler = self._handlers[action.kind]

        logger.info(
            "update_action_started",
            cluster_id=cluster_id,
            action=action.kind.value,
            shard_id=action.shard_id,
        )

        try:
            topology = await self._ready_topology(context, cluster_id)
            await handler(context, cluster_id, action, topology)
        except (NotReadyError, ShrinkOptionsError, OperationCancelledError):
            raise
        except ShardctlError as e:
            error_cls = ACTION_ERRORS[action.kind]
            logger.error(
                "update_action_failed",
                cluster_id=cluster_id,
                action=action.kind.value,
                shard_id=action.shard_id,
                error=str(e),
            )
            raise error_cls(
                cluster_id,
                e,
                shard_id=action.shard_id,
                action=action.kind,
            ) from e

        logger.info(
            "update_action_completed",
            cluster_id=cluster_id,
            action=action.kind.value,
            shard_id=action.shard_id,
        )

    async def wait_active(
        self,
        context: ClusterContext,
        cluster_id: str,
        kind: OperationKind = OperationKind.UPDATE,
        capabilities: Optional[list[str]] = None,
    ) -> None:
        """Poll until the cluster is ACTIVE, in a fresh timeout window."""
        operation = context.pending_operation(
            kind,
            cluster_id,
            pending=[ClusterStatus.BUILDING],
            target=ClusterStatus.ACTIVE,
        )
        await self._poller.wait(
            operation,
            cluster_status_fetcher(context.client, cluster_id, capabilities),
            delay=context.timeouts.delay,
            min_interval=context.timeouts.min_interval,
            cancel_event=context.cancel_event,
            max_interval=context.timeouts.max_interval,
        )

    async def _ready_topology(self, context: ClusterContext, cluster_id: str) -> ClusterTopology:
        topology = await context.client.get(cluster_id)
        if topology.status != ClusterStatus.ACTIVE:
            logger.warning(
                "cluster_not_ready",
                cluster_id=cluster_id,
                status=topology.status.value,
            )
            raise NotReadyError(cluster_id, topology.status)
        return topology

    async def _act(
        self,
        context: ClusterContext,
        cluster_id: str,
        kind: ActionKind,
        payload: dict[str, Any],
        capabilities: Optional[list[str]] = None,
    ) -> None:
        await context.client.act(cluster_id, kind, payload)
        await self.wait_active(context, cluster_id, capabilities=capabilities)

    # === Handlers ===

    async def _attach_configuration(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: AttachConfiguration,
        topology: ClusterTopology,
    ) -> None:
        if action.previous_id:
            await self._act(
                context,
                cluster_id,
                ActionKind.DETACH_CONFIGURATION,
                {"configuration_id": action.previous_id},
            )
        if action.configuration_id:
            await self._act(
                context,
                cluster_id,
                ActionKind.ATTACH_CONFIGURATION,
                {"configuration_id": action.configuration_id},
            )

    async def _update_autoexpand(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: UpdateDiskAutoexpand,
        topology: ClusterTopology,
    ) -> None:
        await self._act(
            context,
            cluster_id,
            action.kind,
            {
                "autoexpand": action.autoexpand.enabled,
                "max_disk_size": action.autoexpand.max_disk_size,
            },
        )

    async def _update_wal_autoexpand(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: UpdateWalDiskAutoexpand,
        topology: ClusterTopology,
    ) -> None:
        await self._act(
            context,
            cluster_id,
            action.kind,
            {
                "autoexpand": action.autoexpand.enabled,
                "max_disk_size": action.autoexpand.max_disk_size,
            },
        )

    async def _apply_capabilities(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: ApplyCapabilities,
        topology: ClusterTopology,
    ) -> None:
        await self._act(
            context,
            cluster_id,
            action.kind,
            {
                "capabilities": [
                    {"name": c.name, "settings": dict(c.settings)} for c in action.capabilities
                ]
            },
            capabilities=[c.name for c in action.capabilities],
        )

    async def _toggle_monitoring(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: ToggleCloudMonitoring,
        topology: ClusterTopology,
    ) -> None:
        await self._act(context, cluster_id, action.kind, {"enabled": action.enabled})

    async def _resize_volume(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: ResizeVolume,
        topology: ClusterTopology,
    ) -> None:
        await self._act(
            context,
            cluster_id,
            action.kind,
            {"shard_id": action.shard_id, "size": action.size},
        )

    async def _resize_wal_volume(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: ResizeWalVolume,
        topology: ClusterTopology,
    ) -> None:
        await self._act(
            context,
            cluster_id,
            action.kind,
            {"shard_id": action.shard_id, "size": action.size},
        )

    async def _resize_flavor(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: ResizeFlavor,
        topology: ClusterTopology,
    ) -> None:
        await self._act(
            context,
            cluster_id,
            action.kind,
            {"shard_id": action.shard_id, "flavor_id": action.flavor_id},
        )

    async def _grow(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: GrowShard,
        topology: ClusterTopology,
    ) -> None:
        await self._act(
            context,
            cluster_id,
            action.kind,
            {"shard_id": action.shard_id, "instances": [action.instance] * action.count},
        )

    async def _shrink(
        self,
        context: ClusterContext,
        cluster_id: str,
        action: ShrinkShard,
        topology: ClusterTopology,
    ) -> None:
        members = topology.shard_instances(action.shard_id)
        if not members:
            raise ShardNotFoundError(cluster_id, action.shard_id)

        instance_ids = self.select_shrink_instances(action, members)
        logger.info(
            "shrink_instances_selected",
            cluster_id=cluster_id,
            shard_id=action.shard_id,
            instance_ids=instance_ids,
        )
        await self._act(
            context,
            cluster_id,
            action.kind,
            {"shard_id": action.shard_id, "instance_ids": instance_ids},
        )

    def select_shrink_instances(
        self, action: ShrinkShard, members: list[ClusterInstance]
    ) -> list[str]:
        """
        Pick the instances a shrink removes.

        Raises:
            ShrinkOptionsError: Options have the wrong length or name
                instances outside the shard
            ShardctlError: Too few non-leader instances to remove
        """
        member_ids = [m.instance_id for m in members]

        if action.shrink_options:
            if len(action.shrink_options) != action.count:
                raise ShrinkOptionsError(
                    action.shard_id,
                    f"expected {action.count} instance ids, got {len(action.shrink_options)}",
                )
            unknown = [i for i in action.shrink_options if i not in member_ids]
            if unknown:
                raise ShrinkOptionsError(
                    action.shard_id,
                    f"instances not in shard: {', '.join(unknown)}",
                )
            if len(set(action.shrink_options)) != len(action.shrink_options):
                raise ShrinkOptionsError(action.shard_id, "instance ids are repeated")
            return list(action.shrink_options)

        candidates = [m.instance_id for m in members if not m.is_leader()]
        if len(candidates) < action.count:
            raise ShardctlError(
                f"Unable to determine {action.count} non-leader instances "
                f"to remove from shard {action.shard_id}"
            )
        return candidates[: action.count]
