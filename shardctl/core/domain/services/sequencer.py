"""Change-driven update sequencer."""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from shardctl.core.domain.context import ClusterContext
from shardctl.core.domain.errors import (
    ClusterValidationError,
    OperationCancelledError,
    ShardctlError,
    ShrinkOptionsError,
    UpdateFailedError,
)
from shardctl.core.domain.models import AutoExpand, ClusterSpec, ShardSpec
from shardctl.core.domain.services.actions import (
    ApplyCapabilities,
    AttachConfiguration,
    GrowShard,
    ResizeFlavor,
    ResizeVolume,
    ResizeWalVolume,
    ShrinkShard,
    ToggleCloudMonitoring,
    UpdateAction,
    UpdateActionExecutor,
    UpdateDiskAutoexpand,
    UpdateWalDiskAutoexpand,
)
from shardctl.core.domain.services.translator import SpecTranslator

logger = structlog.get_logger(__name__)

IMMUTABLE_FIELDS = ("name", "datastore", "floating_ip_enabled", "keypair", "restore_point")


@dataclass
class ChangePlan:
    """Result of diffing the last known state against the desired one."""

    replace_fields: list[str] = field(default_factory=list)
    actions: list[UpdateAction] = field(default_factory=list)

    @property
    def requires_replace(self) -> bool:
        return bool(self.replace_fields)

    def is_empty(self) -> bool:
        return not self.replace_fields and not self.actions


def _autoexpand(value: Optional[AutoExpand]) -> AutoExpand:
    # A removed block means autoexpand is off
    return value if value is not None else AutoExpand()


class UpdateSequencer:
    """
    Turns field-level changes into an ordered list of update actions.

    Cluster-wide actions come first in a fixed order:
    configuration, disk autoexpand, WAL autoexpand, capabilities,
    monitoring. Shard actions follow, shard by shard in declared order:
    volume, WAL volume, flavor, then at most one grow or shrink.

    Actions run one at a time. The first failure stops the cycle.
    """

    def __init__(
        self,
        executor: Optional[UpdateActionExecutor] = None,
        translator: Optional[SpecTranslator] = None,
    ):
        self._executor = executor or UpdateActionExecutor()
        self._translator = translator or SpecTranslator()

    def immutable_changes(self, previous: ClusterSpec, desired: ClusterSpec) -> list[str]:
        """
        List fields whose change forces the cluster to be re-created.

        Returns:
            Field paths, e.g. ``datastore`` or ``shard.s1.networks``
        """
        changed = [
            name for name in IMMUTABLE_FIELDS if getattr(previous, name) != getattr(desired, name)
        ]

        if set(previous.shard_ids()) != set(desired.shard_ids()):
            changed.append("shard.shard_id")

        for shard in desired.shards:
            before = previous.get_shard(shard.shard_id)
            if before is None:
                continue
            if before.networks != shard.networks:
                changed.append(f"shard.{shard.shard_id}.networks")
            if before.availability_zone != shard.availability_zone:
                changed.append(f"shard.{shard.shard_id}.availability_zone")

        return changed

    def plan(self, previous: ClusterSpec, desired: ClusterSpec) -> list[UpdateAction]:
        """
        Compute the update actions needed to move from `previous` to `desired`.

        Args:
            previous: Last known state
            desired: Desired state

        Returns:
            Actions in execution order

        Raises:
            ClusterValidationError: Desired state cannot be reached by updates
            ShrinkOptionsError: Shrink options do not match the size change
        """
        self._translator.validate(desired)

        actions: list[UpdateAction] = []

        if previous.configuration_id != desired.configuration_id:
            actions.append(
                AttachConfiguration(
                    configuration_id=desired.configuration_id,
                    previous_id=previous.configuration_id,
                )
            )

        if _autoexpand(previous.disk_autoexpand) != _autoexpand(desired.disk_autoexpand):
            actions.append(UpdateDiskAutoexpand(autoexpand=_autoexpand(desired.disk_autoexpand)))

        if _autoexpand(previous.wal_disk_autoexpand) != _autoexpand(desired.wal_disk_autoexpand):
            actions.append(
                UpdateWalDiskAutoexpand(autoexpand=_autoexpand(desired.wal_disk_autoexpand))
            )

        if previous.capabilities != desired.capabilities:
            if desired.capabilities:
                actions.append(ApplyCapabilities(capabilities=tuple(desired.capabilities)))
            else:
                logger.warning(
                    "capabilities_removal_ignored",
                    capabilities=[c.name for c in previous.capabilities],
                )

        if previous.cloud_monitoring_enabled != desired.cloud_monitoring_enabled:
            actions.append(ToggleCloudMonitoring(enabled=desired.cloud_monitoring_enabled))

        for shard in desired.shards:
            before = previous.get_shard(shard.shard_id)
            if before is not None:
                actions.extend(self._plan_shard(desired, before, shard))

        logger.debug(
            "update_planned",
            name=desired.name,
            actions=[a.describe() for a in actions],
        )
        return actions

    def _plan_shard(
        self, desired: ClusterSpec, before: ShardSpec, shard: ShardSpec
    ) -> list[UpdateAction]:
        actions: list[UpdateAction] = []

        if shard.volume_size is not None and before.volume_size != shard.volume_size:
            actions.append(ResizeVolume(shard_id=shard.shard_id, size=shard.volume_size))

        if before.volume_type != shard.volume_type:
            logger.warning(
                "volume_type_change_ignored",
                shard_id=shard.shard_id,
                previous=before.volume_type,
                desired=shard.volume_type,
            )

        if before.wal_volume is not None and shard.wal_volume is None:
            raise ClusterValidationError(
                f"Unable to determine wal_volume of shard {shard.shard_id}",
                field=f"shard.{shard.shard_id}.wal_volume",
            )
        if shard.wal_volume is not None:
            before_size = before.wal_volume.size if before.wal_volume is not None else None
            if before_size != shard.wal_volume.size:
                actions.append(
                    ResizeWalVolume(shard_id=shard.shard_id, size=shard.wal_volume.size)
                )

        if shard.flavor_id and before.flavor_id != shard.flavor_id:
            actions.append(ResizeFlavor(shard_id=shard.shard_id, flavor_id=shard.flavor_id))

        delta = shard.size - before.size
        if delta > 0:
            actions.append(
                GrowShard(
                    shard_id=shard.shard_id,
                    count=delta,
                    instance=self._translator.instance_request(desired, shard),
                )
            )
        elif delta < 0:
            if shard.shrink_options and len(shard.shrink_options) != -delta:
                raise ShrinkOptionsError(
                    shard.shard_id,
                    f"expected {-delta} instance ids, got {len(shard.shrink_options)}",
                )
            actions.append(
                ShrinkShard(
                    shard_id=shard.shard_id,
                    count=-delta,
                    shrink_options=tuple(shard.shrink_options),
                )
            )

        return actions

    def diff(self, previous: ClusterSpec, desired: ClusterSpec) -> ChangePlan:
        """
        Compute replacement fields and, when none, the update actions.

        Raises:
            ClusterValidationError: Desired state is invalid
        """
        replace_fields = self.immutable_changes(previous, desired)
        if replace_fields:
            self._translator.validate(desired)
            return ChangePlan(replace_fields=replace_fields)
        return ChangePlan(actions=self.plan(previous, desired))

    async def apply(
        self,
        context: ClusterContext,
        cluster_id: str,
        actions: list[UpdateAction],
    ) -> None:
        """
        Execute actions one after another.

        Raises:
            UpdateFailedError: An action failed; later actions were not issued
            OperationCancelledError: Cancellation was requested through the context
        """
        for index, action in enumerate(actions):
            if context.cancelled:
                logger.warning(
                    "update_cancelled",
                    cluster_id=cluster_id,
                    abandoned=[a.describe() for a in actions[index:]],
                )
                raise OperationCancelledError(cluster_id)
            try:
                await self._executor.execute(context, cluster_id, action)
            except OperationCancelledError:
                raise
            except ShardctlError as e:
                abandoned = actions[index + 1:]
                logger.error(
                    "update_halted",
                    cluster_id=cluster_id,
                    action=action.kind.value,
                    shard_id=action.shard_id,
                    abandoned=[a.describe() for a in abandoned],
                )
                raise UpdateFailedError(cluster_id, action, e, abandoned) from e

        logger.info("update_applied", cluster_id=cluster_id, actions=len(actions))
