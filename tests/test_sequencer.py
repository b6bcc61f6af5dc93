import pytest

from shardctl.core.adapters.memory_adapter import InMemoryControlPlaneAdapter
from shardctl.core.domain.context import ClusterContext
from shardctl.core.domain.errors import (
    ClusterValidationError,
    GrowError,
    OperationCancelledError,
    ShrinkOptionsError,
    UpdateFailedError,
)
from shardctl.core.domain.models import (
    ActionKind,
    AutoExpand,
    CapabilitySpec,
    ClusterSpec,
    Datastore,
    Network,
    ShardSpec,
    WalVolume,
)
from shardctl.core.domain.services.actions import (
    ApplyCapabilities,
    AttachConfiguration,
    GrowShard,
    ResizeFlavor,
    ResizeVolume,
    ResizeWalVolume,
    ShrinkShard,
    ToggleCloudMonitoring,
    UpdateDiskAutoexpand,
    UpdateWalDiskAutoexpand,
)
from shardctl.core.domain.services.sequencer import UpdateSequencer


def _shard(shard_id: str = "X", **kwargs) -> ShardSpec:
    values = {"shard_id": shard_id, "size": 2, "flavor_id": "f-1", "volume_size": 10}
    values.update(kwargs)
    return ShardSpec(**values)


def _spec(*shards: ShardSpec, **kwargs) -> ClusterSpec:
    values = {
        "name": "analytics",
        "datastore": Datastore(type="clickhouse", version="23.8"),
        "shards": list(shards) or [_shard()],
    }
    values.update(kwargs)
    return ClusterSpec(**values)


class _RecordingExecutor:
    def __init__(self, fail_on: ActionKind | None = None) -> None:
        self.executed: list = []
        self._fail_on = fail_on

    async def execute(self, context, cluster_id, action) -> None:
        if action.kind == self._fail_on:
            raise GrowError(cluster_id, RuntimeError("quota exceeded"), shard_id=action.shard_id)
        self.executed.append(action)


class _CancellingExecutor(_RecordingExecutor):
    async def execute(self, context, cluster_id, action) -> None:
        await super().execute(context, cluster_id, action)
        context.cancel()


def test_plan_without_changes_is_empty() -> None:
    spec = _spec()

    assert UpdateSequencer().plan(spec, spec) == []


def test_plan_orders_configuration_capabilities_then_grow() -> None:
    previous = _spec(_shard(size=1), configuration_id="cfg-1")
    desired = _spec(
        _shard(size=2),
        configuration_id="cfg-2",
        capabilities=[CapabilitySpec(name="backup")],
    )

    actions = UpdateSequencer().plan(previous, desired)

    assert [type(a) for a in actions] == [AttachConfiguration, ApplyCapabilities, GrowShard]
    assert actions[0].previous_id == "cfg-1"
    assert actions[0].configuration_id == "cfg-2"
    assert actions[2].count == 1


def test_plan_orders_all_cluster_actions_before_shard_actions() -> None:
    previous = _spec(
        _shard("A", size=2, wal_volume=WalVolume(size=5)),
        _shard("B", size=3),
    )
    desired = _spec(
        _shard("A", size=3, volume_size=20, flavor_id="f-2", wal_volume=WalVolume(size=8)),
        _shard("B", size=2),
        configuration_id="cfg-1",
        disk_autoexpand=AutoExpand(enabled=True, max_disk_size=100),
        wal_disk_autoexpand=AutoExpand(enabled=True, max_disk_size=50),
        capabilities=[CapabilitySpec(name="backup")],
        cloud_monitoring_enabled=True,
    )

    actions = UpdateSequencer().plan(previous, desired)

    assert [type(a) for a in actions] == [
        AttachConfiguration,
        UpdateDiskAutoexpand,
        UpdateWalDiskAutoexpand,
        ApplyCapabilities,
        ToggleCloudMonitoring,
        ResizeVolume,
        ResizeWalVolume,
        ResizeFlavor,
        GrowShard,
        ShrinkShard,
    ]
    assert [a.shard_id for a in actions[5:]] == ["A", "A", "A", "A", "B"]


def test_plan_follows_declared_shard_order() -> None:
    previous = _spec(_shard("A"), _shard("B"))
    desired = _spec(_shard("B", volume_size=30), _shard("A", volume_size=30))

    actions = UpdateSequencer().plan(previous, desired)

    assert [a.shard_id for a in actions] == ["B", "A"]


def test_plan_grow_carries_instance_request() -> None:
    previous = _spec(_shard(size=1))
    desired = _spec(_shard(size=4, volume_type="ceph-ssd"), keypair=None)

    (grow,) = UpdateSequencer().plan(previous, desired)

    assert isinstance(grow, GrowShard)
    assert grow.count == 3
    assert grow.instance.shard_id == "X"
    assert grow.instance.flavor_id == "f-1"
    assert grow.instance.volume.size == 10


def test_plan_shrink_sized_to_delta() -> None:
    (shrink,) = UpdateSequencer().plan(_spec(_shard(size=3)), _spec(_shard(size=1)))

    assert isinstance(shrink, ShrinkShard)
    assert shrink.count == 2
    assert shrink.shrink_options == ()


def test_plan_rejects_shrink_options_of_wrong_length() -> None:
    previous = _spec(_shard(size=3))
    desired = _spec(_shard(size=1, shrink_options=["i-1"]))

    with pytest.raises(ShrinkOptionsError) as exc:
        UpdateSequencer().plan(previous, desired)

    assert exc.value.shard_id == "X"


def test_plan_disabling_autoexpand_by_removing_block() -> None:
    previous = _spec(disk_autoexpand=AutoExpand(enabled=True, max_disk_size=100))
    desired = _spec()

    (action,) = UpdateSequencer().plan(previous, desired)

    assert isinstance(action, UpdateDiskAutoexpand)
    assert action.autoexpand == AutoExpand(enabled=False, max_disk_size=0)


def test_plan_rejects_removed_wal_volume() -> None:
    previous = _spec(_shard(wal_volume=WalVolume(size=5)))
    desired = _spec(_shard())

    with pytest.raises(ClusterValidationError):
        UpdateSequencer().plan(previous, desired)


def test_plan_ignores_volume_type_change() -> None:
    previous = _spec(_shard(volume_type="ceph-hdd"))
    desired = _spec(_shard(volume_type="ceph-ssd"))

    assert UpdateSequencer().plan(previous, desired) == []


def test_plan_detaches_when_configuration_cleared() -> None:
    (action,) = UpdateSequencer().plan(_spec(configuration_id="cfg-1"), _spec())

    assert isinstance(action, AttachConfiguration)
    assert action.configuration_id is None
    assert action.previous_id == "cfg-1"


def test_immutable_changes_lists_replacement_fields() -> None:
    previous = _spec(_shard("A"), _shard("B"))
    desired = _spec(
        _shard("A", networks=[Network(uuid="net-2")], availability_zone="GZ1"),
        _shard("C"),
        datastore=Datastore(type="clickhouse", version="24.3"),
        keypair="other",
    )

    changed = UpdateSequencer().immutable_changes(previous, desired)

    assert changed == [
        "datastore",
        "keypair",
        "shard.shard_id",
        "shard.A.networks",
        "shard.A.availability_zone",
    ]


def test_diff_returns_replacement_without_actions() -> None:
    previous = _spec(_shard(size=1))
    desired = _spec(_shard(size=2), name="renamed")

    plan = UpdateSequencer().diff(previous, desired)

    assert plan.requires_replace
    assert plan.replace_fields == ["name"]
    assert plan.actions == []


@pytest.mark.asyncio
async def test_apply_runs_actions_in_order() -> None:
    executor = _RecordingExecutor()
    sequencer = UpdateSequencer(executor=executor)
    actions = sequencer.plan(
        _spec(_shard(size=1)),
        _spec(_shard(size=2), cloud_monitoring_enabled=True),
    )
    context = ClusterContext(client=InMemoryControlPlaneAdapter())

    await sequencer.apply(context, "c-1", actions)

    assert executor.executed == actions


@pytest.mark.asyncio
async def test_apply_halts_on_first_failure() -> None:
    executor = _RecordingExecutor(fail_on=ActionKind.GROW)
    sequencer = UpdateSequencer(executor=executor)
    previous = _spec(_shard("A", size=1), _shard("B"))
    desired = _spec(_shard("A", size=2), _shard("B", volume_size=50), configuration_id="cfg-1")
    actions = sequencer.plan(previous, desired)
    context = ClusterContext(client=InMemoryControlPlaneAdapter())

    with pytest.raises(UpdateFailedError) as exc:
        await sequencer.apply(context, "c-1", actions)

    error = exc.value
    assert [type(a) for a in executor.executed] == [AttachConfiguration]
    assert isinstance(error.action, GrowShard)
    assert error.shard_id == "A"
    assert error.cluster_id == "c-1"
    assert isinstance(error.cause, GrowError)
    assert [type(a) for a in error.abandoned] == [ResizeVolume]
    assert "c-1" in str(error)


@pytest.mark.asyncio
async def test_apply_stops_before_next_action_once_cancelled() -> None:
    executor = _CancellingExecutor()
    sequencer = UpdateSequencer(executor=executor)
    actions = sequencer.plan(
        _spec(_shard(size=1)),
        _spec(_shard(size=2), cloud_monitoring_enabled=True),
    )
    context = ClusterContext(client=InMemoryControlPlaneAdapter())

    with pytest.raises(OperationCancelledError) as exc:
        await sequencer.apply(context, "c-1", actions)

    assert executor.executed == actions[:1]
    assert exc.value.target_id == "c-1"
