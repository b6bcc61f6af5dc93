from shardctl.core.domain.models import ClusterInstance, Network, ShardSpec, WalVolume
from shardctl.core.domain.services.reconciler import TopologyReconciler


def _instance(instance_id: str, shard_id: str, **kwargs) -> ClusterInstance:
    return ClusterInstance(
        instance_id=instance_id,
        shard_id=shard_id,
        ips=[f"10.0.0.{instance_id[-1]}"],
        **kwargs,
    )


def test_reconcile_keeps_declared_order_and_appends_new_shards() -> None:
    instances = [
        _instance("i1", "A"),
        _instance("i2", "C"),
        _instance("i3", "B"),
        _instance("i4", "A"),
    ]

    views = TopologyReconciler().reconcile(instances, ["B", "A"])

    assert [(v.shard_id, v.size) for v in views] == [("B", 1), ("A", 2), ("C", 1)]


def test_reconcile_sorts_multiple_new_shards() -> None:
    instances = [_instance("i1", "z"), _instance("i2", "m"), _instance("i3", "a")]

    views = TopologyReconciler().reconcile(instances, ["m"])

    assert [v.shard_id for v in views] == ["m", "a", "z"]


def test_reconcile_drops_declared_shards_missing_remotely() -> None:
    views = TopologyReconciler().reconcile([_instance("i1", "A")], ["gone", "A"])

    assert [v.shard_id for v in views] == ["A"]


def test_reconcile_is_idempotent() -> None:
    instances = [_instance("i1", "A"), _instance("i2", "B"), _instance("i3", "A")]
    reconciler = TopologyReconciler()

    first = reconciler.reconcile(instances, ["B"])
    second = reconciler.reconcile(instances, ["B"])

    assert first == second


def test_reconcile_records_instance_identities() -> None:
    instances = [
        _instance("i1", "A", flavor_id="f-1", volume_size=10, wal_volume_size=5),
        _instance("i2", "A", flavor_id="f-1", volume_size=10, wal_volume_size=5),
    ]

    (view,) = TopologyReconciler().reconcile(instances, [])

    assert [i.instance_id for i in view.instances] == ["i1", "i2"]
    assert view.instances[0].ips == ["10.0.0.1"]
    assert view.flavor_id == "f-1"
    assert view.volume_size == 10
    assert view.wal_volume == WalVolume(size=5)
    assert view.volume_type is None


def test_overlay_matches_declarations_by_shard_id() -> None:
    reconciler = TopologyReconciler()
    views = reconciler.reconcile(
        [
            _instance("i1", "A", wal_volume_size=5),
            _instance("i2", "B"),
        ],
        ["B", "A"],
    )
    declared = [
        ShardSpec(
            shard_id="A",
            volume_type="ceph-hdd",
            wal_volume=WalVolume(size=5, volume_type="ceph-ssd"),
            networks=[Network(uuid="net-a")],
            availability_zone="GZ1",
        ),
        ShardSpec(shard_id="B", volume_type="ceph-ssd", availability_zone="MS1"),
    ]

    result = reconciler.overlay(views, declared)

    by_id = {v.shard_id: v for v in result}
    assert [v.shard_id for v in result] == ["B", "A"]
    assert by_id["A"].volume_type == "ceph-hdd"
    assert by_id["A"].wal_volume == WalVolume(size=5, volume_type="ceph-ssd")
    assert by_id["A"].networks == [Network(uuid="net-a")]
    assert by_id["A"].availability_zone == "GZ1"
    assert by_id["B"].volume_type == "ceph-ssd"
    assert by_id["B"].availability_zone == "MS1"


def test_overlay_gives_undeclared_shards_the_default_volume_type() -> None:
    reconciler = TopologyReconciler()
    views = reconciler.reconcile([_instance("i1", "new", wal_volume_size=8)], [])

    (view,) = reconciler.overlay(views, [], default_volume_type="IMPORTED")

    assert view.volume_type == "IMPORTED"
    assert view.wal_volume == WalVolume(size=8)
    assert view.networks == []


def test_overlay_prefers_observed_sizes() -> None:
    reconciler = TopologyReconciler()
    views = reconciler.reconcile([_instance("i1", "A", flavor_id="f-new", volume_size=30)], [])
    declared = [ShardSpec(shard_id="A", flavor_id="f-old", volume_size=10)]

    (view,) = reconciler.overlay(views, declared)

    assert view.flavor_id == "f-new"
    assert view.volume_size == 30
