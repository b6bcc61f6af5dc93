import pytest

from shardctl.core.domain.errors import ClusterValidationError
from shardctl.core.domain.models import (
    ClusterSpec,
    Datastore,
    Network,
    ShardSpec,
    WalVolume,
)
from shardctl.core.domain.services.translator import SpecTranslator


def _spec(*shards: ShardSpec, **overrides) -> ClusterSpec:
    values = {
        "name": "analytics",
        "datastore": Datastore(type="clickhouse", version="23.8"),
        "shards": list(shards),
        "keypair": "ops-key",
    }
    values.update(overrides)
    return ClusterSpec(**values)


def test_translate_expands_shards_in_declared_order() -> None:
    spec = _spec(
        ShardSpec(shard_id="b", size=2, flavor_id="f-large", volume_size=20),
        ShardSpec(shard_id="a", size=3, flavor_id="f-small", volume_size=10),
        ShardSpec(shard_id="c", size=1, flavor_id="f-small", volume_size=10),
    )

    request = SpecTranslator().translate(spec)

    assert len(request.instances) == 6
    assert [i.shard_id for i in request.instances] == ["b", "b", "a", "a", "a", "c"]
    assert {i.flavor_id for i in request.instances[:2]} == {"f-large"}
    assert all(i.keypair == "ops-key" for i in request.instances)


def test_translate_single_shard_emits_identical_descriptors() -> None:
    spec = _spec(
        ShardSpec(
            shard_id="shard-1",
            size=3,
            flavor_id="f-1",
            volume_size=10,
            volume_type="ceph-ssd",
            wal_volume=WalVolume(size=5, volume_type="ceph-ssd"),
            networks=[Network(uuid="net-1")],
            availability_zone="GZ1",
        )
    )

    request = SpecTranslator().translate(spec)

    assert len(request.instances) == 3
    assert request.instances[0] == request.instances[1] == request.instances[2]
    first = request.instances[0]
    assert first.shard_id == "shard-1"
    assert first.volume.size == 10
    assert first.volume.volume_type == "ceph-ssd"
    assert first.wal_volume == WalVolume(size=5, volume_type="ceph-ssd")
    assert first.networks == [Network(uuid="net-1")]
    assert first.availability_zone == "GZ1"


def test_translate_carries_cluster_options() -> None:
    spec = _spec(
        ShardSpec(shard_id="s1", flavor_id="f", volume_size=10),
        cloud_monitoring_enabled=True,
        floating_ip_enabled=True,
    )

    request = SpecTranslator().translate(spec)

    assert request.name == "analytics"
    assert request.datastore.type == "clickhouse"
    assert request.cloud_monitoring_enabled is True
    assert request.floating_ip_enabled is True


def test_translate_rejects_size_below_one() -> None:
    spec = _spec(ShardSpec(shard_id="s1", size=0, flavor_id="f", volume_size=10))

    with pytest.raises(ClusterValidationError) as exc:
        SpecTranslator().translate(spec)

    assert exc.value.field == "size"


def test_translate_rejects_missing_datastore_type() -> None:
    spec = _spec(
        ShardSpec(shard_id="s1", flavor_id="f", volume_size=10),
        datastore=Datastore(),
    )

    with pytest.raises(ClusterValidationError):
        SpecTranslator().translate(spec)


def test_translate_rejects_unsupported_datastore() -> None:
    spec = _spec(
        ShardSpec(shard_id="s1", flavor_id="f", volume_size=10),
        datastore=Datastore(type="postgresql", version="15"),
    )

    with pytest.raises(ClusterValidationError) as exc:
        SpecTranslator().translate(spec)

    assert exc.value.field == "datastore.type"


def test_translate_rejects_volume_type_without_size() -> None:
    spec = _spec(ShardSpec(shard_id="s1", flavor_id="f", volume_type="ceph-ssd"))

    with pytest.raises(ClusterValidationError) as exc:
        SpecTranslator().translate(spec)

    assert exc.value.field == "volume_size"


def test_translate_rejects_duplicate_shard_ids() -> None:
    spec = _spec(
        ShardSpec(shard_id="s1", flavor_id="f", volume_size=10),
        ShardSpec(shard_id="s1", flavor_id="f", volume_size=10),
    )

    with pytest.raises(ClusterValidationError):
        SpecTranslator().translate(spec)


def test_translate_rejects_empty_cluster() -> None:
    with pytest.raises(ClusterValidationError):
        SpecTranslator().translate(_spec())
