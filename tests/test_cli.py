import json

import pytest
import structlog
from click.testing import CliRunner

from shardctl import __version__
from shardctl import cli
from shardctl.cli import main
from shardctl.core.domain.context import TimeoutPolicy

_SPEC = """
cluster:
  name: analytics
  datastore:
    type: clickhouse
    version: "23.8"
  shards:
    - shard_id: A
      size: 2
      flavor_id: f-1
      volume_size: 10
"""


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture
def workdir(tmp_path):
    (tmp_path / "cluster.yaml").write_text(_SPEC)
    return tmp_path


def _apply(workdir, *extra: str):
    return CliRunner().invoke(
        main,
        [
            "--simulate",
            "apply",
            str(workdir / "cluster.yaml"),
            "--state",
            str(workdir / "state.json"),
            *extra,
        ],
    )


def test_info_shows_version() -> None:
    result = CliRunner().invoke(main, ["info"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_apply_creates_cluster_and_writes_state(workdir) -> None:
    result = _apply(workdir)

    assert result.exit_code == 0, result.output
    assert "Creating cluster" in result.output
    state = json.loads((workdir / "state.json").read_text())
    assert state["name"] == "analytics"
    assert [(s["shard_id"], s["size"]) for s in state["shards"]] == [("A", 2)]
    assert len(state["shards"][0]["instances"]) == 2


def test_failed_create_records_cluster_in_state(workdir, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli, "_timeouts", lambda options: TimeoutPolicy(create=0, delay=0, min_interval=0, max_interval=0)
    )

    result = _apply(workdir)

    assert result.exit_code == 1
    state = json.loads((workdir / "state.json").read_text())
    assert state["cluster_id"]
    assert state["status"] == "ERROR"
    assert state["name"] == "analytics"
    assert [s["shard_id"] for s in state["shards"]] == ["A"]


def test_plan_lists_update_actions(workdir) -> None:
    assert _apply(workdir).exit_code == 0
    (workdir / "bigger.yaml").write_text(_SPEC.replace("size: 2", "size: 4"))

    result = CliRunner().invoke(
        main, ["plan", str(workdir / "state.json"), str(workdir / "bigger.yaml")]
    )

    assert result.exit_code == 0, result.output
    assert "grow" in result.output


def test_plan_without_changes(workdir) -> None:
    assert _apply(workdir).exit_code == 0

    result = CliRunner().invoke(
        main, ["plan", str(workdir / "state.json"), str(workdir / "cluster.yaml")]
    )

    assert result.exit_code == 0
    assert "No changes" in result.output


def test_plan_reports_replacement(workdir) -> None:
    assert _apply(workdir).exit_code == 0
    (workdir / "renamed.yaml").write_text(_SPEC.replace("name: analytics", "name: other"))

    result = CliRunner().invoke(
        main, ["plan", str(workdir / "state.json"), str(workdir / "renamed.yaml")]
    )

    assert result.exit_code == 0
    assert "re-created" in result.output
    assert "name" in result.output


def test_apply_refuses_replacement_without_flag(workdir) -> None:
    assert _apply(workdir).exit_code == 0
    before = (workdir / "state.json").read_text()
    (workdir / "cluster.yaml").write_text(_SPEC.replace("name: analytics", "name: other"))

    result = _apply(workdir)

    assert result.exit_code == 1
    assert "--allow-replace" in result.output
    assert (workdir / "state.json").read_text() == before


def test_invalid_spec_file_fails(workdir) -> None:
    (workdir / "cluster.yaml").write_text("cluster:\n  shards: []\n")

    result = _apply(workdir)

    assert result.exit_code == 1
    assert "Cannot load" in result.output


def test_destroy_in_simulation_keeps_state_file(workdir) -> None:
    assert _apply(workdir).exit_code == 0

    result = CliRunner().invoke(
        main, ["--simulate", "destroy", "--state", str(workdir / "state.json")]
    )

    assert result.exit_code == 0, result.output
    assert "Deleted" in result.output
    assert (workdir / "state.json").exists()


def test_missing_endpoint_is_a_usage_error(workdir, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SHARDCTL_ENDPOINT", raising=False)

    result = CliRunner().invoke(
        main, ["import", "c-1", "--state", str(workdir / "state.json")]
    )

    assert result.exit_code == 2
    assert "SHARDCTL_ENDPOINT" in result.output
