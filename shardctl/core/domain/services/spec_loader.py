"""Cluster spec and state loader from configuration files."""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from shardctl.core.domain.errors import ClusterValidationError
from shardctl.core.domain.models import ClusterSpec, ClusterState

YAML_SUFFIXES = (".yaml", ".yml")


class SpecLoader:
    """
    Load cluster declarations and persisted state from YAML or JSON files.

    Usage:
        loader = SpecLoader()
        spec = loader.load_spec("cluster.yaml")
        state = loader.load_state("cluster.state.json")

        # After create/update
        loader.save_state(new_state, "cluster.state.json")
    """

    def load_file(self, file_path: str | Path) -> dict[str, Any]:
        """
        Load a mapping from a file.

        Supports YAML (.yaml, .yml) and JSON (.json) formats.

        Args:
            file_path: Path to file

        Returns:
            Parsed mapping

        Raises:
            ValueError: If file format is not supported
            FileNotFoundError: If file does not exist
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        if path.suffix in YAML_SUFFIXES:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        elif path.suffix == ".json":
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            raise ValueError(
                f"Unsupported file format: {path.suffix}. "
                "Supported formats: .yaml, .yml, .json"
            )

        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping at the top of {file_path}")
        return data

    def parse_spec(self, data: dict[str, Any]) -> ClusterSpec:
        """
        Parse a cluster declaration.

        The `shard` key is accepted as an alias of `shards`.

        Raises:
            ClusterValidationError: If the data does not describe a cluster
        """
        data = dict(data.get("cluster", data))
        if "shard" in data and "shards" not in data:
            data["shards"] = data.pop("shard")
        try:
            return ClusterSpec.model_validate(data)
        except ValidationError as e:
            raise ClusterValidationError(f"Invalid cluster spec: {e}") from e

    def parse_state(self, data: dict[str, Any]) -> ClusterState:
        """Parse persisted cluster state."""
        try:
            return ClusterState.model_validate(data)
        except ValidationError as e:
            raise ClusterValidationError(f"Invalid cluster state: {e}") from e

    def load_spec(self, file_path: str | Path) -> ClusterSpec:
        """Load a cluster declaration from a file."""
        return self.parse_spec(self.load_file(file_path))

    def load_state(self, file_path: str | Path) -> ClusterState:
        """Load persisted cluster state from a file."""
        return self.parse_state(self.load_file(file_path))

    def save_state(self, state: ClusterState, file_path: str | Path) -> None:
        """Write cluster state, in the format given by the file suffix."""
        path = Path(file_path)
        data = state.model_dump(mode="json")

        with open(path, "w", encoding="utf-8") as f:
            if path.suffix in YAML_SUFFIXES:
                yaml.safe_dump(data, f, sort_keys=False)
            else:
                json.dump(data, f, indent=2)
