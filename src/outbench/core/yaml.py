"""YAML configuration loading for outbench.

Uses ``yaml.safe_load`` so configuration files can only produce plain
strings, numbers, lists, and dicts. The returned dictionary is validated
by the Pydantic models that consume it
([BenchmarkConfig][outbench.benchmark.BenchmarkConfig],
[Phase2Config][outbench.verification.configs.Phase2Config]).

Examples:
    ```python
    from outbench.core.yaml import load_yaml

    config = BenchmarkConfig.model_validate(load_yaml("config/benchmark.yaml"))
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed configuration as a dictionary; an empty dict for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the YAML is invalid or its top level is not
            a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected a mapping at the top of {config_path}, got {type(data).__name__}"
        )
    return data
