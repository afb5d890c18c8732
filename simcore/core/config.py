"""Engine configuration loaded from YAML.

Values from the file are deep-merged over :data:`DEFAULT_CONFIG`, so a
file only needs the keys it changes::

    logging:
      level: DEBUG
    solvers:
      fdm: {num_nodes: 41}
"""
from __future__ import annotations

import copy
import logging
import os
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "app": {"name": "SimCore", "version": "0.1.0"},
    # An empty dir means "<data_dir>/logs".
    "logging": {"dir": "", "level": "INFO"},
    "meshing": {"mesh_size": 0.25},
    "events": {"max_history": 1000},
    "solvers": {
        "fdm": {
            "length": 1.0,
            "num_nodes": 11,
            "left_temperature": 100.0,
            "right_temperature": 0.0,
        },
        # Systems up to this many unknowns are solved densely.
        "linalg": {"dense_max_dof": 6000},
    },
}


class AppConfig:
    def __init__(self, config_path: Optional[str] = None):
        self._data: dict = copy.deepcopy(DEFAULT_CONFIG)
        if config_path and os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as f:
                overrides = yaml.safe_load(f) or {}
            if not isinstance(overrides, dict):
                raise ValueError(f"Config file {config_path!r} must contain a mapping")
            self._merge(self._data, overrides)
            logger.debug("Loaded configuration overrides from %s", config_path)
        elif config_path:
            logger.warning("Config file %s not found; using defaults", config_path)

    @classmethod
    def _merge(cls, base: dict, overrides: dict) -> None:
        for key, value in overrides.items():
            if isinstance(base.get(key), dict) and isinstance(value, dict):
                cls._merge(base[key], value)
            else:
                base[key] = value

    def get(self, dotted_key: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, dotted_key: str, value: Any) -> None:
        *parents, leaf = dotted_key.split(".")
        node = self._data
        for part in parents:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[leaf] = value

    # ------------------------------------------------------------------
    # Typed accessors used by the engine
    # ------------------------------------------------------------------

    @property
    def version(self) -> str:
        """Software version stamped into every provenance record."""
        return str(self.get("app.version", "0.0.0"))

    def log_dir(self, data_dir: str) -> str:
        return self.get("logging.dir") or os.path.join(data_dir, "logs")

    @property
    def log_level(self) -> str:
        return str(self.get("logging.level", "INFO")).upper()

    @property
    def mesh_size(self) -> float:
        size = self._number("meshing.mesh_size")
        if size <= 0.0:
            raise ValueError(f"meshing.mesh_size must be positive, got {size}")
        return size

    @property
    def dense_max_dof(self) -> int:
        return int(self._number("solvers.linalg.dense_max_dof"))

    @property
    def max_event_history(self) -> int:
        size = int(self._number("events.max_history"))
        if size < 1:
            raise ValueError(f"events.max_history must be at least 1, got {size}")
        return size

    def solver_options(self, solver_key: str, names) -> dict:
        """Entries of ``solvers.<solver_key>`` restricted to *names*.

        Unknown keys are logged and dropped.
        """
        section = self.get(f"solvers.{solver_key}") or {}
        unknown = sorted(set(section) - set(names))
        if unknown:
            logger.warning(
                "Ignoring unknown solvers.%s keys: %s", solver_key, ", ".join(unknown),
            )
        return {k: section[k] for k in names if k in section}

    def _number(self, dotted_key: str) -> float:
        value = self.get(dotted_key)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{dotted_key} must be a number, got {value!r}") from None
