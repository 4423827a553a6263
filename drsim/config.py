"""
Engine settings, optionally loaded from YAML.

Lookup order: an explicit path, then the ``DRSIM_CONFIG`` environment
variable, then ``config.yaml`` at the project root. Settings live under
the ``engine`` key:

    engine:
      restore_ticks: 4
      restore_tick_interval: 1.5
      new_dr_nodes: 2
      default_scenario: basic_dr
      default_mode: atlas
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger("drsim.config")

CONFIG_ENV_VAR = "DRSIM_CONFIG"


@dataclass(frozen=True)
class EngineSettings:
    """Tunable engine parameters.

    Attributes:
        restore_ticks: Progress ticks a backup restore takes (4 = 25% steps).
        restore_tick_interval: Seconds between ticks. Only a hint for hosts
            that schedule ticks; the engine never sleeps.
        new_dr_nodes: Nodes provisioned by the add-new-nodes recovery action.
        default_scenario: Scenario id used when none (or an unknown one) is given.
        default_mode: Deployment mode id ("atlas" or "enterprise").
    """

    restore_ticks: int = 4
    restore_tick_interval: float = 1.5
    new_dr_nodes: int = 2
    default_scenario: str = "basic_dr"
    default_mode: str = "atlas"

    def __post_init__(self) -> None:
        if self.restore_ticks < 1:
            raise ValueError(f"restore_ticks must be >= 1, got {self.restore_ticks}")
        if self.restore_tick_interval < 0:
            raise ValueError(
                f"restore_tick_interval must be >= 0, got {self.restore_tick_interval}"
            )
        if self.new_dr_nodes < 1:
            raise ValueError(f"new_dr_nodes must be >= 1, got {self.new_dr_nodes}")
        if self.default_mode not in ("atlas", "enterprise"):
            raise ValueError(
                f"default_mode must be 'atlas' or 'enterprise', got {self.default_mode!r}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "EngineSettings":
        """Build settings from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown engine settings: {', '.join(unknown)}")
        return cls(**data)


def _default_config_path() -> Path:
    """config.yaml at the project root (parent of the drsim/ package)."""
    return Path(__file__).resolve().parent.parent / "config.yaml"


def load_settings(config_path: Optional[str] = None) -> EngineSettings:
    """Load engine settings.

    Args:
        config_path: Explicit YAML file. Overrides the environment variable.

    Returns:
        EngineSettings from the file, or defaults when no default
        config.yaml exists.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
        ValueError: If the file holds unknown keys or invalid values.
    """
    requested = config_path or os.getenv(CONFIG_ENV_VAR)
    resolved_path = Path(requested) if requested else _default_config_path()
    if not resolved_path.exists():
        if requested:
            raise FileNotFoundError(
                f"Missing drsim config at {resolved_path}. "
                f"Fix {CONFIG_ENV_VAR} or pass an existing file."
            )
        logger.debug(f"No config at {resolved_path}; using defaults")
        return EngineSettings()

    with resolved_path.open("r", encoding="utf-8") as handle:
        config = yaml.safe_load(handle) or {}

    engine = config.get("engine") or {}
    if not isinstance(engine, dict):
        raise ValueError(f"'engine' in {resolved_path} must be a mapping")
    settings = EngineSettings.from_dict(engine)
    logger.info(f"Loaded engine settings from {resolved_path}")
    return settings
