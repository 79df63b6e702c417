"""
Configuration file handling.

Render settings can be stored as YAML or JSON. A file holds the fields of
``RenderConfig`` at its top level and may add a ``batch_jobs`` list for the
batch command. Named presets supply starting values that a file or the
command line then override.
"""

import json
import logging
from copy import deepcopy
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..api import RenderConfig

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised for unreadable, unknown or invalid configuration."""


PRESETS: Dict[str, Dict[str, Any]] = {
    'default': {},
    'seahorse_valley': {
        'center': [-0.7453, 0.1127],
        'half_height': 0.0065,
        'max_iterations': 1500,
        'trap': 'circle',
        'trap_params': {'center': [0.0, 0.0], 'radius': 0.5},
        'color_palette': 'ocean',
        'falloff': 6.0,
    },
    'elephant_valley': {
        'center': [0.2925, 0.0161],
        'half_height': 0.0125,
        'max_iterations': 1000,
        'trap': 'cross',
        'color_palette': 'fire',
        'falloff': 8.0,
    },
    'julia_dendrite': {
        'fractal': 'julia',
        'fractal_params': {'c': [-0.235125, 0.827215]},
        'center': [0.0, 0.0],
        'half_height': 1.2,
        'max_iterations': 800,
        'trap': 'line',
        'trap_params': {'slope': 0.0, 'intercept': 0.0},
        'color_palette': 'electric',
    },
}

CONFIG_SUFFIXES = ('.yaml', '.yml', '.json')


class ConfigManager:
    """Loads, saves and resolves render configuration."""

    def __init__(self):
        self.presets = deepcopy(PRESETS)

    def list_presets(self):
        return list(self.presets.keys())

    def get_preset(self, name: str) -> Dict[str, Any]:
        """Get a copy of a preset's settings."""
        if name not in self.presets:
            available = ', '.join(self.presets.keys())
            raise ConfigError(f"Unknown preset '{name}'. Available: {available}")
        return deepcopy(self.presets[name])

    def load_config(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load configuration from a YAML or JSON file.

        Args:
            path: Configuration file; the suffix selects the format

        Returns:
            Configuration dictionary
        """
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in CONFIG_SUFFIXES:
            raise ConfigError(f"Unsupported config format '{suffix}'. Use .yaml, .yml or .json")

        try:
            with open(path, 'r') as f:
                if suffix == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}") from e
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not parse {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        logger.debug(f"Loaded configuration from {path}")
        return data

    def save_config(self, config: Union[RenderConfig, Dict[str, Any]], path: Union[str, Path]) -> Path:
        """
        Save configuration to a YAML or JSON file.

        Args:
            config: RenderConfig or plain dictionary
            path: Output file; the suffix selects the format

        Returns:
            Path of the written file
        """
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in CONFIG_SUFFIXES:
            raise ConfigError(f"Unsupported config format '{suffix}'. Use .yaml, .yml or .json")

        data = config.to_dict() if isinstance(config, RenderConfig) else config

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            if suffix == '.json':
                json.dump(data, f, indent=2)
            else:
                yaml.safe_dump(data, f, default_flow_style=None, sort_keys=False)

        logger.info(f"Saved configuration: {path}")
        return path

    def build_render_config(self, data: Optional[Dict[str, Any]] = None,
                            preset: Optional[str] = None,
                            overrides: Optional[Dict[str, Any]] = None) -> RenderConfig:
        """
        Build a validated RenderConfig.

        Values are layered preset, then ``data``, then ``overrides``.
        The ``batch_jobs`` section of ``data`` is ignored here.

        Raises:
            ConfigError: On unknown presets, unknown keys or invalid values
        """
        settings = self.get_preset(preset) if preset else {}
        if data:
            settings.update({k: v for k, v in data.items() if k != 'batch_jobs'})
        if overrides:
            settings.update(overrides)

        known = {f.name for f in fields(RenderConfig)}
        unknown = sorted(set(settings) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration parameter(s): {', '.join(unknown)}")

        try:
            config = RenderConfig(**settings)
            config.validate()
        except (ValueError, TypeError, OSError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        return config


def load_config_from_args(config_file: Optional[Union[str, Path]] = None,
                          preset: Optional[str] = None,
                          overrides: Optional[Dict[str, Any]] = None) -> RenderConfig:
    """
    Build a RenderConfig from command-line style arguments.

    Args:
        config_file: Optional YAML or JSON file
        preset: Optional preset name
        overrides: Values given explicitly (``None`` values are skipped)

    Returns:
        Validated RenderConfig
    """
    manager = ConfigManager()
    data = manager.load_config(config_file) if config_file else None
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    return manager.build_render_config(data, preset, overrides)
