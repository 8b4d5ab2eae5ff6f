"""
Configuration management for ServiceDJ.

Loads and validates TOML config against strict bounds.
All tunable parameters are bounded and validated at startup.
"""

import os
import copy
from pathlib import Path
from typing import Dict, Any, Optional, List
import toml
import logging

from .models import PlayBlock, RotationRules

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when config validation fails."""
    pass


ARTIST_SPACING_MODES = ("wallclock", "runtime")


class Config:
    """Configuration loader and validator."""

    PARAM_BOUNDS = {
        "generation": {
            "artist_spacing": ARTIST_SPACING_MODES,
        },
        "schedule": {
            "week_days": (1, 31),
            "block_order": None,  # List type
        },
        "export": {
            "output_dir": None,
            "uri_prefix": None,
        },
        "sink": {
            "base_url": None,
            "max_retries": (1, 10),
            "backoff_seconds": (0.0, 60.0),
            "max_backoff_seconds": (0.0, 600.0),
            "batch_size": (1, 100),
            "timeout_seconds": (1.0, 120.0),
        },
        "rotation_rules": {
            "track_cooldown_days": (0, 365),
            "artist_cooldown_min": (0, 1440),
        },
    }

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "database": {
            "path": "data/db/servicedj.sqlite",
        },
        "generation": {
            "artist_spacing": "wallclock",
        },
        "schedule": {
            "block_order": ["Lunch", "Dinner", "Late"],
            "week_days": 7,
        },
        "export": {
            "output_dir": "data/exports",
            "uri_prefix": "spotify:",
        },
        "sink": {
            "base_url": "https://api.spotify.com/v1",
            "max_retries": 3,
            "backoff_seconds": 1.0,
            "max_backoff_seconds": 30.0,
            "batch_size": 100,
            "timeout_seconds": 15.0,
        },
        "rotation_rules": {
            "track_cooldown_days": 7,
            "artist_cooldown_min": 30,
            "exclude_explicit": True,
            "normalize_loudness": True,
        },
        "blocks": [
            {
                "name": "Lunch",
                "target_min": 90,
                "bpm_range": [60, 95],
                "energy_range": [0.1, 0.4],
                "prefer_instrumental": True,
                "color": "blue",
            },
            {
                "name": "Dinner",
                "target_min": 120,
                "bpm_range": [80, 110],
                "energy_range": [0.3, 0.6],
                "prefer_instrumental": False,
                "color": "orange",
            },
            {
                "name": "Late",
                "target_min": 90,
                "bpm_range": [60, 90],
                "energy_range": [0.2, 0.5],
                "prefer_instrumental": False,
                "color": "purple",
            },
        ],
    }

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self.data = config_dict
        self._validate()

    @classmethod
    def defaults(cls) -> "Config":
        return cls(copy.deepcopy(cls.DEFAULT_CONFIG))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load config from TOML file.

        Args:
            config_path: Path to servicedj.toml. If None, uses SERVICEDJ_CONFIG_PATH
                        env var or defaults to configs/servicedj.toml.

        Returns:
            Config instance.

        Raises:
            ConfigError: If config is invalid or unreadable.
        """
        if config_path is None:
            config_path = os.getenv("SERVICEDJ_CONFIG_PATH", "configs/servicedj.toml")

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls.defaults()

        try:
            config_dict = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    def _validate(self) -> None:
        """
        Validate all config parameters against bounds.

        Raises:
            ConfigError: If any parameter is out of bounds.
        """
        self.data.setdefault("database", dict(self.DEFAULT_CONFIG["database"]))

        for section, params in self.PARAM_BOUNDS.items():
            if section not in self.data:
                logger.warning(f"Missing config section: {section}. Using defaults.")
                self.data[section] = copy.deepcopy(self.DEFAULT_CONFIG.get(section, {}))
                continue

            section_data = self.data[section]

            for param, bounds in params.items():
                if param not in section_data:
                    default_val = self.DEFAULT_CONFIG.get(section, {}).get(param)
                    if default_val is not None:
                        logger.warning(f"Missing param {section}.{param}. Using default: {default_val}")
                        section_data[param] = copy.deepcopy(default_val)
                    continue

                value = section_data[param]

                # Free-form values (lists, strings) have no bounds
                if bounds is None:
                    continue

                # Enumerated choices
                if isinstance(bounds, tuple) and all(isinstance(b, str) for b in bounds):
                    if value not in bounds:
                        raise ConfigError(
                            f"Parameter {section}.{param}={value!r} must be one of {list(bounds)}"
                        )
                    continue

                # Numeric ranges
                min_val, max_val = bounds
                if not (min_val <= value <= max_val):
                    raise ConfigError(
                        f"Parameter {section}.{param}={value} out of bounds "
                        f"[{min_val}, {max_val}]"
                    )

        if "blocks" not in self.data:
            logger.warning("Missing config section: blocks. Using defaults.")
            self.data["blocks"] = copy.deepcopy(self.DEFAULT_CONFIG["blocks"])

        # Parse eagerly so a bad block table fails at startup
        try:
            self.play_blocks()
            self.rotation_rules()
        except (ValueError, TypeError, KeyError) as e:
            raise ConfigError(f"Invalid block or rotation config: {e}")

        logger.info("✅ Config validation passed")

    def get(self, section: str, param: str, default: Any = None) -> Any:
        """Get a config parameter safely."""
        return self.data.get(section, {}).get(param, default)

    def __getitem__(self, section: str) -> Dict[str, Any]:
        """Allow dict-like access: config["schedule"]"""
        return self.data.get(section, {})

    @property
    def database_path(self) -> str:
        return self.get("database", "path", self.DEFAULT_CONFIG["database"]["path"])

    def play_blocks(self) -> List[PlayBlock]:
        """Default play blocks declared in the config."""
        return [PlayBlock.from_config(b) for b in self.data.get("blocks", [])]

    def rotation_rules(self) -> RotationRules:
        """Default rotation rules declared in the config."""
        section = self["rotation_rules"]
        return RotationRules(
            track_cooldown_days=int(section["track_cooldown_days"]),
            artist_cooldown_minutes=int(section["artist_cooldown_min"]),
            exclude_explicit=bool(section.get("exclude_explicit", True)),
            normalize_loudness=bool(section.get("normalize_loudness", True)),
        )

    def seed_database(self, database) -> int:
        """
        Insert configured blocks and rotation rules that the database lacks.

        Operator edits already stored in the database always win.

        Returns:
            Number of rows inserted.
        """
        inserted = 0
        for block in self.play_blocks():
            if database.get_play_block(block.name) is None:
                database.save_play_block(block)
                inserted += 1
        if database.get_rotation_rules() is None:
            database.save_rotation_rules(self.rotation_rules())
            inserted += 1
        if inserted:
            logger.info(f"Seeded {inserted} default config rows into database")
        return inserted

    def __repr__(self) -> str:
        version = self.data.get('config_version', 'unknown')
        return f"Config(version={version})"
