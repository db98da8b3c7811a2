"""
partkit configuration.

Defaults live in DEFAULTS; a JSON file (``$PARTKIT_CONFIG`` or
``./partkit.config.json``) is merged over them at load time.
"""
from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Optional

from .constants import DEFAULT_BUFFER_SIZE, DEFAULT_LEVEL, MAX_LEVEL, MIN_LEVEL, SCRATCH_PREFIX
from .logger import logger


CONFIG_ENV = "PARTKIT_CONFIG"
CONFIG_FILENAME = "partkit.config.json"

DEFAULTS = {
    "pack": {
        "mode": "split-then-zip",
        "dir_split_mode": "compress-split-store",
        "compression_level": DEFAULT_LEVEL,
    },
    "io": {
        "buffer_size_kb": DEFAULT_BUFFER_SIZE // 1024,
        "scratch_prefix": SCRATCH_PREFIX,
    },
}


class PartkitConfig:
    def __init__(self, config_path: Optional[str] = None):
        self._config = copy.deepcopy(DEFAULTS)

        if config_path:
            self.config_path = Path(config_path)
        elif os.environ.get(CONFIG_ENV):
            self.config_path = Path(os.environ[CONFIG_ENV])
        else:
            self.config_path = Path.cwd() / CONFIG_FILENAME

        if self.config_path.exists():
            self._load()
        else:
            logger.debug(f"No config file at {self.config_path}; using defaults")

    def _load(self) -> None:
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                user_config = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file {self.config_path}: {e}; using defaults")
            return
        except OSError as e:
            logger.error(f"Failed to read config {self.config_path}: {e}; using defaults")
            return
        if not isinstance(user_config, dict):
            logger.error(f"Config {self.config_path} must hold a JSON object; using defaults")
            return
        self._deep_merge(self._config, user_config)
        logger.debug(f"Loaded config from {self.config_path}")

    def save(self, path: Optional[str] = None) -> None:
        out_path = Path(path) if path else self.config_path
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2)

    def get(self, *keys, default=None):
        """Nested lookup, e.g. ``config.get('pack', 'mode')``."""
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys_and_value) -> None:
        *keys, value = keys_and_value
        target = self._config
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value

    # ── Convenience properties ─────────────────────────────────────────────

    @property
    def pack_mode(self) -> str:
        return self.get("pack", "mode", default="split-then-zip")

    @property
    def dir_split_mode(self) -> str:
        return self.get("pack", "dir_split_mode", default="compress-split-store")

    @property
    def compression_level(self) -> int:
        level = int(self.get("pack", "compression_level", default=DEFAULT_LEVEL))
        return min(MAX_LEVEL, max(MIN_LEVEL, level))

    @property
    def buffer_size(self) -> int:
        return max(1, int(self.get("io", "buffer_size_kb", default=DEFAULT_BUFFER_SIZE // 1024))) * 1024

    @property
    def scratch_prefix(self) -> str:
        return self.get("io", "scratch_prefix", default=SCRATCH_PREFIX)

    @staticmethod
    def _deep_merge(base: dict, override: dict) -> None:
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                PartkitConfig._deep_merge(base[key], value)
            else:
                base[key] = value


__all__ = ["PartkitConfig", "DEFAULTS", "CONFIG_ENV", "CONFIG_FILENAME"]
