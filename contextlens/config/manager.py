"""Configuration manager: holds the live engine config and applies updates.

Updates are partial dicts merged over the current config and re-validated.
Listeners receive the set of changed field names so that each component can
restart only what depends on them. The last applied config is cached as JSON
in the data directory and reloaded on the next start.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from contextlens.config.settings import EngineConfig
from contextlens.exceptions import ConfigError

logger = logging.getLogger(__name__)

CACHE_FILENAME = "config_cache.json"

ConfigListener = Callable[[EngineConfig, set[str]], None]


class ConfigManager:
    """Owns the engine configuration and notifies listeners of changes."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        cache_path: str | Path | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._cache_path = Path(cache_path) if cache_path else None
        self._listeners: list[ConfigListener] = []

    @classmethod
    def from_yaml(cls, path: str | Path, cache_path: str | Path | None = None) -> ConfigManager:
        """Load a config file. Keys match the ``EngineConfig`` field names."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        try:
            config = EngineConfig(**data)
        except ValidationError as e:
            raise ConfigError(str(e)) from e
        logger.info("Loaded config from %s", path)
        return cls(config=config, cache_path=cache_path)

    @property
    def config(self) -> EngineConfig:
        return self._config

    def add_listener(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    def update(self, partial: dict[str, Any]) -> set[str]:
        """Merge ``partial`` into the config and return the changed fields.

        Raises ConfigError if the merged config does not validate; the
        current config is left untouched in that case.
        """
        unknown = set(partial) - set(EngineConfig.model_fields)
        if unknown:
            raise ConfigError(f"Unknown config fields: {', '.join(sorted(unknown))}")

        merged = self._config.model_dump()
        merged.update(partial)
        try:
            new_config = EngineConfig(**merged)
        except ValidationError as e:
            raise ConfigError(str(e)) from e

        changed = {
            name
            for name in EngineConfig.model_fields
            if getattr(new_config, name) != getattr(self._config, name)
        }
        if not changed:
            return changed

        self._config = new_config
        logger.info("Config updated: %s", ", ".join(sorted(changed)))
        for listener in self._listeners:
            listener(new_config, changed)
        self.save_cache()
        return changed

    def save_cache(self) -> None:
        """Cache the current config to disk. The passphrase is never written."""
        if self._cache_path is None:
            return
        data = self._config.model_dump(mode="json", exclude={"store_passphrase"})
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._cache_path, "w") as f:
                json.dump(data, f)
        except OSError:
            logger.warning("Failed to cache config at %s", self._cache_path)

    def load_cached(self) -> bool:
        """Apply the cached config if one exists. Returns True when applied."""
        if self._cache_path is None:
            return False
        try:
            with open(self._cache_path) as f:
                data = json.load(f)
            data["store_passphrase"] = self._config.store_passphrase
            self._config = EngineConfig(**data)
        except (OSError, json.JSONDecodeError, TypeError, ValidationError):
            return False
        logger.info("Loaded cached config")
        return True
