"""Configuration loader for GreenTwin.

Loads config.py from the project root, falling back to defaults.
"""

import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from . import defaults


class Config:
    """Configuration object with attribute access."""

    def __init__(self, search_from: Path | None = None) -> None:
        # Start with defaults (copy mutable values so overrides stay local)
        for key in defaults.CONFIG_KEYS:
            value = getattr(defaults, key)
            if isinstance(value, (list, dict)):
                value = value.copy()
            setattr(self, key, value)

        self._search_from = search_from
        self.source: Path | None = None

        self._load_user_config()

    def _load_user_config(self) -> None:
        """Load config.py from project root."""
        config_path = self._find_config_file()

        if config_path is None:
            return

        user_config = self._load_module_from_path(config_path)
        self.source = config_path

        for key in defaults.CONFIG_KEYS:
            if hasattr(user_config, key):
                setattr(self, key, getattr(user_config, key))

    def _find_config_file(self) -> Path | None:
        """Find config.py in current dir or parents."""
        current = self._search_from or Path.cwd()

        # Also check where the package is installed
        package_root = Path(__file__).parent.parent.parent.parent

        search_paths = [current, package_root]

        # Walk up from cwd
        while current != current.parent:
            search_paths.append(current)
            current = current.parent

        for path in search_paths:
            config_path = path / "config.py"
            if config_path.exists():
                return config_path

        return None

    def _load_module_from_path(self, path: Path) -> ModuleType:
        """Load a Python module from a file path."""
        spec = importlib.util.spec_from_file_location("greentwin_user_config", path)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load config from {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules["greentwin_user_config"] = module
        spec.loader.exec_module(module)
        return module

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value with optional default."""
        return getattr(self, key, default)

    @property
    def data_path(self) -> Path:
        """Resolved data directory."""
        return Path(self.DATA_DIR)

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not isinstance(self.SYNC_URLS, list) or not self.SYNC_URLS:
            errors.append("SYNC_URLS must be a non-empty list")

        if self.OFFLINE_QUEUE_CAPACITY <= 0:
            errors.append("OFFLINE_QUEUE_CAPACITY must be positive")

        if self.SYNC_BACKOFF_CAP < self.SYNC_BACKOFF_BASE:
            errors.append("SYNC_BACKOFF_CAP must be >= SYNC_BACKOFF_BASE")

        if not 0.0 <= self.SIMILARITY_THRESHOLD <= 1.0:
            errors.append("SIMILARITY_THRESHOLD must be within [0, 1]")

        weights = self.EFFECTIVENESS_SUCCESS_WEIGHT + self.EFFECTIVENESS_CO2_WEIGHT
        if abs(weights - 1.0) > 1e-6:
            errors.append("EFFECTIVENESS weights should sum to 1.0")

        if self.DELAY_REMINDER_LEAD_HOURS >= self.DELAY_HOURS:
            errors.append("DELAY_REMINDER_LEAD_HOURS must be shorter than DELAY_HOURS")

        return errors

    def __repr__(self) -> str:
        return f"<Config source={self.source}>"


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from disk."""
    global _config
    _config = Config()
    return _config
