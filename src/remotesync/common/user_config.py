"""
User Configuration Management

Manages user-editable settings stored in a JSON file in the data
directory. Settings can be changed from the CLI without touching code.
"""
import json
import logging
from pathlib import Path
from typing import Any, List, Optional
from dataclasses import dataclass, asdict, fields, replace

from remotesync import config
from remotesync.common.retry import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILE = config.get_data_dir() / "config.json"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class SyncConfig:
    """User configuration for RemoteSync"""

    # Identity shown to other devices (empty = host name)
    device_name: str = ""

    # Hosting
    port: int = config.PORT

    # Connecting
    connect_timeout: float = config.CONNECT_TIMEOUT
    connect_attempts: int = config.CONNECT_MAX_ATTEMPTS
    connect_retry_delay: float = config.CONNECT_RETRY_DELAY

    # Behavior
    drop_link_on_decode_error: bool = False
    log_level: str = config.LOG_LEVEL

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'SyncConfig':
        """Create config from dict, using defaults for missing keys"""
        defaults = cls()
        for key, value in data.items():
            if hasattr(defaults, key):
                setattr(defaults, key, value)
        return defaults

    def validate(self) -> List[str]:
        """Return a list of problems (empty when the config is usable)"""
        problems = []
        if not isinstance(self.device_name, str):
            problems.append("device_name must be text")
        if not isinstance(self.drop_link_on_decode_error, bool):
            problems.append("drop_link_on_decode_error must be true or false")
        if not 0 <= self.port <= 65535:
            problems.append(f"port must be between 0 and 65535, got {self.port}")
        if self.connect_timeout <= 0:
            problems.append("connect_timeout must be positive")
        if self.connect_attempts < 1:
            problems.append("connect_attempts must be at least 1")
        if self.connect_retry_delay < 0:
            problems.append("connect_retry_delay cannot be negative")
        if self.log_level.upper() not in LOG_LEVELS:
            problems.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return problems

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.connect_attempts,
            attempt_timeout=self.connect_timeout,
            initial_delay=self.connect_retry_delay,
        )


def _coerce(key: str, value: Any) -> Any:
    """Convert a CLI string to the type of the given field"""
    if not isinstance(value, str):
        return value
    kind = {f.name: f.type for f in fields(SyncConfig)}[key]
    if kind in (bool, 'bool'):
        lowered = value.strip().lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off'):
            return False
        raise ValueError(f"{key} expects true/false, got {value!r}")
    if kind in (int, 'int'):
        return int(value)
    if kind in (float, 'float'):
        return float(value)
    return value


def _reset_invalid(sync_config: SyncConfig):
    """Put every field that fails validation back to its default"""
    defaults = SyncConfig()
    for f in fields(SyncConfig):
        value = getattr(sync_config, f.name)
        try:
            problems = replace(defaults, **{f.name: value}).validate()
        except (TypeError, AttributeError):
            problems = [f"wrong type {type(value).__name__}"]
        if problems:
            logger.warning(f"Invalid {f.name}={value!r} ({problems[0]}), using default")
            setattr(sync_config, f.name, getattr(defaults, f.name))


class ConfigManager:
    """Manages loading, saving, and accessing user configuration"""

    def __init__(self, config_path: Optional[Path] = None):
        self.path = config_path or CONFIG_FILE
        self._config: Optional[SyncConfig] = None

    def load(self, config_path: Path = None) -> SyncConfig:
        """Load configuration from file"""
        if config_path is not None:
            self.path = config_path
        path = self.path

        if path.exists():
            try:
                with open(path, 'r') as f:
                    data = json.load(f)
                self._config = SyncConfig.from_dict(data)
                logger.info(f"Loaded config from {path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
                self._config = SyncConfig()
        else:
            logger.info("No config file found, using defaults")
            self._config = SyncConfig()
            # Save defaults
            self.save()

        _reset_invalid(self._config)
        return self._config

    def save(self) -> bool:
        """Save configuration to file"""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(self.get().to_dict(), f, indent=2)
            logger.info(f"Saved config to {self.path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save config: {e}")
            return False

    def get(self) -> SyncConfig:
        """Get current configuration"""
        if self._config is None:
            self.load()
        return self._config

    def set(self, key: str, value: Any) -> bool:
        """Set a configuration value (strings are converted to the field's type)"""
        current = self.get()
        if not hasattr(current, key):
            logger.error(f"Unknown config key: {key}")
            return False

        try:
            value = _coerce(key, value)
        except ValueError as e:
            logger.error(f"Invalid value for {key}: {e}")
            return False

        previous = getattr(current, key)
        setattr(current, key, value)
        problems = current.validate()
        if problems:
            setattr(current, key, previous)
            logger.error(f"Rejected {key}={value!r}: {'; '.join(problems)}")
            return False
        return self.save()

    def reset(self) -> SyncConfig:
        """Reset to default configuration"""
        self._config = SyncConfig()
        self.save()
        return self._config


_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the shared configuration manager"""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


def get_config() -> SyncConfig:
    """Get the current user configuration"""
    return get_config_manager().get()


def print_config(sync_config: Optional[SyncConfig] = None, path: Optional[Path] = None):
    """Print configuration in a readable format"""
    sync_config = sync_config or get_config()

    print("\n" + "=" * 50)
    print("  RemoteSync - Configuration")
    print("=" * 50)

    print("\n  Identity:")
    print(f"    Device Name:   {sync_config.device_name or '(host name)'}")

    print("\n  Network:")
    print(f"    Port:          {sync_config.port}")
    print(f"    Timeout:       {sync_config.connect_timeout}s")
    print(f"    Attempts:      {sync_config.connect_attempts}")
    print(f"    Retry Delay:   {sync_config.connect_retry_delay}s")

    print("\n  Behavior:")
    print(f"    Drop on bad message: {'ON' if sync_config.drop_link_on_decode_error else 'OFF'}")
    print(f"    Log Level:     {sync_config.log_level}")

    print(f"\n  Config File: {path or CONFIG_FILE}")
    print("=" * 50 + "\n")
