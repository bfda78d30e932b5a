"""Configuration management for mdtasks."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .status import Status, StatusRegistry, StatusType, CANCELLED, DONE, IN_PROGRESS, TODO


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.mdtasks/config.yaml"


class ConfigError(ValueError):
    """Raised when a settings file cannot be understood."""


@dataclass
class StatusConfiguration:
    """One user-configured status as stored in the settings file."""
    symbol: str
    name: str
    next_status_symbol: str
    type: str = StatusType.TODO.value

    def to_status(self) -> Status:
        try:
            status_type = StatusType(self.type.upper())
        except ValueError:
            raise ConfigError(f"Unknown status type {self.type!r} for symbol {self.symbol!r}")
        return Status(
            symbol=self.symbol,
            name=self.name,
            next_status_symbol=self.next_status_symbol,
            type=status_type,
        )

    @classmethod
    def from_status(cls, status: Status) -> "StatusConfiguration":
        return cls(
            symbol=status.symbol,
            name=status.name,
            next_status_symbol=status.next_status_symbol,
            type=status.type.value,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "next_status_symbol": self.next_status_symbol,
            "type": self.type,
        }


def _default_statuses() -> List[StatusConfiguration]:
    return [StatusConfiguration.from_status(s) for s in (TODO, DONE, IN_PROGRESS, CANCELLED)]


@dataclass
class TasksSettings:
    """Settings that change how lines are parsed and toggled."""

    # Only checkbox lines containing this text are treated as tasks ("" = all)
    global_filter: str = ""

    # Infer a scheduled date from daily-note file names
    use_filename_as_scheduled_date: bool = False

    statuses: List[StatusConfiguration] = field(default_factory=_default_statuses)

    # Display only; task lines always use ISO dates
    date_format: str = "%Y-%m-%d"

    def build_registry(self) -> StatusRegistry:
        """Create a fresh status registry from the configured statuses."""
        return StatusRegistry.from_statuses(conf.to_status() for conf in self.statuses)

    def to_yaml(self) -> str:
        """Serialize settings to YAML."""
        data = {
            "global_filter": self.global_filter,
            "use_filename_as_scheduled_date": self.use_filename_as_scheduled_date,
            "date_format": self.date_format,
            "statuses": [conf.to_dict() for conf in self.statuses],
        }
        return yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "TasksSettings":
        """Deserialize settings from YAML."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}")

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("Settings file must contain a mapping")

        kwargs: Dict[str, Any] = {}
        for key in ("global_filter", "date_format"):
            if key in data and data[key] is not None:
                kwargs[key] = str(data[key])
        if "use_filename_as_scheduled_date" in data:
            kwargs["use_filename_as_scheduled_date"] = bool(data["use_filename_as_scheduled_date"])

        if data.get("statuses"):
            kwargs["statuses"] = [cls._status_from_dict(item) for item in data["statuses"]]

        unknown = set(data) - {"global_filter", "date_format", "use_filename_as_scheduled_date", "statuses"}
        for key in sorted(unknown):
            logger.warning("Ignoring unknown setting %r", key)

        return cls(**kwargs)

    @staticmethod
    def _status_from_dict(item: Any) -> StatusConfiguration:
        if not isinstance(item, dict):
            raise ConfigError(f"Status entry must be a mapping, got {item!r}")
        try:
            symbol = str(item["symbol"])
            conf = StatusConfiguration(
                symbol=symbol,
                name=str(item.get("name", "")),
                next_status_symbol=str(item.get("next_status_symbol", "x")),
                type=str(item.get("type", StatusType.TODO.value)),
            )
        except KeyError:
            raise ConfigError(f"Status entry is missing 'symbol': {item!r}")
        if len(conf.symbol) != 1 or len(conf.next_status_symbol) != 1:
            raise ConfigError(f"Status symbols must be single characters: {item!r}")
        # Validate the type eagerly so a bad file fails at load time
        conf.to_status()
        return conf


def get_config_path(config_path: Optional[Path] = None) -> Path:
    """Resolve the settings path, defaulting to ``~/.mdtasks/config.yaml``."""
    if config_path is not None:
        return Path(config_path)
    return Path(os.path.expanduser(DEFAULT_CONFIG_PATH))


def load_settings(config_path: Optional[Path] = None) -> TasksSettings:
    """Load settings from file, or return defaults if the file does not exist."""
    path = get_config_path(config_path)
    if not path.exists():
        logger.info("No settings at %s, using defaults", path)
        return TasksSettings()

    with open(path, "r", encoding="utf-8") as f:
        yaml_content = f.read()
    settings = TasksSettings.from_yaml(yaml_content)
    logger.info("Loaded settings from %s", path)
    return settings


def save_settings(settings: TasksSettings, config_path: Optional[Path] = None) -> Path:
    """Save settings to file and return the path written."""
    path = get_config_path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(settings.to_yaml())
    logger.info("Settings saved to %s", path)
    return path
