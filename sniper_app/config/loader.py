"""Configuration loader: defaults < settings file < explicit overrides."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from ..errors import ConfigurationError
from .defaults import (
    EngineConfig,
    IndicatorParams,
    LoggingParams,
    RiskParams,
    ScannerParams,
    SchedulerParams,
    SignalParams,
    StorageParams,
    TradingParams,
    VenueSettings,
    WatchEntry,
    get_default_config,
)
from .validation import ConfigValidator

logger = structlog.get_logger(__name__)

_SECTIONS = {
    "indicators": IndicatorParams,
    "signals": SignalParams,
    "risk": RiskParams,
    "trading": TradingParams,
    "scanner": ScannerParams,
    "scheduler": SchedulerParams,
    "storage": StorageParams,
    "logging": LoggingParams,
}


@dataclass(frozen=True)
class ConfigLoader:
    """Builds an ``EngineConfig`` with 3-tier precedence."""

    config_path: Optional[Path]
    defaults: EngineConfig

    @classmethod
    def create(cls, config_path: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_path is None:
            candidate = Path(__file__).parent.parent.parent / "config" / "settings.yaml"
            config_path = candidate if candidate.exists() else None

        return cls(
            config_path=Path(config_path) if config_path is not None else None,
            defaults=get_default_config(),
        )

    def load_file(self) -> dict[str, Any]:
        """Load the YAML settings file, empty when none is configured."""
        if self.config_path is None:
            return {}

        if not self.config_path.exists():
            raise ConfigurationError(
                f"Settings file not found: {self.config_path}",
                context={"path": str(self.config_path)}
            )

        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Settings file is not valid YAML: {e}",
                context={"path": str(self.config_path)}
            ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Settings file must contain a mapping at the top level",
                context={"path": str(self.config_path)}
            )
        return data

    def merge_config(self, overrides: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Explicit overrides (highest priority)
        2. Settings file
        3. Global defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)
        config = self._deep_merge(config, self.load_file())

        if overrides:
            config = self._deep_merge(config, overrides)

        return config

    def load(self, overrides: Optional[dict[str, Any]] = None) -> EngineConfig:
        """Merge, validate and build the typed configuration."""
        merged = self.merge_config(overrides)

        errors = ConfigValidator.validate_config(merged)
        if errors:
            messages = [f"{err.field}: {err.message} (got: {err.value})" for err in errors]
            logger.error("Configuration validation failed", errors=messages)
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(messages),
                errors=errors
            )

        return self.build(merged)

    def build(self, merged: dict[str, Any]) -> EngineConfig:
        """Convert a merged configuration dictionary into dataclasses."""
        try:
            sections = {}
            for name, section_cls in _SECTIONS.items():
                values = dict(merged.get(name) or {})
                if name == "signals":
                    values["watchlist"] = tuple(
                        entry if isinstance(entry, WatchEntry) else WatchEntry(**entry)
                        for entry in values.get("watchlist") or ()
                    )
                if name == "scanner":
                    values["blacklist"] = tuple(values.get("blacklist") or ())
                    values["whitelist"] = tuple(values.get("whitelist") or ())
                sections[name] = section_cls(**values)

            venues = tuple(
                venue if isinstance(venue, VenueSettings) else VenueSettings(**venue)
                for venue in merged.get("venues") or ()
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown or malformed configuration key: {e}") from e

        return EngineConfig(venues=venues, **sections)

    def _dataclass_to_dict(self, obj: Any) -> Any:
        """Convert nested dataclasses to plain dictionaries and lists."""
        if hasattr(obj, '__dataclass_fields__'):
            return {
                field_name: self._dataclass_to_dict(getattr(obj, field_name))
                for field_name in obj.__dataclass_fields__
            }
        if isinstance(obj, (list, tuple)):
            return [self._dataclass_to_dict(item) for item in obj]
        return obj

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
