"""
bootstrap/config.py - Application configuration

Provides configuration loading from files, environment variables, and defaults.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from pathlib import Path
import os
import json
import logging

logger = logging.getLogger("bootstrap.config")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class PropagationConfig:
    """Propagation engine settings."""

    # Stop propagating below derived nodes whose value did not change
    skip_unchanged: bool = False
    # Guard against effects that keep re-setting sources forever
    max_passes_per_flush: int = 100
    trigger_log_max_entries: int = 10000
    invalidation_history: int = 1000

    @classmethod
    def from_env(cls) -> "PropagationConfig":
        return cls(
            skip_unchanged=_env_bool("FILTERFLOW_SKIP_UNCHANGED", "false"),
            max_passes_per_flush=int(os.getenv("FILTERFLOW_MAX_PASSES", "100")),
            trigger_log_max_entries=int(os.getenv("FILTERFLOW_TRIGGER_LOG_MAX", "10000")),
            invalidation_history=int(os.getenv("FILTERFLOW_INVALIDATION_HISTORY", "1000")),
        )


@dataclass
class SelectionConfig:
    """Field names and labels used by the cascading filter."""

    region_field: str = "region"
    locality_field: str = "locality"
    all_label: str = "All"

    @classmethod
    def from_env(cls) -> "SelectionConfig":
        return cls(
            region_field=os.getenv("FILTERFLOW_REGION_FIELD", "region"),
            locality_field=os.getenv("FILTERFLOW_LOCALITY_FIELD", "locality"),
            all_label=os.getenv("FILTERFLOW_ALL_LABEL", "All"),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None
    json_logs: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=os.getenv("FILTERFLOW_LOG_LEVEL", "INFO"),
            format=os.getenv("FILTERFLOW_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.getenv("FILTERFLOW_LOG_FILE"),
            json_logs=_env_bool("FILTERFLOW_JSON_LOGS", "false"),
        )


@dataclass
class FilterFlowConfig:
    """Root configuration."""

    environment: str = "development"
    debug: bool = False

    propagation: PropagationConfig = field(default_factory=PropagationConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "FilterFlowConfig":
        """Create configuration from environment variables."""
        return cls(
            environment=os.getenv("FILTERFLOW_ENVIRONMENT", "development"),
            debug=_env_bool("FILTERFLOW_DEBUG", "false"),
            propagation=PropagationConfig.from_env(),
            selection=SelectionConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_file(cls, filepath: str) -> "FilterFlowConfig":
        """Load configuration from JSON file."""
        path = Path(filepath)
        if not path.exists():
            logger.warning(f"Config file not found: {filepath}, using defaults")
            return cls.from_env()

        with open(path) as f:
            data = json.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "FilterFlowConfig":
        """Create config from dictionary. File values override the environment."""
        config = cls.from_env()

        if "environment" in data:
            config.environment = data["environment"]
        if "debug" in data:
            config.debug = data["debug"]

        for section in ("propagation", "selection", "logging"):
            target = getattr(config, section)
            for key, value in data.get(section, {}).items():
                if hasattr(target, key):
                    setattr(target, key, value)
                else:
                    logger.warning(f"Ignoring unknown config key: {section}.{key}")

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Serialize config to dictionary."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "propagation": {
                "skip_unchanged": self.propagation.skip_unchanged,
                "max_passes_per_flush": self.propagation.max_passes_per_flush,
                "trigger_log_max_entries": self.propagation.trigger_log_max_entries,
                "invalidation_history": self.propagation.invalidation_history,
            },
            "selection": {
                "region_field": self.selection.region_field,
                "locality_field": self.selection.locality_field,
                "all_label": self.selection.all_label,
            },
            "logging": {
                "level": self.logging.level,
                "log_file": self.logging.log_file,
                "json_logs": self.logging.json_logs,
            },
        }


# Global config instance
_config: Optional[FilterFlowConfig] = None


def load_config(filepath: Optional[str] = None) -> FilterFlowConfig:
    """
    Load configuration from file or environment.

    Args:
        filepath: Optional path to JSON config file

    Returns:
        FilterFlowConfig instance
    """
    global _config

    if filepath:
        _config = FilterFlowConfig.from_file(filepath)
    else:
        default_paths = [
            "./filterflow.json",
            "./config/filterflow.json",
            os.path.expanduser("~/.filterflow/config.json"),
        ]

        for path in default_paths:
            if Path(path).exists():
                logger.info(f"Loading config from: {path}")
                _config = FilterFlowConfig.from_file(path)
                return _config

        _config = FilterFlowConfig.from_env()

    logger.info(f"Configuration loaded: environment={_config.environment}")
    return _config


def get_config() -> FilterFlowConfig:
    """Get current configuration, loading if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
