"""
statecascade/config.py - Configuration

Loads configuration from a JSON file, environment variables, and
defaults, and sets up logging.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from pathlib import Path
import json
import logging
import os
import sys

logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = DEFAULT_LOG_FORMAT
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=os.getenv("STATECASCADE_LOG_LEVEL", "INFO"),
            format=os.getenv("STATECASCADE_LOG_FORMAT", DEFAULT_LOG_FORMAT),
            log_file=os.getenv("STATECASCADE_LOG_FILE"),
        )


@dataclass
class ReferenceConfig:
    """Defaults for CascadeRef instances."""

    max_swap_retries: int = 100
    trigger_log_size: int = 1000
    record_triggers: bool = True

    @classmethod
    def from_env(cls) -> "ReferenceConfig":
        return cls(
            max_swap_retries=int(os.getenv("STATECASCADE_MAX_SWAP_RETRIES", "100")),
            trigger_log_size=int(os.getenv("STATECASCADE_TRIGGER_LOG_SIZE", "1000")),
            record_triggers=_env_bool("STATECASCADE_RECORD_TRIGGERS", "true"),
        )


@dataclass
class CascadeConfig:
    """Root configuration."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    reference: ReferenceConfig = field(default_factory=ReferenceConfig)

    # Additional settings
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "CascadeConfig":
        """Create configuration from environment variables."""
        return cls(
            logging=LoggingConfig.from_env(),
            reference=ReferenceConfig.from_env(),
        )

    @classmethod
    def from_file(cls, filepath: str) -> "CascadeConfig":
        """Load configuration from JSON file, over environment values."""
        path = Path(filepath)
        if not path.exists():
            logger.warning(f"Config file not found: {filepath}, using defaults")
            return cls.from_env()

        with open(path) as f:
            data = json.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "CascadeConfig":
        """Create config from dictionary."""
        config = cls.from_env()

        for section in ("logging", "reference"):
            if section in data:
                target = getattr(config, section)
                for key, value in data[section].items():
                    if hasattr(target, key):
                        setattr(target, key, value)
                    else:
                        logger.warning(f"Unknown config key ignored: {section}.{key}")

        if "settings" in data:
            config.settings.update(data["settings"])

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Serialize config to dictionary."""
        return {
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "log_file": self.logging.log_file,
            },
            "reference": {
                "max_swap_retries": self.reference.max_swap_retries,
                "trigger_log_size": self.reference.trigger_log_size,
                "record_triggers": self.reference.record_triggers,
            },
            "settings": dict(self.settings),
        }


# Global config instance
_config: Optional[CascadeConfig] = None


def load_config(filepath: Optional[str] = None) -> CascadeConfig:
    """
    Load configuration from file or environment.

    Args:
        filepath: Optional path to JSON config file. Falls back to
            STATECASCADE_CONFIG, then ./statecascade.json, then the
            environment alone.

    Returns:
        CascadeConfig instance
    """
    global _config

    filepath = filepath or os.getenv("STATECASCADE_CONFIG")
    if filepath:
        _config = CascadeConfig.from_file(filepath)
    elif Path("./statecascade.json").exists():
        logger.info("Loading config from: ./statecascade.json")
        _config = CascadeConfig.from_file("./statecascade.json")
    else:
        _config = CascadeConfig.from_env()

    return _config


def get_config() -> CascadeConfig:
    """Get current configuration, loading if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the loaded configuration; the next get_config() reloads it."""
    global _config
    _config = None


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure logging for an application using statecascade.

    Args:
        config: Logging settings; defaults to get_config().logging
    """
    config = config or get_config().logging
    log_level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(config.format)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)

    # File handler
    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)
