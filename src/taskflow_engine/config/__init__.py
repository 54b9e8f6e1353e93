"""Configuration helpers."""

from taskflow_engine.config.logging_setup import configure_logging
from taskflow_engine.config.settings import Settings, get_settings

__all__ = ["Settings", "configure_logging", "get_settings"]
