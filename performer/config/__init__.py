"""Configuration module."""

from performer.config.constants import ENGINE, EngineConstants
from performer.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "EngineConstants", "ENGINE"]
