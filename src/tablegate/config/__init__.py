"""
Configuration - settings file and connection sources.
"""

from .settings import (
    ConnectionSource,
    EngineSettings,
    SettingsConnectionSource,
    StaticConnectionSource,
    load_settings,
)

__all__ = [
    "ConnectionSource",
    "EngineSettings",
    "SettingsConnectionSource",
    "StaticConnectionSource",
    "load_settings",
]
