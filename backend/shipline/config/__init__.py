"""
Configuration module initialization.
Exports configuration components for use throughout the engine.
"""

from shipline.config.settings import GitHubConfig, Settings, get_settings

__all__ = ["GitHubConfig", "Settings", "get_settings"]
