"""
Configuration: environment loading and typed settings.
"""

from backend_time26.config.settings import Settings, get_settings, reset_settings_for_test

__all__ = ["Settings", "get_settings", "reset_settings_for_test"]
