"""
Core module initialization.
Exports configuration, logging and domain error utilities.
"""

from app.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from app.core.exceptions import StorefrontError

__all__ = ["get_settings", "setup_logging", "Settings", "EnvironmentMode", "StorefrontError"]
