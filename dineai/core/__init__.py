"""
Core module initialization.
Exports configuration and the domain error base class.
"""

from dineai.core.config import get_settings, Settings, EnvironmentMode
from dineai.core.exceptions import DineAIError

__all__ = ["get_settings", "Settings", "EnvironmentMode", "DineAIError"]
