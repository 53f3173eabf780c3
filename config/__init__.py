"""Configuration package"""
from .settings import ENGINE_VERSION, PLATFORM_NAME, Settings, settings

__all__ = ["ENGINE_VERSION", "PLATFORM_NAME", "Settings", "settings"]
