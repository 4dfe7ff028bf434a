"""Configuration module for the resilience layer."""

from .logging import setup_logging
from .settings import Settings, get_settings

__all__ = ["get_settings", "Settings", "setup_logging"]
