"""Configuration package for the checkout notifier."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
