"""Client settings loading."""

from .app import CourierSettings, get_settings


__all__ = ["CourierSettings", "get_settings"]
