# Re-export the canonical settings so modules can depend on imagefamily.config
from .core.config import Settings, get_settings, settings

__all__ = [
    "Settings",
    "get_settings",
    "settings",
]
