from mailplane.core.config.loader import ConfigError, load_settings
from mailplane.core.config.settings import Settings

__all__ = ["ConfigError", "Settings", "load_settings"]
