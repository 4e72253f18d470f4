from contextlens.config.manager import ConfigManager
from contextlens.config.settings import EngineConfig, TimeWindow, get_settings

__all__ = ["ConfigManager", "EngineConfig", "TimeWindow", "get_settings"]
