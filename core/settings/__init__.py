"""Settings management."""

from .settings_manager import SettingsManager, DEFAULT_SETTINGS
from .receiver_config import ReceiverConfig

__all__ = ['SettingsManager', 'DEFAULT_SETTINGS', 'ReceiverConfig']
