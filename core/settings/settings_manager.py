"""
Settings manager implementation for the image receiver.

Uses QSettings for persistent storage with dot-notation keys.
"""
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import threading
from PySide6.QtCore import QSettings, QObject, Signal
from core.logging.logger import get_logger, is_verbose_logging

logger = get_logger('SettingsManager')


DEFAULT_SETTINGS: Dict[str, Any] = {
    # Timing
    'timing.refresh_interval_ms': 3000,
    'timing.reveal_duration_ms': 1500,

    # Sources. An empty default source means "nothing to poll".
    'sources.default': '',
    'sources.cache_bust': True,

    # Push channel transport
    'push.enabled': False,
    'push.host': '127.0.0.1',
    'push.port': 8765,

    # Preload verification
    'preload.timeout_s': 10.0,
    'preload.max_bytes': 32 * 1024 * 1024,

    # Display
    'display.fullscreen': True,
    'display.radar_overlay': True,
}


class SettingsManager(QObject):
    """
    Centralized settings management for the receiver.

    Uses QSettings for persistent storage with organization/application name,
    or an INI file when ``ini_path`` is given.
    Thread-safe with change notifications.
    """

    # Signal emitted when settings change
    settings_changed = Signal(str, object)  # key, new_value

    def __init__(self, organization: str = "RadarImageReceiver",
                 application: str = "Receiver",
                 ini_path: Optional[Path] = None):
        """
        Initialize the settings manager.

        Args:
            organization: Organization name for QSettings
            application: Application name for QSettings
            ini_path: Optional INI file backing the store instead of the
                platform-native location
        """
        super().__init__()

        if ini_path is not None:
            self._settings = QSettings(str(ini_path), QSettings.Format.IniFormat)
        else:
            self._settings = QSettings(organization, application)
        self._organization = organization
        self._application = application
        self._lock = threading.RLock()
        self._change_handlers: Dict[str, List[Callable[[Any, Any], None]]] = {}

        self._set_defaults()

        logger.info("SettingsManager initialized (%s)", self._settings.fileName())

    def _set_defaults(self) -> None:
        """Set default values if not already present."""
        with self._lock:
            for key, value in DEFAULT_SETTINGS.items():
                if not self._settings.contains(key):
                    self._settings.setValue(key, value)
        if is_verbose_logging():
            logger.debug("Defaults applied: %r", DEFAULT_SETTINGS)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting key in dot notation (e.g., 'timing.refresh_interval_ms')
            default: Default value if key not found

        Returns:
            Setting value or default
        """
        with self._lock:
            return self._settings.value(key, default)

    @staticmethod
    def to_bool(value: Any, default: bool = False) -> bool:
        """Normalize a stored setting value to bool.

        Accepts common string forms ("true", "1", "yes", "on") as True and
        ("false", "0", "no", "off") as False. INI-backed stores hand back
        strings, so this is needed on every read of a bool key.
        """
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            v = value.strip().lower()
            if v in ("true", "1", "yes", "on"):
                return True
            if v in ("false", "0", "no", "off"):
                return False
            return default
        if value is None:
            return default
        return bool(value)

    @staticmethod
    def to_int(value: Any, default: int = 0) -> int:
        """Normalize a stored setting value to int, falling back to default."""
        if isinstance(value, bool):
            return int(value)
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default

    @staticmethod
    def to_float(value: Any, default: float = 0.0) -> float:
        """Normalize a stored setting value to float, falling back to default."""
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Convenience wrapper around get() that normalizes to bool."""
        return self.to_bool(self.get(key, default), default)

    def get_int(self, key: str, default: int = 0) -> int:
        """Convenience wrapper around get() that normalizes to int."""
        return self.to_int(self.get(key, default), default)

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Convenience wrapper around get() that normalizes to float."""
        return self.to_float(self.get(key, default), default)

    def get_application_name(self) -> str:
        """Return the QSettings application name for this manager."""
        return self._application

    def get_organization_name(self) -> str:
        """Return the QSettings organization name for this manager."""
        return self._organization

    def set(self, key: str, value: Any) -> None:
        """
        Set a setting value.

        Args:
            key: Setting key in dot notation
            value: Value to set
        """
        with self._lock:
            old_value = self._settings.value(key)
            self._settings.setValue(key, value)
            handlers = list(self._change_handlers.get(key, ()))

        self.settings_changed.emit(key, value)

        for handler in handlers:
            try:
                handler(value, old_value)
            except Exception as e:
                logger.error("Error in change handler for %s: %s", key, e, exc_info=True)

        if is_verbose_logging():
            logger.debug("Setting changed: %s: %r -> %r", key, old_value, value)
        else:
            logger.debug("Setting changed: %s", key)

    def save(self) -> None:
        """Force save settings to persistent storage."""
        with self._lock:
            self._settings.sync()
        logger.debug("Settings saved")

    def load(self) -> None:
        """Reload settings from persistent storage."""
        with self._lock:
            self._settings.sync()
        logger.debug("Settings loaded")

    def on_changed(self, key: str, handler: Callable[[Any, Any], None]) -> None:
        """
        Register a handler for when a specific setting changes.

        Args:
            key: Setting key to watch
            handler: Callback function(new_value, old_value)
        """
        with self._lock:
            self._change_handlers.setdefault(key, []).append(handler)

        logger.debug("Registered change handler for %s", key)

    def reset_to_defaults(self) -> None:
        """Reset all settings to default values."""
        with self._lock:
            self._settings.clear()
            for key, value in DEFAULT_SETTINGS.items():
                self._settings.setValue(key, value)
            self._settings.sync()

        logger.info("Settings reset to defaults")
        self.settings_changed.emit('*', None)

    def get_all_keys(self) -> List[str]:
        """Get all setting keys."""
        with self._lock:
            return self._settings.allKeys()

    def contains(self, key: str) -> bool:
        """Check if a setting key exists."""
        with self._lock:
            return self._settings.contains(key)

    def remove(self, key: str) -> None:
        """Remove a setting key."""
        with self._lock:
            self._settings.remove(key)
        logger.debug("Removed setting: %s", key)

    def clear(self) -> None:
        """Clear all settings (use with caution)."""
        with self._lock:
            self._settings.clear()
        logger.warning("All settings cleared")
