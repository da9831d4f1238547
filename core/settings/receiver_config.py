"""Typed configuration snapshot consumed by the update controller."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping, Optional, TYPE_CHECKING

from core.constants.timing import (
    PRELOAD_MAX_BYTES_DEFAULT,
    PRELOAD_TIMEOUT_DEFAULT_S,
    PUSH_PORT_DEFAULT,
    REFRESH_INTERVAL_DEFAULT_MS,
    REFRESH_INTERVAL_MIN_MS,
    REVEAL_DURATION_DEFAULT_MS,
)
from core.errors import ConfigError
from core.logging.logger import get_logger

if TYPE_CHECKING:
    from core.settings.settings_manager import SettingsManager

logger = get_logger(__name__)

# Camel-case option names accepted by from_mapping() for callers that hand
# over controller-style option objects.
_ALIASES = {
    "refreshIntervalMs": "refresh_interval_ms",
    "revealDurationMs": "reveal_duration_ms",
    "defaultSource": "default_source",
}

_NUMERIC_FIELDS = (
    ("refresh_interval_ms", int),
    ("reveal_duration_ms", int),
    ("push_port", int),
    ("preload_timeout_s", float),
    ("preload_max_bytes", int),
)


@dataclass(frozen=True)
class ReceiverConfig:
    """Immutable receiver options.

    ``default_source`` is None when nothing should be polled; the display
    then stays on its placeholder until a push arrives.
    """
    refresh_interval_ms: int = REFRESH_INTERVAL_DEFAULT_MS
    reveal_duration_ms: int = REVEAL_DURATION_DEFAULT_MS
    default_source: Optional[str] = None
    cache_bust: bool = True
    push_enabled: bool = False
    push_host: str = "127.0.0.1"
    push_port: int = PUSH_PORT_DEFAULT
    preload_timeout_s: float = PRELOAD_TIMEOUT_DEFAULT_S
    preload_max_bytes: int = PRELOAD_MAX_BYTES_DEFAULT
    fullscreen: bool = True
    radar_overlay: bool = True

    def __post_init__(self) -> None:
        source = self.default_source
        if source is not None:
            source = str(source).strip() or None
            object.__setattr__(self, "default_source", source)

        for name, kind in _NUMERIC_FIELDS:
            raw = getattr(self, name)
            if isinstance(raw, bool):
                raise ConfigError(f"{name} must be a number, got {raw!r}")
            try:
                object.__setattr__(self, name, kind(raw))
            except (TypeError, ValueError):
                raise ConfigError(f"{name} must be a number, got {raw!r}") from None

        if self.refresh_interval_ms < REFRESH_INTERVAL_MIN_MS:
            raise ConfigError(
                f"refresh_interval_ms must be >= {REFRESH_INTERVAL_MIN_MS}, got {self.refresh_interval_ms}"
            )
        if self.reveal_duration_ms <= 0:
            raise ConfigError(f"reveal_duration_ms must be positive, got {self.reveal_duration_ms}")
        if not 0 <= self.push_port <= 65535:
            raise ConfigError(f"push_port out of range: {self.push_port}")
        if self.preload_timeout_s <= 0:
            raise ConfigError(f"preload_timeout_s must be positive, got {self.preload_timeout_s}")
        if self.preload_max_bytes <= 0:
            raise ConfigError(f"preload_max_bytes must be positive, got {self.preload_max_bytes}")

    @classmethod
    def from_settings(cls, settings: "SettingsManager") -> "ReceiverConfig":
        """Build a snapshot from the persistent settings store."""
        config = cls(
            refresh_interval_ms=settings.get_int('timing.refresh_interval_ms', REFRESH_INTERVAL_DEFAULT_MS),
            reveal_duration_ms=settings.get_int('timing.reveal_duration_ms', REVEAL_DURATION_DEFAULT_MS),
            default_source=settings.get('sources.default', '') or None,
            cache_bust=settings.get_bool('sources.cache_bust', True),
            push_enabled=settings.get_bool('push.enabled', False),
            push_host=str(settings.get('push.host', '127.0.0.1') or '127.0.0.1'),
            push_port=settings.get_int('push.port', PUSH_PORT_DEFAULT),
            preload_timeout_s=settings.get_float('preload.timeout_s', PRELOAD_TIMEOUT_DEFAULT_S),
            preload_max_bytes=settings.get_int('preload.max_bytes', PRELOAD_MAX_BYTES_DEFAULT),
            fullscreen=settings.get_bool('display.fullscreen', True),
            radar_overlay=settings.get_bool('display.radar_overlay', True),
        )
        logger.debug("Config loaded from settings: %r", config)
        return config

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "ReceiverConfig":
        """Build a snapshot from a plain mapping.

        Unknown keys raise ConfigError so typos do not silently fall back to
        defaults.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in options.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown option: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> "ReceiverConfig":
        """Return a copy with the given non-None fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return dataclasses.replace(self, **changes)
