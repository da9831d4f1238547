"""
Periodic channel: polls the default source on every scheduler tick.
"""
from __future__ import annotations

import uuid
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from core.errors import NoSourceAvailable
from core.logging.logger import is_verbose_logging
from core.logging.tags import TAG_POLL
from engine.scheduler import Scheduler
from engine.update_types import ImageReference
from sources.base_channel import ChannelType, SourceChannel

CACHE_BUST_PARAM = "random"


def _new_token() -> str:
    return uuid.uuid4().hex[:12]


def add_cache_buster(locator: str, token: str) -> str:
    """
    Return ``locator`` with ``random=<token>`` in its query string.

    Only http(s) URLs are rewritten; local paths have no query to carry it.
    An existing ``random`` parameter is replaced.
    """
    parsed = urlparse(locator)
    if parsed.scheme.lower() not in ("http", "https"):
        return locator
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != CACHE_BUST_PARAM]
    query.append((CACHE_BUST_PARAM, token))
    return urlunparse(parsed._replace(query=urlencode(query)))


class PeriodicSource(SourceChannel):
    """
    Submits the default source every refresh interval.

    With cache busting enabled each tick yields a distinct reference, so an
    endpoint that serves a different image per request is re-fetched every
    time. Without it, de-duplication suppresses repeat ticks.

    Ticks keep flowing while the controller is busy; ingestion decides what
    to do with them.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        default_source: Optional[str],
        cache_bust: bool = True,
        emit_on_start: bool = True,
        token_factory: Callable[[], str] = _new_token,
        channel_id: str = "default",
    ):
        super().__init__(channel_id, ChannelType.PERIODIC)
        self._source = default_source or None
        self._cache_bust = bool(cache_bust)
        self._emit_on_start = emit_on_start
        self._token_factory = token_factory
        self._active = False
        self._reported_missing = False
        scheduler.on_tick(self._on_tick)

    @property
    def default_source(self) -> Optional[str]:
        return self._source

    def set_default_source(self, source: Optional[str]) -> None:
        self._source = (source or "").strip() or None
        self._reported_missing = False
        self._logger.info("%s Default source set to %s", TAG_POLL, self._source)

    def set_cache_bust(self, enabled: bool) -> None:
        self._cache_bust = bool(enabled)

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._logger.info("%s Polling %s", TAG_POLL, self._source or "<no default source>")
        if self._emit_on_start:
            self.poll()

    def stop(self) -> None:
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def _on_tick(self) -> None:
        if self._active:
            self.poll()

    def next_reference(self) -> ImageReference:
        """
        Build the reference for this poll.

        Raises:
            NoSourceAvailable: If no default source is configured
        """
        if not self._source:
            raise NoSourceAvailable("no default source configured")
        locator = self._source
        if self._cache_bust:
            locator = add_cache_buster(locator, self._token_factory())
        return ImageReference(locator)

    def poll(self) -> bool:
        """Submit one reference now. Returns what ingestion returned."""
        try:
            ref = self.next_reference()
        except NoSourceAvailable as e:
            if not self._reported_missing:
                self._reported_missing = True
                self._logger.info("%s %s; waiting for push updates", TAG_POLL, e)
            return False
        if is_verbose_logging():
            self._logger.debug("%s Tick -> %s", TAG_POLL, ref)
        return self._emit(ref)
