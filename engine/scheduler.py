"""
Time-based triggers for the receiver.

The scheduler owns the periodic refresh tick and the one-shot reveal
timeout. It performs no gating of its own: every tick is forwarded, and the
ingestion/controller decide what to do with it.
"""
from __future__ import annotations

from abc import ABCMeta, abstractmethod
from typing import Callable, Dict, List, Optional

from PySide6.QtCore import QObject, QTimer

from core.logging.logger import get_logger, is_verbose_logging
from core.logging.tags import TAG_LIFECYCLE, TAG_POLL

logger = get_logger(__name__)


class QABCMeta(type(QObject), ABCMeta):
    """Metaclass combining QObject and ABC."""
    pass


class TimerHandle:
    """Cancellable reference to a one-shot timeout."""

    def __init__(self, cancel_fn: Optional[Callable[[], None]] = None):
        self._cancel_fn = cancel_fn
        self._cancelled = False
        self._fired = False

    def cancel(self) -> None:
        if self._cancelled or self._fired:
            return
        self._cancelled = True
        if self._cancel_fn is not None:
            self._cancel_fn()

    def _mark_fired(self) -> None:
        self._fired = True

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)


class Scheduler(metaclass=ABCMeta):
    """Abstract source of periodic ticks and one-shot timeouts."""

    @abstractmethod
    def on_tick(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked on every periodic tick."""

    @abstractmethod
    def after(self, duration_ms: int, callback: Callable[[], None]) -> TimerHandle:
        """Invoke ``callback`` once after ``duration_ms``."""

    @abstractmethod
    def set_interval(self, interval_ms: int) -> None:
        """Change the tick period; applies immediately if running."""

    @abstractmethod
    def start(self) -> None:
        """Start periodic ticks."""

    @abstractmethod
    def stop(self) -> None:
        """Stop periodic ticks and cancel outstanding timeouts."""

    @property
    @abstractmethod
    def is_running(self) -> bool:
        ...


class QtScheduler(QObject, Scheduler, metaclass=QABCMeta):
    """Scheduler driven by QTimer on the Qt event loop."""

    def __init__(self, interval_ms: int, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._tick_callbacks: List[Callable[[], None]] = []
        self._tick_timer = QTimer(self)
        self._tick_timer.setInterval(int(interval_ms))
        self._tick_timer.timeout.connect(self._on_tick_timer)
        self._one_shots: Dict[QTimer, TimerHandle] = {}

    def on_tick(self, callback: Callable[[], None]) -> None:
        self._tick_callbacks.append(callback)

    def after(self, duration_ms: int, callback: Callable[[], None]) -> TimerHandle:
        timer = QTimer(self)
        timer.setSingleShot(True)

        def _cancel():
            timer.stop()
            self._release(timer)

        handle = TimerHandle(_cancel)

        def _fire():
            self._release(timer)
            if not handle.active:
                return
            handle._mark_fired()
            callback()

        timer.timeout.connect(_fire)
        self._one_shots[timer] = handle
        timer.start(max(0, int(duration_ms)))
        return handle

    def _release(self, timer: QTimer) -> None:
        if self._one_shots.pop(timer, None) is not None:
            timer.deleteLater()

    def set_interval(self, interval_ms: int) -> None:
        self._tick_timer.setInterval(int(interval_ms))
        logger.info("%s Refresh interval set to %dms", TAG_POLL, interval_ms)

    @property
    def interval_ms(self) -> int:
        return self._tick_timer.interval()

    def start(self) -> None:
        if self._tick_timer.isActive():
            return
        self._tick_timer.start()
        logger.info("%s Scheduler started (%dms)", TAG_LIFECYCLE, self._tick_timer.interval())

    def stop(self) -> None:
        if self._tick_timer.isActive():
            self._tick_timer.stop()
        for handle in list(self._one_shots.values()):
            handle.cancel()
        logger.info("%s Scheduler stopped", TAG_LIFECYCLE)

    @property
    def is_running(self) -> bool:
        return self._tick_timer.isActive()

    def _on_tick_timer(self) -> None:
        if is_verbose_logging():
            logger.debug("%s Tick", TAG_POLL)
        for callback in list(self._tick_callbacks):
            try:
                callback()
            except Exception as e:
                logger.error("Tick callback failed: %s", e, exc_info=True)
