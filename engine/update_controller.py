"""
Update controller - single-flight preload, reveal and swap cycle.

State machine:
    Idle --accept(ref)--> Preloading(ref)
    Preloading(ref) --Verified--> Revealing(ref)
    Preloading(ref) --Failed--> Idle
    Revealing(ref) --reveal timeout--> Idle (after the buffer role swap)

Everything here runs on the Qt UI thread. The only suspension points are
the verifier's fetch/decode and the reveal timeout, so each transition runs
to completion without locks.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, TYPE_CHECKING

from PySide6.QtCore import QObject, Signal

from core.constants.timing import REFRESH_INTERVAL_MIN_MS
from core.errors import ConfigError
from core.logging.logger import get_logger, is_verbose_logging
from core.logging.tags import TAG_LIFECYCLE, TAG_PRELOAD, TAG_TRANSITION
from core.settings.receiver_config import ReceiverConfig
from engine.double_buffer import DoubleBuffer
from engine.observer import ObserverGroup, UpdateObserver
from engine.preload_verifier import CancellationToken, Failed, PreloadResult, PreloadVerifier
from engine.scheduler import Scheduler, TimerHandle
from engine.source_ingestion import SourceIngestion
from engine.update_types import BufferRole, ImageReference, TransitionState, UpdatePhase

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from rendering.renderer import Renderer
    from sources.base_channel import SourceChannel

logger = get_logger(__name__)


class UpdateController(QObject):
    """
    Drives one image update at a time from candidate to active display.

    Collaborators are injected; there is no global instance. ``start()``
    opens ingestion and starts the scheduler and channels, ``stop()`` undoes
    that and cancels whatever cycle is in flight.

    Signals:
    - started: Controller started
    - stopped: Controller stopped
    - state_changed: New state, as text
    - image_revealed: Locator of the new active image
    - preload_failed: Locator and failure reason
    """

    started = Signal()
    stopped = Signal()
    state_changed = Signal(str)
    image_revealed = Signal(str)
    preload_failed = Signal(str, str)

    def __init__(
        self,
        renderer: Renderer,
        verifier: PreloadVerifier,
        scheduler: Scheduler,
        config: Optional[ReceiverConfig] = None,
        channels: Iterable[SourceChannel] = (),
        observer: Optional[UpdateObserver] = None,
        buffer: Optional[DoubleBuffer] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._config = config or ReceiverConfig()
        self._renderer = renderer
        self._verifier = verifier
        self._scheduler = scheduler
        self._buffer = buffer or DoubleBuffer()

        if isinstance(observer, ObserverGroup):
            self._observer = observer
        else:
            self._observer = ObserverGroup([observer] if observer is not None else [])

        self._state = TransitionState.idle()
        self._token: Optional[CancellationToken] = None
        self._reveal_handle: Optional[TimerHandle] = None
        self._reveal_duration_ms = self._config.reveal_duration_ms
        self._running = False
        self._cycles_completed = 0
        self._cycles_failed = 0

        self._ingestion = SourceIngestion(self, self._observer)
        self._channels: List[SourceChannel] = []
        for channel in channels:
            self.add_channel(channel)

        logger.info("UpdateController created (reveal=%dms)", self._reveal_duration_ms)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> TransitionState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state.is_idle

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_reference(self) -> Optional[ImageReference]:
        return self._buffer.active_reference

    @property
    def in_flight_reference(self) -> Optional[ImageReference]:
        return self._state.reference

    @property
    def pending_reference(self) -> Optional[ImageReference]:
        return self._ingestion.pending

    @property
    def buffer(self) -> DoubleBuffer:
        return self._buffer

    @property
    def ingestion(self) -> SourceIngestion:
        return self._ingestion

    @property
    def reveal_duration_ms(self) -> int:
        return self._reveal_duration_ms

    def get_stats(self) -> dict:
        stats = {
            'state': str(self._state),
            'cycles_completed': self._cycles_completed,
            'cycles_failed': self._cycles_failed,
            'swaps': self._buffer.swap_count,
        }
        stats.update(self._ingestion.get_stats())
        return stats

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_channel(self, channel: SourceChannel) -> None:
        channel.attach(self._ingestion)
        self._channels.append(channel)
        if self._running:
            self._start_channel(channel)

    def start(self) -> None:
        if self._running:
            logger.warning("%s Controller already running", TAG_LIFECYCLE)
            return
        self._running = True
        self._ingestion.open()
        self._scheduler.start()
        for channel in self._channels:
            self._start_channel(channel)
        logger.info("%s Controller started with %d channel(s)", TAG_LIFECYCLE, len(self._channels))
        self.started.emit()

    def _start_channel(self, channel: SourceChannel) -> None:
        try:
            channel.start()
        except Exception as e:
            logger.error("%s Channel %s failed to start: %s", TAG_LIFECYCLE, channel.name, e, exc_info=True)

    def stop(self) -> None:
        """
        Stop accepting candidates and abandon any in-flight cycle.

        An in-flight verify is cancelled and its late result discarded. A
        reveal in progress is aborted without swapping, so the previous
        active image stays on screen.
        """
        if not self._running:
            return
        self._running = False

        for channel in self._channels:
            try:
                channel.stop()
            except Exception as e:
                logger.error("%s Channel %s failed to stop: %s", TAG_LIFECYCLE, channel.name, e, exc_info=True)

        self._ingestion.close()
        self._ingestion.clear()

        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self._reveal_handle is not None:
            self._reveal_handle.cancel()
            self._reveal_handle = None

        if self._state.phase is UpdatePhase.REVEALING:
            logger.info("%s Reveal of %s aborted by stop", TAG_TRANSITION, self._state.reference)
            self._render("end_transition_effect")
            self._render("reset_standby")
            self._buffer.clear(BufferRole.STANDBY)

        self._set_state(TransitionState.idle())
        self._scheduler.stop()
        logger.info("%s Controller stopped", TAG_LIFECYCLE)
        self.stopped.emit()

    # ------------------------------------------------------------------
    # Live settings
    # ------------------------------------------------------------------

    def set_reveal_duration_ms(self, duration_ms: int) -> None:
        """Takes effect from the next reveal."""
        duration_ms = int(duration_ms)
        if duration_ms <= 0:
            raise ConfigError(f"reveal duration must be positive, got {duration_ms}")
        self._reveal_duration_ms = duration_ms
        logger.info("%s Reveal duration set to %dms", TAG_TRANSITION, duration_ms)

    def set_refresh_interval_ms(self, interval_ms: int) -> None:
        interval_ms = int(interval_ms)
        if interval_ms < REFRESH_INTERVAL_MIN_MS:
            raise ConfigError(
                f"refresh interval must be >= {REFRESH_INTERVAL_MIN_MS}ms, got {interval_ms}"
            )
        self._scheduler.set_interval(interval_ms)

    # ------------------------------------------------------------------
    # Candidate flow
    # ------------------------------------------------------------------

    def submit(self, ref: ImageReference) -> bool:
        """Convenience for ``ingestion.submit``."""
        return self._ingestion.submit(ref)

    def accept(self, ref: ImageReference) -> None:
        """
        Begin a cycle for ``ref``. Only ingestion calls this, and only while
        idle.

        Raises:
            RuntimeError: If a cycle is already in flight
        """
        if not self._state.is_idle:
            raise RuntimeError(f"accept({ref}) while {self._state}")

        token = CancellationToken()
        self._token = token
        self._set_state(TransitionState.preloading(ref))

        def _on_done(result: PreloadResult) -> None:
            self._on_verified(token, result)

        try:
            self._verifier.verify(ref, token, _on_done)
        except Exception as e:
            logger.error("%s Verifier raised for %s: %s", TAG_PRELOAD, ref, e, exc_info=True)
            self._on_verified(token, Failed(ref, f"verifier error: {e}"))

    def _on_verified(self, token: CancellationToken, result: PreloadResult) -> None:
        if token is not self._token or token.cancelled:
            logger.debug("%s Discarding stale result for %s", TAG_PRELOAD, result.reference)
            return
        self._token = None
        ref = self._state.reference

        if not result.ok:
            self._cycles_failed += 1
            self._set_state(TransitionState.idle())
            self._observer.preload_failed(ref, result.reason)
            self.preload_failed.emit(str(ref), result.reason)
            self._ingestion.try_dispatch()
            return

        self._buffer.write(BufferRole.STANDBY, ref, result.handle)
        self._render("show", BufferRole.STANDBY, result.handle)
        self._set_state(TransitionState.revealing(ref))
        self._render("start_transition_effect")
        self._reveal_handle = self._scheduler.after(self._reveal_duration_ms, self._on_reveal_timeout)

    def _on_reveal_timeout(self) -> None:
        if self._state.phase is not UpdatePhase.REVEALING:
            return
        ref = self._state.reference
        self._reveal_handle = None

        # Swap, reset, clear overlay, Idle: one uninterrupted block.
        self._buffer.swap()
        self._render("reset_standby")
        self._render("end_transition_effect")
        self._set_state(TransitionState.idle())

        self._cycles_completed += 1
        self._observer.reveal_completed(ref)
        self.image_revealed.emit(str(ref))
        self._ingestion.try_dispatch()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: TransitionState) -> None:
        if state == self._state:
            return
        previous = self._state
        self._state = state
        if is_verbose_logging():
            logger.debug("%s %s -> %s", TAG_TRANSITION, previous, state)
        self.state_changed.emit(str(state))

    def _render(self, method: str, *args) -> None:
        try:
            getattr(self._renderer, method)(*args)
        except Exception as e:
            logger.error("%s Renderer.%s failed: %s", TAG_TRANSITION, method, e, exc_info=True)
