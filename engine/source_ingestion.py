"""
Source ingestion: merges the periodic and push channels into one stream of
candidates for the update controller.

The pending slot is a latest-wins mailbox, not a queue. While the controller
is busy every new candidate overwrites the previous pending one, so a burst
of N submissions produces at most one follow-up dispatch.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol

from core.logging.logger import get_logger, is_verbose_logging
from core.logging.tags import TAG_INGEST
from engine.observer import UpdateObserver
from engine.update_types import ImageReference

logger = get_logger(__name__)


class DispatchTarget(Protocol):
    """What ingestion needs from the controller."""

    @property
    def is_idle(self) -> bool: ...

    @property
    def active_reference(self) -> Optional[ImageReference]: ...

    @property
    def in_flight_reference(self) -> Optional[ImageReference]: ...

    def accept(self, ref: ImageReference) -> None: ...


class SourceIngestion:
    """
    Latest-wins mailbox in front of the controller.

    All methods are called on the UI thread; no locking is performed.
    """

    def __init__(self, target: DispatchTarget, observer: Optional[UpdateObserver] = None):
        self._target = target
        self._observer = observer or UpdateObserver()
        self._pending: Optional[ImageReference] = None
        self._open = False
        self._submitted = 0
        self._deduplicated = 0
        self._superseded = 0

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def pending(self) -> Optional[ImageReference]:
        return self._pending

    def _is_duplicate(self, ref: ImageReference) -> bool:
        return ref in (self._target.active_reference, self._pending)

    def submit(self, ref: ImageReference) -> bool:
        """
        Offer a candidate.

        Returns:
            True if the reference was dispatched or parked as pending, False
            if it was a duplicate or ingestion is closed.
        """
        if not self._open:
            logger.debug("%s Ignoring %s: ingestion closed", TAG_INGEST, ref)
            return False

        self._submitted += 1
        if self._is_duplicate(ref):
            self._deduplicated += 1
            if is_verbose_logging():
                logger.debug("%s Duplicate %s ignored", TAG_INGEST, ref)
            return False

        if ref == self._target.in_flight_reference:
            # Already loading and now the newest candidate: whatever was
            # pending is older and must not follow it.
            self._deduplicated += 1
            if self._pending is not None:
                self._superseded += 1
                self._observer.ingestion_superseded(self._pending)
                logger.debug("%s %s is in flight again, dropped pending %s", TAG_INGEST, ref, self._pending)
                self._pending = None
            return False

        self._observer.ingestion_accepted(ref)
        if self._target.is_idle:
            self._target.accept(ref)
            return True

        if self._pending is not None:
            self._superseded += 1
            self._observer.ingestion_superseded(self._pending)
        self._pending = ref
        logger.debug("%s Controller busy, %s parked as pending", TAG_INGEST, ref)
        return True

    def reject(self, payload: Any, reason: str) -> None:
        """Report a payload that carried no usable reference."""
        logger.warning("%s Malformed candidate (%s)", TAG_INGEST, reason)
        self._observer.malformed_candidate(payload, reason)

    def try_dispatch(self) -> bool:
        """
        Hand the pending reference to the controller if it is idle.

        Called by the controller after it has fully settled back into Idle.
        The pending slot is cleared before dispatch; a pending reference that
        has meanwhile become the active one is dropped.
        """
        ref = self._pending
        if ref is None or not self._target.is_idle:
            return False
        self._pending = None
        if ref == self._target.active_reference:
            self._deduplicated += 1
            logger.debug("%s Pending %s already active, dropped", TAG_INGEST, ref)
            return False
        logger.debug("%s Dispatching pending %s", TAG_INGEST, ref)
        self._target.accept(ref)
        return True

    def clear(self) -> None:
        """Drop the pending reference without dispatching it."""
        if self._pending is not None:
            logger.debug("%s Cleared pending %s", TAG_INGEST, self._pending)
        self._pending = None

    def get_stats(self) -> dict:
        return {
            'submitted': self._submitted,
            'deduplicated': self._deduplicated,
            'superseded': self._superseded,
            'pending': str(self._pending) if self._pending else None,
        }
