"""
Structured diagnostics emitted by the update pipeline.

Observers are pure sinks. The controller behaves identically with no
observer, a failing observer, or several observers.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Optional

from core.events import EventSystem, EventType
from core.logging.logger import get_logger
from core.logging.tags import TAG_INGEST, TAG_PRELOAD, TAG_TRANSITION
from engine.update_types import ImageReference

logger = get_logger(__name__)


class UpdateObserver:
    """
    Receiver of pipeline events. All hooks are no-ops; subclasses override
    the ones they care about.
    """

    def ingestion_accepted(self, ref: ImageReference) -> None:
        """A candidate passed de-duplication and entered the pipeline."""

    def ingestion_superseded(self, ref: ImageReference) -> None:
        """A pending candidate was overwritten by a newer one."""

    def preload_failed(self, ref: ImageReference, reason: str) -> None:
        """Verification of a candidate failed; the display is unchanged."""

    def reveal_completed(self, ref: ImageReference) -> None:
        """A candidate became the active image."""

    def malformed_candidate(self, payload: Any, reason: str) -> None:
        """A submitted payload carried no usable reference."""


class LoggingObserver(UpdateObserver):
    """Renders pipeline events as log lines."""

    def ingestion_accepted(self, ref: ImageReference) -> None:
        logger.debug("%s Accepted %s", TAG_INGEST, ref)

    def ingestion_superseded(self, ref: ImageReference) -> None:
        logger.info("%s Superseded %s", TAG_INGEST, ref)

    def preload_failed(self, ref: ImageReference, reason: str) -> None:
        logger.warning("%s Failed %s: %s", TAG_PRELOAD, ref, reason)

    def reveal_completed(self, ref: ImageReference) -> None:
        logger.info("%s Now showing %s", TAG_TRANSITION, ref)

    def malformed_candidate(self, payload: Any, reason: str) -> None:
        logger.warning("%s Dropped malformed candidate (%s): %r", TAG_INGEST, reason, payload)


class EventBusObserver(UpdateObserver):
    """Republishes pipeline events on an EventSystem."""

    def __init__(self, event_system: EventSystem, source: Any = None):
        self._events = event_system
        self._source = source

    def ingestion_accepted(self, ref: ImageReference) -> None:
        self._events.publish(EventType.IMAGE_ACCEPTED, data={"ref": ref}, source=self._source)

    def ingestion_superseded(self, ref: ImageReference) -> None:
        self._events.publish(EventType.IMAGE_SUPERSEDED, data={"ref": ref}, source=self._source)

    def preload_failed(self, ref: ImageReference, reason: str) -> None:
        self._events.publish(EventType.IMAGE_FAILED, data={"ref": ref, "reason": reason}, source=self._source)

    def reveal_completed(self, ref: ImageReference) -> None:
        self._events.publish(EventType.IMAGE_REVEALED, data={"ref": ref}, source=self._source)

    def malformed_candidate(self, payload: Any, reason: str) -> None:
        self._events.publish(
            EventType.CANDIDATE_MALFORMED,
            data={"payload": payload, "reason": reason},
            source=self._source,
        )


class ObserverGroup(UpdateObserver):
    """
    Fans events out to several observers.

    An exception from one observer is logged and does not prevent delivery
    to the others or affect the caller.
    """

    def __init__(self, observers: Optional[Iterable[UpdateObserver]] = None):
        self._observers: List[UpdateObserver] = list(observers or [])

    def add(self, observer: UpdateObserver) -> None:
        self._observers.append(observer)

    def remove(self, observer: UpdateObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def __len__(self) -> int:
        return len(self._observers)

    def _dispatch(self, hook: str, *args) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, hook)(*args)
            except Exception as e:
                logger.error("Observer %s.%s failed: %s", type(observer).__name__, hook, e, exc_info=True)

    def ingestion_accepted(self, ref: ImageReference) -> None:
        self._dispatch("ingestion_accepted", ref)

    def ingestion_superseded(self, ref: ImageReference) -> None:
        self._dispatch("ingestion_superseded", ref)

    def preload_failed(self, ref: ImageReference, reason: str) -> None:
        self._dispatch("preload_failed", ref, reason)

    def reveal_completed(self, ref: ImageReference) -> None:
        self._dispatch("reveal_completed", ref)

    def malformed_candidate(self, payload: Any, reason: str) -> None:
        self._dispatch("malformed_candidate", payload, reason)
