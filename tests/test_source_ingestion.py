"""
Tests for SourceIngestion (latest-wins mailbox with de-duplication).
"""
from typing import List, Optional

import pytest

from engine.source_ingestion import SourceIngestion
from engine.update_types import ImageReference
from tests._receiver_test_utils import ref


class FakeTarget:
    """Minimal controller stand-in with a settable busy flag."""

    def __init__(self):
        self.busy = False
        self.active: Optional[ImageReference] = None
        self.in_flight: Optional[ImageReference] = None
        self.accepted: List[str] = []

    @property
    def is_idle(self) -> bool:
        return not self.busy

    @property
    def active_reference(self):
        return self.active

    @property
    def in_flight_reference(self):
        return self.in_flight

    def accept(self, ref):
        assert not self.busy, "accept while busy"
        self.accepted.append(str(ref))
        self.busy = True
        self.in_flight = ref


@pytest.fixture
def target():
    return FakeTarget()


@pytest.fixture
def ingestion(target, observer):
    ing = SourceIngestion(target, observer)
    ing.open()
    return ing


def test_idle_submit_dispatches_immediately(ingestion, target, observer):
    assert ingestion.submit(ref("img://a")) is True
    assert target.accepted == ["img://a"]
    assert ingestion.pending is None
    assert observer.of("accepted") == [("accepted", "img://a")]


def test_busy_submit_parks_pending(ingestion, target):
    ingestion.submit(ref("img://a"))
    ingestion.submit(ref("img://b"))
    assert ingestion.pending == ref("img://b")
    assert target.accepted == ["img://a"]


def test_pending_is_overwritten_not_queued(ingestion, target, observer):
    target.busy = True
    for locator in ("img://1", "img://2", "img://3", "img://4"):
        ingestion.submit(ref(locator))
    assert ingestion.pending == ref("img://4")
    assert [e[1] for e in observer.of("superseded")] == ["img://1", "img://2", "img://3"]

    target.busy = False
    assert ingestion.try_dispatch() is True
    assert target.accepted == ["img://4"]
    assert ingestion.pending is None


def test_try_dispatch_noop_when_busy_or_empty(ingestion, target):
    assert ingestion.try_dispatch() is False
    target.busy = True
    ingestion.submit(ref("img://a"))
    assert ingestion.try_dispatch() is False
    assert ingestion.pending == ref("img://a")


@pytest.mark.parametrize("slot", ["active", "in_flight", "pending"])
def test_duplicates_are_dropped(ingestion, target, observer, slot):
    dup = ref("img://dup")
    target.busy = True
    if slot == "active":
        target.active = dup
    elif slot == "in_flight":
        target.in_flight = dup
    else:
        ingestion.submit(dup)
        observer.events.clear()

    assert ingestion.submit(ref("img://dup")) is False
    assert observer.events == []
    assert ingestion.get_stats()['deduplicated'] == 1


def test_resubmitting_in_flight_drops_older_pending(ingestion, target, observer):
    ingestion.submit(ref("img://a"))
    ingestion.submit(ref("img://b"))
    observer.events.clear()

    assert ingestion.submit(ref("img://a")) is False
    assert ingestion.pending is None
    assert observer.events == [("superseded", "img://b")]
    assert target.accepted == ["img://a"]

    target.busy = False
    assert ingestion.try_dispatch() is False
    stats = ingestion.get_stats()
    assert stats['deduplicated'] == 1
    assert stats['superseded'] == 1


def test_dispatch_rechecks_active(ingestion, target):
    target.busy = True
    ingestion.submit(ref("img://a"))
    # Meanwhile the same image became active through another cycle
    target.active = ref("img://a")
    target.busy = False

    assert ingestion.try_dispatch() is False
    assert target.accepted == []
    assert ingestion.pending is None


def test_closed_ingestion_ignores_submissions(target, observer):
    ing = SourceIngestion(target, observer)
    assert ing.submit(ref("img://a")) is False
    assert target.accepted == []
    ing.open()
    assert ing.is_open
    ing.close()
    assert ing.submit(ref("img://a")) is False


def test_clear_drops_pending(ingestion, target):
    target.busy = True
    ingestion.submit(ref("img://a"))
    ingestion.clear()
    assert ingestion.pending is None
    target.busy = False
    assert ingestion.try_dispatch() is False


def test_reject_reports_malformed(ingestion, target, observer):
    ingestion.reject({"foo": 1}, "payload lacks 'imageSource'")
    assert observer.of("malformed") == [("malformed", {"foo": 1}, "payload lacks 'imageSource'")]
    assert target.accepted == []


def test_works_without_observer(target):
    ing = SourceIngestion(target)
    ing.open()
    ing.submit(ref("img://a"))
    ing.reject("junk", "bad")
    assert target.accepted == ["img://a"]
