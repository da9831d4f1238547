"""
Tests for UpdateController: the single-flight preload, reveal and swap cycle.
"""
import random

import pytest

from core.errors import ConfigError
from core.settings import ReceiverConfig
from engine.observer import ObserverGroup, UpdateObserver
from engine.update_types import BufferRole, TransitionState, UpdatePhase
from tests._receiver_test_utils import RecordingObserver, RecordingRenderer, ref


def _complete_cycle(rig, locator):
    rig.verifier.succeed(locator)
    assert rig.scheduler.fire_timeouts() == 1


class TestUpdateCycle:
    """End-to-end cycles with manual verify and timeout control."""

    def test_single_submit_runs_full_cycle(self, rig):
        """Idle -> Preloading -> Revealing -> Idle with the new image active."""
        c = rig.controller
        assert c.submit(ref("img://a")) is True
        assert c.state == TransitionState.preloading(ref("img://a"))

        rig.verifier.succeed("img://a")
        assert c.state == TransitionState.revealing(ref("img://a"))
        assert rig.scheduler.pending_timeouts == [1500]
        # Not active until the reveal completes
        assert c.active_reference is None
        assert c.buffer.standby_reference == ref("img://a")

        rig.scheduler.fire_timeouts()
        assert c.state.is_idle
        assert c.active_reference == ref("img://a")
        assert c.buffer.current(BufferRole.ACTIVE) == (ref("img://a"), "handle:img://a")
        assert rig.observer.of("revealed") == [("revealed", "img://a")]

    def test_renderer_command_order(self, rig):
        rig.controller.submit(ref("img://a"))
        _complete_cycle(rig, "img://a")
        assert rig.renderer.calls == [
            ("show", BufferRole.STANDBY, "handle:img://a"),
            ("start_transition_effect",),
            ("reset_standby",),
            ("end_transition_effect",),
        ]

    def test_burst_while_busy_dispatches_only_latest(self, rig):
        """b and c arrive during a's preload; only c follows a."""
        c = rig.controller
        c.submit(ref("img://a"))
        assert c.submit(ref("img://b")) is True
        assert c.submit(ref("img://c")) is True
        assert c.pending_reference == ref("img://c")
        assert rig.observer.of("superseded") == [("superseded", "img://b")]

        _complete_cycle(rig, "img://a")
        assert c.state == TransitionState.preloading(ref("img://c"))
        assert c.pending_reference is None
        assert rig.verifier.requested() == ["img://a", "img://c"]

        _complete_cycle(rig, "img://c")
        assert c.active_reference == ref("img://c")
        assert rig.verifier.requested() == ["img://a", "img://c"]

    def test_resubmitting_in_flight_image_cancels_older_pending(self, rig):
        """a is loading, b arrives, then a again: a is the latest, b must not follow."""
        c = rig.controller
        c.submit(ref("img://x"))
        _complete_cycle(rig, "img://x")

        c.submit(ref("img://a"))
        assert c.submit(ref("img://b")) is True
        assert c.submit(ref("img://a")) is False
        assert c.pending_reference is None
        assert rig.observer.of("superseded") == [("superseded", "img://b")]

        _complete_cycle(rig, "img://a")
        assert c.state.is_idle
        assert c.active_reference == ref("img://a")
        assert rig.verifier.requested() == ["img://x", "img://a"]

    def test_failed_verify_returns_to_idle(self, rig):
        c = rig.controller
        c.submit(ref("img://good"))
        _complete_cycle(rig, "img://good")
        rig.renderer.calls.clear()

        c.submit(ref("img://bad"))
        rig.verifier.fail("img://bad", reason="decode failed")

        assert c.state.is_idle
        assert c.active_reference == ref("img://good")
        assert rig.observer.of("failed") == [("failed", "img://bad", "decode failed")]
        assert rig.renderer.calls == []
        assert rig.scheduler.pending_timeouts == []

    def test_duplicate_submit_while_idle_verifies_once(self, rig):
        c = rig.controller
        assert c.submit(ref("img://a")) is True
        assert c.submit(ref("img://a")) is False
        assert rig.verifier.requested() == ["img://a"]

    def test_resubmitting_active_image_is_ignored(self, rig):
        c = rig.controller
        c.submit(ref("img://a"))
        _complete_cycle(rig, "img://a")
        assert c.submit(ref("img://a")) is False
        assert rig.verifier.requested() == ["img://a"]
        assert c.state.is_idle


class TestRandomizedSequences:
    """Randomized checks of single-flight, latest-wins and no partial display."""

    LOCATORS = ["img://a", "img://b", "img://c", "img://d"]

    @pytest.mark.parametrize("seed", range(8))
    def test_random_sequences_hold_invariants(self, rig, seed):
        rng = random.Random(seed)
        c = rig.controller
        verified = set()

        for _ in range(200):
            action = rng.choice(["submit", "submit", "resolve", "timeout"])
            if action == "submit":
                c.submit(ref(rng.choice(self.LOCATORS)))
            elif action == "resolve" and rig.verifier.outstanding:
                if rng.random() < 0.7:
                    call = rig.verifier.succeed()
                    verified.add(call.reference)
                else:
                    rig.verifier.fail()
            elif action == "timeout":
                rig.scheduler.fire_timeouts()

            # Single flight
            assert len(rig.verifier.outstanding) <= 1
            if c.state.phase is UpdatePhase.PRELOADING:
                assert len(rig.verifier.outstanding) == 1
            else:
                assert rig.verifier.outstanding == []
            # Only verified images are ever active
            assert c.active_reference is None or c.active_reference in verified
            # Exactly one active slot
            assert c.buffer.active_count() == 1

    def test_latest_wins_exactly_one_followup(self, rig):
        c = rig.controller
        c.submit(ref("img://x"))
        c.submit(ref("img://A"))
        c.submit(ref("img://B"))
        rig.verifier.fail("img://x")

        assert rig.verifier.requested() == ["img://x", "img://B"]
        assert c.pending_reference is None

    def test_renderer_never_sees_two_active_slots(self, rig):
        buffer = rig.controller.buffer
        seen = []

        class CheckingRenderer(RecordingRenderer):
            def _record(self, name, *args):
                seen.append(buffer.active_count())
                super()._record(name, *args)

        checking = CheckingRenderer()
        rig.controller._renderer = checking
        for locator in ("img://a", "img://b", "img://c"):
            rig.controller.submit(ref(locator))
            _complete_cycle(rig, locator)

        assert seen and all(count == 1 for count in seen)
        assert buffer.swap_count == 3


class TestStopAndCancellation:

    def test_stop_cancels_in_flight_verify(self, rig):
        c = rig.controller
        c.submit(ref("img://a"))
        token = rig.verifier.calls[0].token

        c.stop()
        assert token.cancelled
        assert c.state.is_idle

        # A late success is discarded
        rig.verifier.succeed("img://a")
        assert c.state.is_idle
        assert c.active_reference is None
        assert rig.renderer.calls == []

    def test_stop_during_reveal_keeps_previous_image(self, rig):
        c = rig.controller
        c.submit(ref("img://a"))
        _complete_cycle(rig, "img://a")
        c.submit(ref("img://b"))
        rig.verifier.succeed("img://b")
        assert c.state.phase is UpdatePhase.REVEALING
        rig.renderer.calls.clear()

        c.stop()
        assert c.state.is_idle
        assert c.active_reference == ref("img://a")
        assert c.buffer.standby_reference is None
        assert rig.scheduler.pending_timeouts == []
        assert rig.renderer.names() == ["end_transition_effect", "reset_standby"]

    def test_stop_drops_pending_and_closes_ingestion(self, rig):
        c = rig.controller
        c.submit(ref("img://a"))
        c.submit(ref("img://b"))
        c.stop()
        assert c.pending_reference is None
        assert c.submit(ref("img://c")) is False
        assert not rig.scheduler.is_running

    def test_stale_result_after_restart_is_discarded(self, rig):
        c = rig.controller
        c.submit(ref("img://a"))
        c.stop()
        c.start()
        c.submit(ref("img://b"))

        rig.verifier.succeed("img://a")
        assert c.state == TransitionState.preloading(ref("img://b"))
        assert c.buffer.standby_reference is None

        _complete_cycle(rig, "img://b")
        assert c.active_reference == ref("img://b")

    def test_submit_before_start_is_ignored(self, make_controller, verifier):
        c = make_controller(start=False)
        assert c.submit(ref("img://a")) is False
        assert verifier.calls == []


class TestFailureIsolation:

    def test_renderer_errors_do_not_stall_cycle(self, make_controller, verifier, scheduler):
        renderer = RecordingRenderer(fail_on=("show", "start_transition_effect", "end_transition_effect"))
        c = make_controller(renderer=renderer)
        c.submit(ref("img://a"))
        verifier.succeed("img://a")
        scheduler.fire_timeouts()
        assert c.state.is_idle
        assert c.active_reference == ref("img://a")

    def test_observer_errors_are_absorbed(self, make_controller, verifier, scheduler):
        class ExplodingObserver(UpdateObserver):
            def ingestion_accepted(self, ref):
                raise RuntimeError("boom")

            def reveal_completed(self, ref):
                raise RuntimeError("boom")

        recording = RecordingObserver()
        c = make_controller(observer=ObserverGroup([ExplodingObserver(), recording]))
        c.submit(ref("img://a"))
        verifier.succeed("img://a")
        scheduler.fire_timeouts()
        assert c.active_reference == ref("img://a")
        assert recording.of("revealed") == [("revealed", "img://a")]

    def test_no_observer_is_fine(self, make_controller, verifier, scheduler):
        c = make_controller(observer=None)
        c.submit(ref("img://a"))
        verifier.succeed("img://a")
        scheduler.fire_timeouts()
        assert c.active_reference == ref("img://a")

    def test_verifier_exception_becomes_failure(self, make_controller, observer):
        class BrokenVerifier:
            def verify(self, ref, token, on_done):
                raise OSError("no sockets")

        c = make_controller(verifier=BrokenVerifier())
        c.submit(ref("img://a"))
        assert c.state.is_idle
        assert observer.of("failed")[0][:2] == ("failed", "img://a")

    def test_accept_while_busy_is_a_programming_error(self, rig):
        rig.controller.submit(ref("img://a"))
        with pytest.raises(RuntimeError):
            rig.controller.accept(ref("img://b"))


class TestSignalsAndSettings:

    def test_image_revealed_signal(self, rig, qtbot):
        rig.controller.submit(ref("img://a"))
        rig.verifier.succeed("img://a")
        with qtbot.waitSignal(rig.controller.image_revealed, timeout=1000) as blocker:
            rig.scheduler.fire_timeouts()
        assert blocker.args == ["img://a"]

    def test_preload_failed_signal(self, rig, qtbot):
        rig.controller.submit(ref("img://bad"))
        with qtbot.waitSignal(rig.controller.preload_failed, timeout=1000) as blocker:
            rig.verifier.fail("img://bad", reason="HTTP 404")
        assert blocker.args == ["img://bad", "HTTP 404"]

    def test_state_changed_signal_sequence(self, rig):
        states = []
        rig.controller.state_changed.connect(states.append)
        rig.controller.submit(ref("img://a"))
        _complete_cycle(rig, "img://a")
        assert states == ["preloading(img://a)", "revealing(img://a)", "idle"]

    def test_reveal_duration_comes_from_config(self, make_controller, scheduler, verifier):
        c = make_controller(config=ReceiverConfig(reveal_duration_ms=800))
        c.submit(ref("img://a"))
        verifier.succeed("img://a")
        assert scheduler.pending_timeouts == [800]

    def test_reveal_duration_change_applies_to_next_reveal(self, rig):
        c = rig.controller
        c.submit(ref("img://a"))
        rig.verifier.succeed("img://a")
        c.set_reveal_duration_ms(400)
        assert rig.scheduler.pending_timeouts == [1500]
        rig.scheduler.fire_timeouts()

        c.submit(ref("img://b"))
        rig.verifier.succeed("img://b")
        assert rig.scheduler.pending_timeouts == [400]

    def test_refresh_interval_change_reprograms_scheduler(self, rig):
        rig.controller.set_refresh_interval_ms(1200)
        assert rig.scheduler.interval_ms == 1200

    @pytest.mark.parametrize("value", [0, -5])
    def test_invalid_live_values_rejected(self, rig, value):
        with pytest.raises(ConfigError):
            rig.controller.set_reveal_duration_ms(value)
        with pytest.raises(ConfigError):
            rig.controller.set_refresh_interval_ms(value)

    def test_refresh_interval_below_minimum_rejected(self, rig):
        rig.controller.set_refresh_interval_ms(1200)
        with pytest.raises(ConfigError):
            rig.controller.set_refresh_interval_ms(50)
        assert rig.scheduler.interval_ms == 1200
        rig.controller.set_refresh_interval_ms(100)
        assert rig.scheduler.interval_ms == 100

    def test_stats(self, rig):
        c = rig.controller
        c.submit(ref("img://a"))
        c.submit(ref("img://a"))
        _complete_cycle(rig, "img://a")
        stats = c.get_stats()
        assert stats['cycles_completed'] == 1
        assert stats['swaps'] == 1
        assert stats['deduplicated'] == 1
        assert stats['state'] == "idle"
