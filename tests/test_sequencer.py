"""Tests for on-air playback sequencing."""

import asyncio

import pytest

from app.modules.playout.routes import get_sequencer
from app.modules.playout.sequencer import OnAirSequencer, phase_duration
from app.main import app

from tests.conftest import ORG_ID, OTHER_ORG_ID


class FakeClock:
    """Deterministic scheduler: timers fire only when the test advances time."""

    def __init__(self):
        self.now_ms = 0
        self.timers = []

    def schedule(self, delay_seconds, callback):
        self.timers.append((self.now_ms + round(delay_seconds * 1000), len(self.timers), callback))

    def advance(self, ms):
        target = self.now_ms + ms
        while True:
            due = sorted(t for t in self.timers if t[0] <= target)
            if not due:
                break
            timer = due[0]
            self.timers.remove(timer)
            self.now_ms = timer[0]
            timer[2]()
        self.now_ms = target


def anim(phase, delay, duration):
    return {"phase": phase, "delay": delay, "duration": duration}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sequencer(clock):
    on_air = OnAirSequencer(scheduler=clock.schedule)
    on_air.set_animations("A", [anim("in", 300, 500), anim("in", 0, 400), anim("out", 0, 600)])
    on_air.set_animations("B", [anim("in", 0, 200)])
    return on_air


class TestPhaseDuration:
    def test_max_of_delay_plus_duration(self):
        assert phase_duration([anim("in", 300, 500), anim("in", 0, 400)], "in") == 800

    def test_floor_applies(self):
        assert phase_duration([anim("in", 0, 100)], "in", 500) == 500
        assert phase_duration([], "out", 300) == 300

    def test_other_phases_ignored(self):
        assert phase_duration([anim("loop", 0, 5000)], "in") == 500


class TestPlayIn:
    def test_advances_to_loop_after_in_animations(self, sequencer, clock):
        state = sequencer.play_in("A", "L1")
        assert state.state == "in"

        clock.advance(799)
        assert sequencer.get_state("L1").state == "in"

        clock.advance(1)
        assert sequencer.get_state("L1").state == "loop"

    def test_out_before_loop_cancels_auto_advance(self, sequencer, clock):
        sequencer.play_in("A", "L1")
        clock.advance(300)
        sequencer.play_out("L1")
        assert sequencer.get_state("L1").state == "out"

        clock.advance(500)
        current = sequencer.get_state("L1")
        assert current is None or current.state != "loop"

        clock.advance(100)
        assert sequencer.get_state("L1") is None

    def test_replaying_in_ignores_first_timer(self, sequencer, clock):
        sequencer.play_in("A", "L1")
        clock.advance(400)
        sequencer.play_in("B", "L1")
        clock.advance(400)
        assert sequencer.get_state("L1").state == "in"
        clock.advance(100)
        assert sequencer.get_state("L1").template_id == "B"
        assert sequencer.get_state("L1").state == "loop"

    def test_layers_are_independent(self, sequencer, clock):
        sequencer.play_in("A", "L1")
        sequencer.play_in("B", "L2")
        clock.advance(500)
        assert sequencer.get_state("L1").state == "in"
        assert sequencer.get_state("L2").state == "loop"


class TestPlayOut:
    def test_out_uses_out_animation_length(self, sequencer, clock):
        sequencer.play_in("A", "L1")
        clock.advance(800)
        sequencer.play_out("L1")
        clock.advance(599)
        assert sequencer.get_state("L1").state == "out"
        clock.advance(1)
        assert sequencer.get_state("L1") is None

    def test_out_on_empty_layer(self, sequencer):
        assert sequencer.play_out("nothing") is None


class TestSwitch:
    def test_switch_plays_out_then_in(self, sequencer, clock):
        sequencer.play_in("A", "L1")
        clock.advance(800)

        state = sequencer.switch_template("B", "L1")
        assert state.state == "out"
        assert state.pending_switch == "B"

        clock.advance(600)
        current = sequencer.get_state("L1")
        assert (current.template_id, current.state) == ("B", "in")

        clock.advance(500)
        assert sequencer.get_state("L1").state == "loop"

    def test_switch_on_empty_layer_plays_in(self, sequencer):
        assert sequencer.switch_template("B", "L1").state == "in"

    def test_switch_to_same_template_is_noop(self, sequencer, clock):
        sequencer.play_in("A", "L1")
        clock.advance(800)
        assert sequencer.switch_template("A", "L1").state == "loop"

    def test_cycle_layer_templates(self, sequencer, clock):
        sequencer.play_in("B", "L1")
        clock.advance(500)

        state = sequencer.switch_layer_template("L1", ["A", "B", "C"])
        assert state.pending_switch == "C"

        clock.advance(500)
        assert sequencer.get_state("L1").template_id == "C"

    def test_cycle_wraps_around(self, sequencer, clock):
        sequencer.play_in("B", "L1")
        clock.advance(500)
        assert sequencer.switch_layer_template("L1", ["A", "B"]).pending_switch == "A"

    def test_cycle_needs_two_templates(self, sequencer, clock):
        sequencer.play_in("A", "L1")
        state = sequencer.switch_layer_template("L1", ["A"])
        assert state.state == "in"
        assert state.pending_switch is None

    def test_cycle_uses_short_out(self, clock):
        on_air = OnAirSequencer(scheduler=clock.schedule)
        on_air.play_in("A", "L1")
        clock.advance(500)
        on_air.switch_layer_template("L1", ["A", "B"])
        clock.advance(300)
        assert on_air.get_state("L1").template_id == "B"


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_default_scheduler_uses_event_loop(self):
        on_air = OnAirSequencer()
        on_air.play_in("A", "L1")
        assert on_air.get_state("L1").state == "in"
        await asyncio.sleep(0.6)
        assert on_air.get_state("L1").state == "loop"


class TestPlayoutRoutes:
    @pytest.fixture
    def on_air(self, clock):
        on_air = OnAirSequencer(scheduler=clock.schedule)
        app.dependency_overrides[get_sequencer] = lambda: on_air
        return on_air

    def test_in_then_out(self, client, fake_supabase, on_air, clock):
        template = fake_supabase.seed("templates", {"name": "Bug", "organization_id": ORG_ID})[0]

        response = client.post("/api/v1/playout/layers/L1/in", json={"template_id": template["id"]})
        assert response.status_code == 200
        assert response.json()["state"] == "in"

        clock.advance(500)
        assert client.get("/api/v1/playout/layers/L1").json()["state"] == "loop"

        response = client.post("/api/v1/playout/layers/L1/out")
        assert response.json()["state"] == "out"

    def test_out_with_nothing_on_air(self, client, on_air):
        assert client.post("/api/v1/playout/layers/L9/out").status_code == 409

    def test_idle_layer_state(self, client, on_air):
        assert client.get("/api/v1/playout/layers/L9").json() == {
            "layer_id": "L9", "template_id": None, "state": "idle", "pending_switch": None
        }

    def test_member_cannot_play_foreign_template(self, client, fake_supabase, on_air, as_member):
        fake_supabase.grant(as_member["id"], "playout:control")
        template = fake_supabase.seed("templates", {"name": "Bug", "organization_id": OTHER_ORG_ID})[0]
        response = client.post("/api/v1/playout/layers/L1/in", json={"template_id": template["id"]})
        assert response.status_code == 403
        assert on_air.get_state("L1") is None
