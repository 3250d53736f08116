"""
IdleCore — tests/test_tick.py
Shared step function, live ticks, catch-up, rejection.
"""

import unittest

import pytest

from idlecore.clock import ManualClock
from idlecore.commands import PurchaseProducer
from idlecore.data_loader import load_catalog
from idlecore.errors import CorruptedSaveState, InsufficientResource
from idlecore.events import EVT_TICK_CATCH_UP, EVT_TICK_REJECTED, EventBus
from idlecore.state import new_game
from idlecore.tick import TickEngine, clamp_elapsed, step, step_with_events

DAY = 86400.0

catalog = load_catalog()


def _producing_state():
    state = new_game(catalog, now=0.0)
    state.producers["essence_well"].owned = 5
    state.producers["worker"].owned = 3
    return state


def _assert_same(a, b):
    assert a.now == pytest.approx(b.now)
    assert a.resources.keys() == b.resources.keys()
    for key in a.resources:
        assert a.resources[key] == pytest.approx(b.resources[key])
    for npc_id in a.relationships:
        assert a.relationships[npc_id].value == pytest.approx(b.relationships[npc_id].value)


def test_step_accrues_rate_times_elapsed():
    state = _producing_state()
    after = step(state, 100.0, catalog)
    assert after.resources["essence"] == pytest.approx(10 + 0.5 * 100)
    assert after.resources["gold"] == pytest.approx(3.0 * 100)
    assert after.lifetime_resources["gold"] == pytest.approx(300.0)
    assert after.now == 100.0


def test_step_is_pure():
    state = _producing_state()
    step(state, 500.0, catalog)
    assert state.now == 0.0
    assert state.resources["essence"] == 10


def test_step_is_additive():
    state = _producing_state()
    state.relationships["elder_willow"].value = 70
    two = step(step(state, 3 * DAY + 5.0, catalog), 2 * DAY - 5.0, catalog)
    one = step(state, 5 * DAY, catalog)
    _assert_same(two, one)


def test_live_ticks_match_single_step():
    hourly = catalog.with_config(live_tick_seconds=3600.0)
    state = _producing_state()
    engine = TickEngine(state, hourly)
    engine.run(2 * DAY)
    _assert_same(engine.state, step(state, 2 * DAY, hourly))


def _affinity_state():
    state = _producing_state()
    state.acquired_traits = ["GrowingAffinity"]
    state.equipped_traits = ["GrowingAffinity"]
    return state


def test_live_ticks_with_growth_trait_match_single_step():
    per_minute = catalog.with_config(live_tick_seconds=60.0)
    state = _affinity_state()
    start = state.relationships["elder_willow"].value
    engine = TickEngine(state, per_minute)
    engine.run(630.0)
    _assert_same(engine.state, step(state, 630.0, per_minute))
    assert engine.state.relationships["elder_willow"].value == pytest.approx(start + 10.5)


def test_growth_trait_caps_at_model_max_across_ticks():
    per_minute = catalog.with_config(live_tick_seconds=60.0)
    state = _affinity_state()
    engine = TickEngine(state, per_minute)
    engine.run(3 * 3600.0)
    _assert_same(engine.state, step(state, 3 * 3600.0, per_minute))
    assert engine.state.relationships["elder_willow"].value == pytest.approx(
        per_minute.relationship_model.max_value)


def test_decay_applied_through_step():
    simple = catalog.with_config(relationship_model="simple")
    state = new_game(simple, now=0.0)
    state.relationships["scholar_elara"].value = 50
    after = step(state, 4 * DAY, simple)
    assert after.relationships["scholar_elara"].value == pytest.approx(47)


def test_elapsed_capped_at_seven_days():
    assert clamp_elapsed(30 * DAY, catalog) == 7 * DAY
    assert clamp_elapsed(-5.0, catalog) == 0.0
    assert clamp_elapsed(float("nan"), catalog) == 0.0
    after = step(_producing_state(), 30 * DAY, catalog)
    assert after.now == 7 * DAY


def test_cooldowns_count_down_and_expire():
    state = new_game(catalog, now=0.0)
    state.cooldowns["combat"] = 300.0
    mid = step(state, 100.0, catalog)
    assert mid.cooldowns["combat"] == pytest.approx(200.0)
    done = step(mid, 250.0, catalog)
    assert "combat" not in done.cooldowns


def test_step_unlocks_producers_when_requirement_reached():
    state = new_game(catalog, now=0.0)
    state.producers["essence_well"].owned = 5
    after, events = step_with_events(state, 200.0, catalog)
    assert after.producers["soul_lantern"].unlocked
    assert "soul_lantern" in [e.source for e in events if e.event_key == "producer.unlocked"]


class TestTickEngine(unittest.TestCase):
    def setUp(self):
        self.bus = EventBus()
        self.seen = []
        self.bus.subscribe("*", self.seen.append)
        self.clock = ManualClock(start=0.0)
        self.engine = TickEngine(_producing_state(), catalog, bus=self.bus, clock=self.clock)

    def test_corrupted_step_keeps_last_good_state(self):
        self.engine.tick()
        good_essence = self.engine.state.resources["essence"]
        self.engine.state.resources["essence"] = float("nan")
        with self.assertRaises(CorruptedSaveState):
            self.engine.tick()
        self.assertEqual(self.engine.state.resources["essence"], good_essence)
        self.assertIn(EVT_TICK_REJECTED, [e.event_key for e in self.seen])

    def test_catch_up_applies_window_once(self):
        self.clock.advance(1000.0)
        self.assertEqual(self.engine.catch_up(), 1000.0)
        self.assertEqual(self.engine.catch_up(), 0.0)
        self.assertAlmostEqual(self.engine.state.resources["essence"], 10 + 0.5 * 1000)
        self.assertEqual(self.engine.state.last_saved_timestamp, 1000.0)

    def test_catch_up_capped(self):
        applied = self.engine.catch_up(now=30 * DAY)
        self.assertEqual(applied, 7 * DAY)
        catch_up = [e for e in self.seen if e.event_key == EVT_TICK_CATCH_UP][0]
        self.assertEqual(catch_up.data["offline"], 30 * DAY)
        self.assertEqual(catch_up.data["applied"], 7 * DAY)

    def test_catch_up_ignores_backwards_clock(self):
        self.engine.state.last_saved_timestamp = 500.0
        self.assertEqual(self.engine.catch_up(now=100.0), 0.0)

    def test_dispatch_swaps_state_on_success_only(self):
        self.engine.state.resources["essence"] = 100.0
        self.engine.dispatch(PurchaseProducer(producer_id="essence_well"))
        self.assertEqual(self.engine.state.producers["essence_well"].owned, 6)
        with self.assertRaises(InsufficientResource):
            self.engine.dispatch(PurchaseProducer(producer_id="essence_well", amount=10))
        self.assertEqual(self.engine.state.producers["essence_well"].owned, 6)

    def test_snapshot_shape(self):
        snap = self.engine.snapshot()
        self.assertEqual(set(snap), {"now", "resources", "rates", "tiers", "effects", "cooldowns"})
        self.assertAlmostEqual(snap["rates"]["essence"], 0.5)
        self.assertEqual(snap["tiers"]["captain_vex"], "Wary")
