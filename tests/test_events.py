"""
IdleCore — tests/test_events.py
"""

import unittest

from idlecore.events import EventBus, GameEvent, EVT_PRODUCER_PURCHASED, EVT_TRAIT_ACQUIRED


class TestEventBus(unittest.TestCase):
    def setUp(self):
        self.bus = EventBus()
        self.received = []

    def test_keyed_and_wildcard_subscribers(self):
        everything = []
        self.bus.subscribe(EVT_PRODUCER_PURCHASED, self.received.append)
        self.bus.subscribe("*", everything.append)
        self.bus.emit_all([
            GameEvent(event_key=EVT_PRODUCER_PURCHASED, source="essence_well"),
            GameEvent(event_key=EVT_TRAIT_ACQUIRED, source="KeenEye"),
        ])
        self.assertEqual(len(self.received), 1)
        self.assertEqual(len(everything), 2)

    def test_unsubscribe(self):
        self.bus.subscribe(EVT_PRODUCER_PURCHASED, self.received.append)
        self.bus.unsubscribe(EVT_PRODUCER_PURCHASED, self.received.append)
        self.bus.emit(GameEvent(event_key=EVT_PRODUCER_PURCHASED, source="worker"))
        self.assertEqual(self.received, [])

    def test_failing_handler_is_logged_and_skipped(self):
        def broken(event):
            raise RuntimeError("boom")

        self.bus.subscribe(EVT_PRODUCER_PURCHASED, broken)
        self.bus.subscribe(EVT_PRODUCER_PURCHASED, self.received.append)
        with self.assertLogs("idlecore.events", level="ERROR") as logs:
            self.bus.emit(GameEvent(event_key=EVT_PRODUCER_PURCHASED, source="worker"))
        self.assertEqual(len(self.received), 1)
        self.assertIn("Handler error", logs.output[0])
