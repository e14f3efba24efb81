# tests/test_events.py
import unittest
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tavern_slots.application.rendering.headless_renderer import HeadlessReelRenderer
from tavern_slots.domain.events.event_dispatcher import EventDispatcher
from tavern_slots.domain.events.session_events import SessionEvent, SessionEventType
from tavern_slots.infrastructure.rng.strategies.numpy_rng import NumpyRNG
from tavern_slots.infrastructure.timing.timer_scheduler import ManualTimerScheduler


class TestEventDispatcher(unittest.TestCase):
    """Test cases for routing session events to subscribers."""

    def setUp(self):
        self.dispatcher = EventDispatcher()
        self.received = []

    def test_type_and_class_handlers(self):
        self.dispatcher.register(SessionEventType.SPIN_REQUESTED, lambda e: self.received.append(("type", e)))
        self.dispatcher.register_for_class(SessionEvent, lambda e: self.received.append(("class", e)))

        self.dispatcher.dispatch(SessionEvent(type=SessionEventType.SPIN_REQUESTED, session_id="s1"))
        self.dispatcher.dispatch(SessionEvent(type=SessionEventType.SESSION_ENDED, session_id="s1"))

        self.assertEqual([kind for kind, _ in self.received], ["type", "class", "class"])
        self.assertEqual(self.received[0][1].data["session_id"], "s1")

    def test_failing_handler_does_not_block_others(self):
        def broken(event):
            raise RuntimeError("subscriber crashed")

        self.dispatcher.register(SessionEventType.STATE_CHANGED, broken)
        self.dispatcher.register(SessionEventType.STATE_CHANGED, self.received.append)

        with self.assertLogs("domain.events.dispatcher", level="ERROR"):
            self.dispatcher.dispatch(SessionEvent(type=SessionEventType.STATE_CHANGED))
        self.assertEqual(len(self.received), 1)

    def test_unregister(self):
        self.dispatcher.register(SessionEventType.REEL_STOPPED, self.received.append)
        self.assertTrue(self.dispatcher.unregister(SessionEventType.REEL_STOPPED, self.received.append))
        self.assertFalse(self.dispatcher.unregister(SessionEventType.REEL_STOPPED, self.received.append))

        self.dispatcher.register_for_class(SessionEvent, self.received.append)
        self.assertTrue(self.dispatcher.unregister_for_class(SessionEvent, self.received.append))

        self.dispatcher.dispatch(SessionEvent(type=SessionEventType.REEL_STOPPED))
        self.assertEqual(self.received, [])


class TestHeadlessReelRenderer(unittest.TestCase):

    def setUp(self):
        self.scheduler = ManualTimerScheduler()
        self.dispatcher = EventDispatcher()
        self.stops = []
        self.dispatcher.register(SessionEventType.REEL_STOPPED, self.stops.append)
        self.renderer = HeadlessReelRenderer(NumpyRNG(seed_value=8), [0, 1, 2, 3, 4, 5], self.scheduler,
                                             event_dispatcher=self.dispatcher, session_id="r1")
        self.completed = []

    def test_completes_once_with_drawn_grid(self):
        grid = self.renderer.spin(500, 10, self.completed.append)

        self.assertEqual(len(grid), 3)
        self.assertTrue(all(len(row) == 5 for row in grid))
        self.scheduler.advance(499)
        self.assertEqual(self.completed, [])
        self.assertEqual(len(self.stops), 4)

        self.scheduler.run_until_idle()
        self.assertEqual(self.completed, [grid])
        self.assertEqual([e.data["column"] for e in self.stops], [0, 1, 2, 3, 4])
        self.assertEqual(self.stops[2].data["symbols"], [row[2] for row in grid])

    def test_second_spin_while_in_flight_is_ignored(self):
        self.renderer.spin(500, 10, self.completed.append)
        self.assertIsNone(self.renderer.spin(500, 10, self.completed.append))

        self.scheduler.run_until_idle()
        self.assertEqual(len(self.completed), 1)
        self.assertEqual(self.renderer.spins_rendered, 1)

    def test_cancel_never_reports(self):
        self.renderer.spin(500, 10, self.completed.append)
        self.renderer.cancel()

        self.scheduler.run_until_idle()
        self.assertFalse(self.renderer.is_spinning)
        self.assertEqual(self.completed, [])
        self.assertEqual(self.stops, [])


if __name__ == '__main__':
    unittest.main()
