# tests/test_timer_scheduler.py
import unittest
import sys
import os
import threading

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tavern_slots.infrastructure.timing.timer_scheduler import (
    ManualTimerScheduler, ThreadingTimerScheduler, create_scheduler,
)


class TestManualTimerScheduler(unittest.TestCase):
    """Test cases for the virtual clock."""

    def setUp(self):
        self.scheduler = ManualTimerScheduler()
        self.fired = []

    def test_fires_in_due_order(self):
        self.scheduler.schedule(300, lambda: self.fired.append("c"))
        self.scheduler.schedule(100, lambda: self.fired.append("a"))
        self.scheduler.schedule(200, lambda: self.fired.append("b"))

        self.assertEqual(self.scheduler.advance(250), 2)
        self.assertEqual(self.fired, ["a", "b"])
        self.assertEqual(self.scheduler.now_ms(), 250)

        self.scheduler.advance(50)
        self.assertEqual(self.fired, ["a", "b", "c"])

    def test_same_due_time_keeps_schedule_order(self):
        for name in "xyz":
            self.scheduler.schedule(100, lambda name=name: self.fired.append(name))
        self.scheduler.advance(100)
        self.assertEqual(self.fired, ["x", "y", "z"])

    def test_cancelled_timer_never_fires(self):
        handle = self.scheduler.schedule(100, lambda: self.fired.append("a"))

        self.assertTrue(handle.cancel())
        self.assertFalse(handle.cancel())
        self.assertEqual(self.scheduler.pending_count, 0)
        self.scheduler.advance(1000)
        self.assertEqual(self.fired, [])
        self.assertTrue(handle.cancelled)

    def test_timers_scheduled_by_callbacks_fire_inside_window(self):
        def chain():
            self.fired.append(self.scheduler.now_ms())
            if len(self.fired) < 3:
                self.scheduler.schedule(100, chain)

        self.scheduler.schedule(100, chain)
        self.scheduler.advance(1000)

        self.assertEqual(self.fired, [100, 200, 300])

    def test_run_until_idle(self):
        self.scheduler.schedule(5000, lambda: self.fired.append("late"))
        self.scheduler.schedule(10, lambda: self.fired.append("early"))

        self.assertEqual(self.scheduler.run_until_idle(), 2)
        self.assertEqual(self.fired, ["early", "late"])
        self.assertEqual(self.scheduler.now_ms(), 5000)
        self.assertIsNone(self.scheduler.next_due_ms())

    def test_run_until_idle_limit(self):
        def forever():
            self.scheduler.schedule(1, forever)

        self.scheduler.schedule(1, forever)
        self.assertEqual(self.scheduler.run_until_idle(max_timers=50), 50)
        self.assertEqual(self.scheduler.pending_count, 1)

    def test_shutdown_cancels_pending(self):
        handle = self.scheduler.schedule(100, lambda: self.fired.append("a"))
        self.scheduler.shutdown()

        self.assertFalse(handle.active)
        self.scheduler.advance(200)
        self.assertEqual(self.fired, [])

    def test_create_scheduler(self):
        self.assertIsInstance(create_scheduler(), ManualTimerScheduler)
        realtime = create_scheduler(realtime=True)
        self.assertIsInstance(realtime, ThreadingTimerScheduler)
        realtime.shutdown()


class TestThreadingTimerScheduler(unittest.TestCase):
    """Test cases for the wall-clock scheduler."""

    def setUp(self):
        self.scheduler = ThreadingTimerScheduler()

    def tearDown(self):
        self.scheduler.shutdown()

    def test_fires(self):
        done = threading.Event()
        self.scheduler.schedule(10, done.set, name="quick")
        self.assertTrue(done.wait(2.0))

    def test_cancel(self):
        done = threading.Event()
        handle = self.scheduler.schedule(200, done.set)

        self.assertTrue(handle.cancel())
        self.assertEqual(self.scheduler.pending_count, 0)
        self.assertFalse(done.wait(0.4))


if __name__ == '__main__':
    unittest.main()
