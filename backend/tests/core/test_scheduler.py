import threading

from feedback_insights.core.scheduler import RecurringTask


class TestRecurringTask:

    def test_runs_repeatedly_until_stopped(self):
        calls = []
        reached = threading.Event()

        def tick():
            calls.append(1)
            if len(calls) >= 3:
                reached.set()

        task = RecurringTask(tick, interval=0.01, initial_delay=0.0, name="test-task")
        task.start()
        assert reached.wait(2.0)
        task.stop(timeout=2.0)

        assert not task.running
        count = len(calls)
        assert count >= 3
        # No ticks after stop.
        threading.Event().wait(0.05)
        assert len(calls) == count

    def test_stop_during_initial_delay_prevents_any_tick(self):
        calls = []
        task = RecurringTask(lambda: calls.append(1), interval=0.01, initial_delay=10.0)
        task.start()
        task.stop(timeout=2.0)
        assert calls == []
        assert not task.running

    def test_failing_tick_does_not_end_schedule(self):
        calls = []
        reached = threading.Event()

        def tick():
            calls.append(1)
            if len(calls) >= 2:
                reached.set()
            raise RuntimeError("boom")

        task = RecurringTask(tick, interval=0.01)
        task.start()
        assert reached.wait(2.0)
        task.stop(timeout=2.0)

    def test_start_twice_keeps_one_thread(self):
        task = RecurringTask(lambda: None, interval=0.01, initial_delay=10.0)
        task.start()
        first = task._thread
        task.start()
        assert task._thread is first
        task.stop(timeout=2.0)
