"""
Event channel and performance monitor tests.
"""
import pytest

from bayboard.events import EventChannel
from bayboard.perf import PerformanceMonitor


# ============================================================
# EVENT CHANNEL
# ============================================================

def test_publish_in_registration_order():
    channel = EventChannel("test")
    seen = []
    channel.subscribe(lambda e: seen.append(("a", e)))
    channel.subscribe(lambda e: seen.append(("b", e)))

    assert channel.publish(1) == 2
    assert seen == [("a", 1), ("b", 1)]


def test_faulty_subscriber_is_isolated():
    channel = EventChannel("test")
    seen = []

    def broken(event):
        raise ValueError("boom")

    channel.subscribe(broken)
    channel.subscribe(seen.append)

    assert channel.publish("evt") == 1
    assert seen == ["evt"]


def test_unsubscribe_handle():
    channel = EventChannel("test")
    seen = []
    unsubscribe = channel.subscribe(seen.append)

    assert unsubscribe() is True
    assert channel.subscriber_count == 0
    channel.publish("evt")
    assert seen == []


def test_subscriber_may_unsubscribe_itself():
    channel = EventChannel("test")
    seen = []

    def once(event):
        seen.append(event)
        channel.unsubscribe(once)

    channel.subscribe(once)
    channel.subscribe(seen.append)

    channel.publish(1)
    channel.publish(2)
    assert seen == [1, 1, 2]


# ============================================================
# PERFORMANCE MONITOR
# ============================================================

class StepClock:
    def __init__(self, *readings):
        self.readings = list(readings)

    def __call__(self):
        return self.readings.pop(0)


def test_start_end_records_duration():
    perf = PerformanceMonitor(clock=StepClock(1.0, 1.25))
    perf_id = perf.start("health_check")
    metric = perf.end(perf_id, {"healthy": True})

    assert perf_id.startswith("health_check_")
    assert metric.duration_ms == pytest.approx(250)
    assert metric.metadata == {"healthy": True}
    assert perf.get_metrics() == [metric]


def test_end_unknown_id_is_ignored():
    perf = PerformanceMonitor()
    assert perf.end("nope_1") is None


@pytest.mark.asyncio
async def test_time_records_failures():
    perf = PerformanceMonitor(clock=StepClock(0.0, 0.5))

    async def failing():
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        await perf.time("data_preload_all", failing)

    assert perf.get_metrics()[0].metadata == {"error": "nope"}


def test_report():
    assert PerformanceMonitor(enabled=False).report() == "Performance monitoring is disabled"

    perf = PerformanceMonitor(clock=StepClock(0.0, 0.1, 0.0, 2.0))
    assert perf.report() == "No performance metrics recorded"

    perf.end(perf.start("fast"))
    perf.end(perf.start("slow"))

    assert perf.report() == "Performance Report:\nslow: 2000.00ms\nfast: 100.00ms"
