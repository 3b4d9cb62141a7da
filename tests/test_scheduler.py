import threading

import pytest

from coachwatch.alerts.emitter import AlertEmitter
from coachwatch.core.errors import ModelUnavailable
from coachwatch.enrollment.store import EmbeddingStore
from coachwatch.matching.matcher import Matcher
from coachwatch.models.identity import Identity
from coachwatch.recognition.cycle import RecognitionCycle
from coachwatch.runtime.scheduler import SchedulerState, SurveillanceScheduler
from coachwatch.security.history import DetectionHistory
from coachwatch.security.zone_state import AlertLevel, ZoneStateRegistry

INTRUDER_FACE = ([0, 0, 10, 10], [0.0, 1.0])


class _DummySource:
    def __init__(self, frames=None) -> None:
        self._frames = list(frames or [])

    def next_frame(self):  # type: ignore[no-untyped-def]
        if self._frames:
            return self._frames.pop(0)
        return "frame"


class _DummyDetector:
    def __init__(self, faces=None, ready_error=None, gate=None, gate_after=0) -> None:
        self.faces = faces or []
        self.ready_error = ready_error
        self.gate = gate
        # Calls before the gate starts blocking
        self.gate_after = gate_after
        self.entered = threading.Event()
        self.calls = 0

    def ensure_ready(self) -> None:
        if self.ready_error is not None:
            raise self.ready_error

    def detect(self, frame):  # type: ignore[no-untyped-def]
        self.calls += 1
        if self.gate is not None and self.calls > self.gate_after:
            self.entered.set()
            self.gate.wait(timeout=5)
        return list(self.faces)


class _RecordingSink:
    def __init__(self) -> None:
        self.alerts = []

    def publish(self, zone_id, alert):  # type: ignore[no-untyped-def]
        self.alerts.append((zone_id, alert))


def _matcher() -> Matcher:
    store = EmbeddingStore(dimension=2)
    store.enroll(Identity("id-1", "Asha", authorized=True), [1.0, 0.0])
    store.enroll(Identity("id-2", "Ravi", authorized=False), [0.0, 1.0])
    return Matcher(store, threshold=0.5)


def _scheduler(detector, source=None, interval=60.0, **kwargs):
    cycle = RecognitionCycle(frame_source=source or _DummySource(), detector=detector, matcher=_matcher())
    registry = ZoneStateRegistry()
    return SurveillanceScheduler(cycle, registry, interval=interval, **kwargs), registry


def _live_loops():
    return [t for t in threading.enumerate() if t.name.startswith("Surveillance-") and t.is_alive()]


def test_first_cycle_runs_synchronously():
    history = DetectionHistory()
    scheduler, registry = _scheduler(_DummyDetector(faces=[INTRUDER_FACE]), history=history)
    try:
        outcome = scheduler.start("Z1")
        assert outcome is not None and not outcome.degraded
        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.zone_id == "Z1"
        state = registry.get("Z1")
        assert state.unauthorized_count == 1
        assert state.alert_level is AlertLevel.HIGH
        assert state.monitoring_active is True
        assert scheduler.last_outcome is outcome
        assert len(history) == 1
    finally:
        scheduler.stop()
    assert scheduler.state is SchedulerState.IDLE
    assert registry.get("Z1").monitoring_active is False


def test_start_twice_keeps_a_single_loop():
    scheduler, registry = _scheduler(_DummyDetector())
    try:
        scheduler.start("A1")
        scheduler.start("B1")
        assert len(_live_loops()) == 1
        assert scheduler.zone_id == "B1"
        assert registry.get("A1").monitoring_active is False
        assert registry.get("B1").monitoring_active is True
    finally:
        scheduler.stop()
    assert _live_loops() == []


def test_stop_is_idempotent():
    scheduler, _ = _scheduler(_DummyDetector())
    scheduler.stop()
    scheduler.start("Z1")
    scheduler.stop()
    scheduler.stop()
    assert scheduler.state is SchedulerState.IDLE


def test_stop_discards_in_flight_cycle():
    gate = threading.Event()
    detector = _DummyDetector(faces=[INTRUDER_FACE], gate=gate)
    sink = _RecordingSink()
    emitter = AlertEmitter([sink])
    scheduler, registry = _scheduler(detector, emitter=emitter)

    starter = threading.Thread(target=scheduler.start, args=("Z1",))
    starter.start()
    assert detector.entered.wait(timeout=5)
    scheduler.stop()
    gate.set()
    starter.join(timeout=5)
    emitter.close()

    state = registry.get("Z1")
    assert state.unauthorized_count == 0
    assert state.alert_level is AlertLevel.NORMAL
    assert state.last_scan_at is None
    assert scheduler.last_outcome is None
    assert scheduler.state is SchedulerState.IDLE
    assert sink.alerts == []
    assert _live_loops() == []


def test_model_unavailable_leaves_scheduler_idle():
    scheduler, registry = _scheduler(_DummyDetector(ready_error=ModelUnavailable("weights missing")))
    with pytest.raises(ModelUnavailable):
        scheduler.start("Z1")
    assert scheduler.state is SchedulerState.IDLE
    assert registry.get("Z1").monitoring_active is False
    assert _live_loops() == []


def test_unexpected_init_failure_is_reported_as_model_unavailable():
    scheduler, _ = _scheduler(_DummyDetector(ready_error=RuntimeError("onnx session failed")))
    with pytest.raises(ModelUnavailable):
        scheduler.start("Z1")
    assert scheduler.state is SchedulerState.IDLE


def test_overlapping_firing_is_skipped():
    detector = _DummyDetector()
    scheduler, _ = _scheduler(detector)
    scheduler._cycle_lock.acquire()
    try:
        assert scheduler._fire(scheduler._generation, "Z1") is None
    finally:
        scheduler._cycle_lock.release()
    assert scheduler.skipped_cycles == 1
    assert detector.calls == 0


def test_degraded_cycle_does_not_stop_the_loop():
    seen = []
    done = threading.Event()

    def on_cycle(outcome):  # type: ignore[no-untyped-def]
        seen.append(outcome)
        if len(seen) >= 3:
            done.set()

    source = _DummySource(frames=[None, None])
    scheduler, registry = _scheduler(_DummyDetector(faces=[INTRUDER_FACE]), source=source, interval=0.05, on_cycle=on_cycle)
    try:
        first = scheduler.start("Z1")
        assert first.degraded is True
        assert done.wait(timeout=5)
        assert scheduler.is_running()
    finally:
        scheduler.stop()
    assert seen[0].degraded and seen[1].degraded
    assert not seen[2].degraded
    assert registry.get("Z1").unauthorized_count >= 1


def test_hits_are_emitted_as_alerts():
    sink = _RecordingSink()
    emitter = AlertEmitter([sink])
    scheduler, _ = _scheduler(_DummyDetector(faces=[INTRUDER_FACE]), emitter=emitter)
    try:
        scheduler.start("A1")
    finally:
        scheduler.stop()
        emitter.close()
    assert len(sink.alerts) == 1
    zone_id, alert = sink.alerts[0]
    assert zone_id == "A1"
    assert alert.meta.identity_id == "id-2"


def test_failing_on_cycle_callback_is_contained():
    def boom(outcome):  # type: ignore[no-untyped-def]
        raise RuntimeError("ui gone")

    scheduler, registry = _scheduler(_DummyDetector(faces=[INTRUDER_FACE]), on_cycle=boom)
    try:
        outcome = scheduler.start("Z1")
    finally:
        scheduler.stop()
    assert outcome is not None
    assert registry.get("Z1").unauthorized_count == 1


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        _scheduler(_DummyDetector(), interval=0)


def test_malformed_detection_on_first_cycle_keeps_monitoring():
    detector = _DummyDetector(faces=[([float("nan"), 0, 10, 10], [0.0, 1.0])])
    scheduler, registry = _scheduler(detector)
    try:
        outcome = scheduler.start("Z1")
        assert outcome.degraded is True
        assert scheduler.state is SchedulerState.RUNNING
        assert len(_live_loops()) == 1
        state = registry.get("Z1")
        assert state.monitoring_active is True
        assert state.last_cycle_degraded is True
        assert state.last_scan_at is not None
        assert state.unauthorized_count == 0
    finally:
        scheduler.stop()


class _CrashingCycle(RecognitionCycle):
    def run(self, zone_id):  # type: ignore[no-untyped-def]
        raise RuntimeError("unexpected crash")


def test_unexpected_cycle_error_becomes_degraded_outcome():
    cycle = _CrashingCycle(frame_source=_DummySource(), detector=_DummyDetector(), matcher=_matcher())
    registry = ZoneStateRegistry()
    scheduler = SurveillanceScheduler(cycle, registry, interval=60.0)
    try:
        outcome = scheduler.start("Z1")
        assert outcome.degraded is True
        assert "unexpected crash" in outcome.error.reason
        assert scheduler.last_outcome is outcome
        assert registry.get("Z1").last_cycle_degraded is True
    finally:
        scheduler.stop()


class _BrokenRegistry(ZoneStateRegistry):
    def apply_cycle(self, outcome):  # type: ignore[no-untyped-def]
        raise RuntimeError("state store broken")


def test_failed_first_cycle_resets_to_idle():
    cycle = RecognitionCycle(frame_source=_DummySource(), detector=_DummyDetector(), matcher=_matcher())
    registry = _BrokenRegistry()
    scheduler = SurveillanceScheduler(cycle, registry, interval=60.0)
    with pytest.raises(RuntimeError):
        scheduler.start("Z1")
    assert scheduler.state is SchedulerState.IDLE
    assert registry.get("Z1").monitoring_active is False
    assert _live_loops() == []


def test_on_cycle_can_switch_zones():
    switched = []
    holder = {}

    def on_cycle(outcome):  # type: ignore[no-untyped-def]
        if not switched:
            switched.append(outcome.zone_id)
            holder["scheduler"].start("B1")

    scheduler, registry = _scheduler(_DummyDetector(), on_cycle=on_cycle)
    holder["scheduler"] = scheduler
    starter = threading.Thread(target=scheduler.start, args=("A1",), daemon=True)
    starter.start()
    starter.join(timeout=5)
    try:
        assert not starter.is_alive()
        assert switched == ["A1"]
        assert scheduler.zone_id == "B1"
        assert scheduler.is_running()
        assert len(_live_loops()) == 1
        assert registry.get("A1").monitoring_active is False
        assert registry.get("B1").monitoring_active is True
    finally:
        scheduler.stop()


def test_stop_discards_in_flight_loop_cycle():
    gate = threading.Event()
    detector = _DummyDetector(faces=[INTRUDER_FACE], gate=gate, gate_after=1)
    sink = _RecordingSink()
    emitter = AlertEmitter([sink])
    history = DetectionHistory()
    scheduler, registry = _scheduler(detector, interval=0.05, emitter=emitter, history=history)

    first = scheduler.start("Z1")
    loop = scheduler._thread
    assert detector.entered.wait(timeout=5)
    scheduler.stop()
    gate.set()
    loop.join(timeout=5)
    emitter.close()

    assert not loop.is_alive()
    state = registry.get("Z1")
    assert state.unauthorized_count == 1
    assert state.last_scan_at == first.completed_at
    assert scheduler.last_outcome is first
    assert len(history) == 1
    assert len(sink.alerts) == 1


def test_skipped_cycles_counted_from_both_paths():
    scheduler, _ = _scheduler(_DummyDetector())
    scheduler._count_skipped(2)
    scheduler._cycle_lock.acquire()
    try:
        scheduler._fire(scheduler._generation, "Z1")
    finally:
        scheduler._cycle_lock.release()
    assert scheduler.skipped_cycles == 3
