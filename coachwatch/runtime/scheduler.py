"""
Surveillance scheduler driving recognition cycles for a monitored zone.

One ``SurveillanceScheduler`` owns at most one periodic loop. The loop is a
daemon thread paced by ``threading.Event.wait`` so ``stop()`` cancels the
pending firing immediately. Each run carries a generation number; a cycle
result is applied to zone state only if its generation is still current,
which is how an in-flight cycle is discarded after ``stop()``.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..alerts.emitter import AlertEmitter
from ..core.errors import AlertContractViolation, DetectionUnavailable, ModelUnavailable, log_exception
from ..matching.matcher import MatchResult
from ..recognition.cycle import CycleOutcome, RecognitionCycle
from ..security.history import DetectionHistory
from ..security.zone_state import ZoneStateRegistry


class SchedulerState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"


class SurveillanceScheduler:
    """Periodically executes recognition cycles for one zone at a time."""

    def __init__(
        self,
        cycle: RecognitionCycle,
        zone_states: ZoneStateRegistry,
        *,
        emitter: Optional[AlertEmitter] = None,
        history: Optional[DetectionHistory] = None,
        interval: float = 5.0,
        on_cycle: Optional[Callable[[CycleOutcome], None]] = None,
    ) -> None:
        """
        Initialize the scheduler.

        Parameters
        ----------
        cycle: RecognitionCycle
            Recognition pass executed on every firing.
        zone_states: ZoneStateRegistry
            Registry updated with every applied cycle outcome.
        emitter: Optional[AlertEmitter]
            Receives one ``emit`` call per unauthorized hit.
        history: Optional[DetectionHistory]
            Records detections of every applied cycle.
        interval: float
            Seconds between firings. Use the preview cadence for live
            previews and the background cadence for coach monitoring.
        on_cycle: Optional[Callable[[CycleOutcome], None]]
            Called with every applied outcome, including degraded ones.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.logger = logging.getLogger(self.__class__.__name__)
        self.cycle = cycle
        self.zone_states = zone_states
        self.emitter = emitter
        self.history = history
        self.interval = float(interval)
        self.on_cycle = on_cycle
        self.skipped_cycles = 0
        self.last_outcome: Optional[CycleOutcome] = None
        self._state = SchedulerState.IDLE
        self._zone_id: Optional[str] = None
        self._generation = 0
        self._state_lock = threading.RLock()
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def zone_id(self) -> Optional[str]:
        return self._zone_id

    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    def start(self, zone_id: str) -> Optional[CycleOutcome]:
        """
        Begin monitoring ``zone_id``, superseding any current run.

        Runs one cycle synchronously and returns its outcome, then starts
        the periodic loop. Raises ``ModelUnavailable`` and stays idle if the
        detector cannot be initialized. Returns ``None`` if ``stop()`` was
        called while the detector was initializing.
        """
        self.stop()
        with self._state_lock:
            self._state = SchedulerState.STARTING
            self._generation += 1
            generation = self._generation
            self._zone_id = zone_id
        try:
            self.cycle.ensure_ready()
        except Exception as exc:
            with self._state_lock:
                if self._generation == generation:
                    self._state = SchedulerState.IDLE
                    self._zone_id = None
            self.logger.error("Cannot start monitoring zone %s: %s", zone_id, exc)
            if isinstance(exc, ModelUnavailable):
                raise
            raise ModelUnavailable(f"detector initialization failed: {exc}") from exc

        with self._state_lock:
            if self._generation != generation:
                self.logger.info("Start of zone %s cancelled during initialization", zone_id)
                return None
            self._state = SchedulerState.RUNNING
            self._stop_event = threading.Event()
            stop_event = self._stop_event
            self.zone_states.set_monitoring(zone_id, True)
        self.logger.info("Starting facial recognition in zone %s (interval=%ss)", zone_id, self.interval)

        try:
            outcome = self._execute(generation, zone_id)
        except Exception as exc:
            log_exception(self.logger, "First cycle failed; monitoring not started", extra={"zone": zone_id}, exc=exc)
            with self._state_lock:
                if self._generation == generation:
                    self.stop()
            raise

        with self._state_lock:
            if self._generation == generation and self._state is SchedulerState.RUNNING:
                self._thread = threading.Thread(
                    target=self._run,
                    args=(generation, zone_id, stop_event),
                    name=f"Surveillance-{zone_id}",
                    daemon=True,
                )
                self._thread.start()
        return outcome

    def stop(self) -> None:
        """Cancel the periodic loop; idempotent."""
        with self._state_lock:
            if self._state is SchedulerState.IDLE:
                return
            self._generation += 1
            self._stop_event.set()
            zone_id = self._zone_id
            thread = self._thread
            self._thread = None
            self._state = SchedulerState.IDLE
            self._zone_id = None
            if zone_id is not None:
                self.zone_states.set_monitoring(zone_id, False)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, self.interval))
        self.logger.info("Facial recognition stopped for zone %s", zone_id)

    def _count_skipped(self, count: int) -> None:
        with self._state_lock:
            self.skipped_cycles += count

    def _run(self, generation: int, zone_id: str, stop_event: threading.Event) -> None:
        next_fire = time.monotonic() + self.interval
        while not stop_event.wait(timeout=max(0.0, next_fire - time.monotonic())):
            try:
                self._fire(generation, zone_id)
            except Exception as exc:
                self.logger.exception("Error during scheduled cycle: %s", exc)
            next_fire += self.interval
            now = time.monotonic()
            if next_fire <= now:
                missed = int((now - next_fire) // self.interval) + 1
                next_fire += missed * self.interval
                self._count_skipped(missed)
                self.logger.debug("Slow cycle in zone %s; dropped %d firing(s)", zone_id, missed)

    def _fire(self, generation: int, zone_id: str) -> Optional[CycleOutcome]:
        """Run a scheduled cycle unless the previous one is still in flight."""
        if not self._cycle_lock.acquire(blocking=False):
            self._count_skipped(1)
            self.logger.debug("Previous cycle still running in zone %s; skipping", zone_id)
            return None
        try:
            outcome, hits, applied = self._run_cycle(generation, zone_id)
        finally:
            self._cycle_lock.release()
        if applied:
            self._deliver(zone_id, outcome, hits)
        return outcome

    def _execute(self, generation: int, zone_id: str) -> CycleOutcome:
        with self._cycle_lock:
            outcome, hits, applied = self._run_cycle(generation, zone_id)
        if applied:
            self._deliver(zone_id, outcome, hits)
        return outcome

    def _run_cycle(self, generation: int, zone_id: str) -> Tuple[CycleOutcome, List[MatchResult], bool]:
        """Run one cycle and fold it into zone state. Caller holds self._cycle_lock."""
        try:
            outcome = self.cycle.run(zone_id)
        except Exception as exc:
            log_exception(self.logger, "Recognition cycle failed", extra={"zone": zone_id}, exc=exc)
            outcome = CycleOutcome(
                zone_id=zone_id,
                completed_at=self.cycle.clock(),
                error=DetectionUnavailable(f"cycle failed: {exc}"),
            )
        with self._state_lock:
            if self._generation != generation or self._state is SchedulerState.IDLE:
                self.logger.debug("Discarding cycle result for zone %s after stop", zone_id)
                return outcome, [], False
            hits = self.zone_states.apply_cycle(outcome)
            if self.history is not None:
                self.history.record(outcome)
            self.last_outcome = outcome
        return outcome, hits, True

    def _deliver(self, zone_id: str, outcome: CycleOutcome, hits: List[MatchResult]) -> None:
        # Runs without self._cycle_lock so callbacks may restart or stop the scheduler.
        if outcome.degraded:
            self.logger.warning("Processing interrupted in zone %s: %s", zone_id, outcome.error)
        if self.emitter is not None:
            for hit in hits:
                try:
                    self.emitter.emit(zone_id, hit)
                except AlertContractViolation as exc:
                    log_exception(self.logger, "Alert pipeline rejected a hit", extra={"zone": zone_id}, exc=exc)
        if self.on_cycle is not None:
            try:
                self.on_cycle(outcome)
            except Exception as exc:
                log_exception(self.logger, "on_cycle callback failed", extra={"zone": zone_id}, exc=exc)


__all__ = ["SchedulerState", "SurveillanceScheduler"]
