"""
Turns unauthorized matches into structured alerts and hands them to sinks.

Delivery is fire-and-forget: sinks run on a small background executor,
failures are logged, and nothing is retried on a sink's behalf.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from ..core.errors import AlertContractViolation, log_exception
from ..interfaces import NotificationSink
from ..matching.matcher import MatchResult
from ..models.alert import AlertEvent, AlertMeta
from ..recognition.cycle import utcnow


def _iso(ts: datetime.datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(datetime.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class AlertEmitter:
    def __init__(
        self,
        sinks: Optional[Sequence[NotificationSink]] = None,
        *,
        max_workers: int = 2,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.sinks: List[NotificationSink] = list(sinks or [])
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="AlertSink")
        self._closed = False

    def add_sink(self, sink: NotificationSink) -> None:
        self.sinks.append(sink)

    def build_alert(self, zone_id: str, result: MatchResult) -> AlertEvent:
        if not result.is_unauthorized or result.best_identity is None or result.distance is None:
            raise AlertContractViolation(
                f"emit() requires an accepted match on an unauthorized identity "
                f"(accepted={result.accepted}, identity={getattr(result.best_identity, 'identity_id', None)})"
            )
        identity = result.best_identity
        return AlertEvent(
            alert_id=str(uuid.uuid4()),
            zone_id=zone_id,
            timestamp_utc=_iso(self.clock()),
            bbox=result.probe_box,
            meta=AlertMeta(
                identity_id=identity.identity_id,
                display_name=identity.display_name,
                role=identity.role.value,
                ticket_reference=identity.ticket_reference,
                distance=result.distance,
                confidence=result.confidence,
            ),
        )

    def emit(self, zone_id: str, result: MatchResult) -> AlertEvent:
        """
        Publish an unauthorized-entry alert to every sink without blocking.

        Raises ``AlertContractViolation`` if ``result`` is not an accepted
        match on an unauthorized identity.
        """
        alert = self.build_alert(zone_id, result)
        self.logger.warning(
            "Security Alert: unauthorized person detected zone=%s identity=%s distance=%.3f",
            zone_id,
            alert.meta.identity_id,
            alert.meta.distance,
        )
        if self._closed:
            self.logger.error("Alert %s dropped: emitter is closed", alert.alert_id)
            return alert
        for sink in self.sinks:
            try:
                future = self._executor.submit(sink.publish, zone_id, alert)
            except RuntimeError as exc:
                # close() won the race after the _closed check
                self.logger.error("Alert %s dropped for %s: %s", alert.alert_id, sink.__class__.__name__, exc)
                continue
            future.add_done_callback(self._make_done_callback(sink, alert))
        return alert

    def _make_done_callback(self, sink: NotificationSink, alert: AlertEvent) -> Callable[[Future], None]:
        def _done(future: Future) -> None:
            exc = future.exception()
            if exc is not None:
                log_exception(
                    self.logger,
                    "Alert delivery failed",
                    extra={"sink": sink.__class__.__name__, "alert_id": alert.alert_id},
                    exc=exc,
                )
        return _done

    def close(self, wait: bool = True) -> None:
        """Stop accepting alerts and optionally wait for pending deliveries."""
        self._closed = True
        self._executor.shutdown(wait=wait)


__all__ = ["AlertEmitter"]
