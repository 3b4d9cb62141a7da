import datetime
import json
import threading

import paho.mqtt.client as mqtt
import pytest

from coachwatch.alerts.emitter import AlertEmitter
from coachwatch.alerts.sinks import MqttAlertSink, SecurityLogSink
from coachwatch.config import Settings, ZoneConfig
from coachwatch.core.errors import AlertContractViolation
from coachwatch.matching.matcher import MatchResult
from coachwatch.models.alert import AlertEvent
from coachwatch.models.identity import Identity

FIXED_NOW = datetime.datetime(2026, 1, 20, 12, 0, 5, 123456, tzinfo=datetime.timezone.utc)
INTRUDER = Identity("id-2", "Ravi", authorized=False)
PASSENGER = Identity("id-1", "Asha", authorized=True, ticket_reference="PNR1")


def _hit(identity: Identity = INTRUDER, accepted: bool = True, distance: float = 0.2) -> MatchResult:
    return MatchResult(probe_box=[1, 2, 3, 4], best_identity=identity, distance=distance, accepted=accepted)


class _RecordingSink:
    def __init__(self) -> None:
        self.alerts = []
        self.delivered = threading.Event()

    def publish(self, zone_id, alert):  # type: ignore[no-untyped-def]
        self.alerts.append((zone_id, alert))
        self.delivered.set()


class _FailingSink:
    def publish(self, zone_id, alert):  # type: ignore[no-untyped-def]
        raise ConnectionError("gateway down")


class _PublishResult:
    def __init__(self, rc) -> None:
        self.rc = rc


class _DummyMQTTClient:
    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS) -> None:
        self.rc = rc
        self.published = []

    def publish(self, topic, payload, qos=0):  # type: ignore[no-untyped-def]
        self.published.append((topic, payload, qos))
        return _PublishResult(self.rc)


def test_alert_contents():
    emitter = AlertEmitter(clock=lambda: FIXED_NOW)
    alert = emitter.emit("A1", _hit())
    emitter.close()
    assert alert.event_type == "UNAUTHORIZED_ENTRY"
    assert alert.severity == "high"
    assert alert.zone_id == "A1"
    assert alert.timestamp_utc == "2026-01-20T12:00:05Z"
    assert alert.bbox == [1, 2, 3, 4]
    assert alert.meta.identity_id == "id-2"
    assert alert.meta.display_name == "Ravi"
    assert alert.meta.distance == pytest.approx(0.2)
    assert alert.meta.confidence == pytest.approx(0.8)


@pytest.mark.parametrize("result", [
    _hit(PASSENGER),
    _hit(accepted=False),
    MatchResult(probe_box=None, best_identity=None, distance=None, accepted=False),
])
def test_emit_rejects_non_unauthorized_results(result):
    sink = _RecordingSink()
    emitter = AlertEmitter([sink])
    with pytest.raises(AlertContractViolation):
        emitter.emit("A1", result)
    emitter.close()
    assert sink.alerts == []


def test_contract_violation_is_a_value_error():
    assert issubclass(AlertContractViolation, ValueError)


def test_failing_sink_does_not_reach_caller_or_other_sinks():
    good = _RecordingSink()
    emitter = AlertEmitter([_FailingSink(), good])
    emitter.emit("B1", _hit())
    emitter.close(wait=True)
    assert len(good.alerts) == 1


def test_closed_emitter_drops_alerts():
    sink = _RecordingSink()
    emitter = AlertEmitter([sink])
    emitter.close()
    emitter.emit("B1", _hit())
    assert sink.alerts == []


def test_mqtt_sink_publishes_json_with_qos1():
    client = _DummyMQTTClient()
    sink = MqttAlertSink(Settings(zones=[ZoneConfig(id="A1")]), client=client)
    alert = AlertEmitter(clock=lambda: FIXED_NOW).build_alert("A1", _hit())
    sink.publish("A1", alert)
    assert len(client.published) == 1
    topic, payload, qos = client.published[0]
    assert topic == "coachwatch/A1/alerts"
    assert qos == 1
    decoded = json.loads(payload)
    assert decoded["meta"]["identity_id"] == "id-2"
    assert AlertEvent.model_validate_json(payload) == alert


def test_mqtt_sink_drops_when_disconnected():
    client = _DummyMQTTClient()
    sink = MqttAlertSink(Settings(zones=[ZoneConfig(id="A1")]), client=client)
    sink._connected.clear()
    sink.publish("A1", AlertEmitter().build_alert("A1", _hit()))
    assert client.published == []


def test_security_log_sink_dedupes_by_identity():
    written = []
    sink = SecurityLogSink(max_entries=2, writer=written.append)
    emitter = AlertEmitter(clock=lambda: FIXED_NOW)
    other = Identity("id-3", "Kiran", authorized=False)
    third = Identity("id-4", "Dev", authorized=False)

    sink.publish("A1", emitter.build_alert("A1", _hit()))
    sink.publish("A1", emitter.build_alert("A1", _hit()))
    sink.publish("B1", emitter.build_alert("B1", _hit(other)))
    sink.publish("C1", emitter.build_alert("C1", _hit(third)))
    emitter.close()

    assert len(written) == 4
    entries = sink.entries()
    assert [e.metadata["identity_id"] for e in entries] == ["id-4", "id-3"]
    assert entries[0].description == "Unauthorized person detected: Dev"
    assert entries[0].location == "C1"
    assert entries[0].event_type == "face_recognition"
    assert entries[0].status == "pending"


def test_emit_racing_close_drops_alert_quietly():
    sink = _RecordingSink()
    emitter = AlertEmitter([sink])
    # Executor already shut down while the emitter still looks open
    emitter._executor.shutdown(wait=True)
    alert = emitter.emit("A1", _hit())
    assert alert.meta.identity_id == "id-2"
    assert sink.alerts == []
