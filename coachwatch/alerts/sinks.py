"""
Notification sinks for unauthorized-entry alerts.

``MqttAlertSink`` wraps paho-mqtt to publish alerts as JSON with QoS 1
so UI gateways can fan them out. ``SecurityLogSink`` turns alerts into
security-log entries for the persistent log and keeps a short,
de-duplicated list of recent unauthorized detections.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, List, Optional

import paho.mqtt.client as mqtt

from ..config import Settings
from ..core.errors import log_exception
from ..models.alert import AlertEvent, SecurityLogEntry


class MqttAlertSink:
    """
    Publish alerts to ``coachwatch/<zone_id>/alerts``.

    Parameters
    ----------
    settings: Settings
        Application settings containing MQTT connection parameters.
    client: Optional[mqtt.Client]
        Pre-built client, mainly for tests. A new client is created if omitted.
    """

    def __init__(self, settings: Settings, client: Optional[Any] = None, client_id: Optional[str] = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.settings = settings
        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id or "")
        if client is None:
            if settings.mqtt_username:
                self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)
            self.client.on_connect = self.on_connect  # type: ignore
            self.client.on_disconnect = self.on_disconnect  # type: ignore
            # paho reconnects on its own once loop_start() is running.
            self.client.reconnect_delay_set(min_delay=1, max_delay=30)
        self._connected = threading.Event()
        if client is not None:
            self._connected.set()

    def on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:  # type: ignore
        if not reason_code.is_failure:
            self.logger.info("Connected to MQTT broker %s:%s", self.settings.mqtt_broker_host, self.settings.mqtt_broker_port)
            self._connected.set()
        else:
            self.logger.error("Failed to connect to MQTT broker: %s", reason_code)

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:  # type: ignore
        self.logger.warning("MQTT disconnected: %s", reason_code)
        self._connected.clear()

    def connect(self, timeout: float = 10.0) -> None:
        """Connect to the broker and start the network loop."""
        self.client.connect_async(self.settings.mqtt_broker_host, self.settings.mqtt_broker_port, keepalive=60)
        self.client.loop_start()
        if not self._connected.wait(timeout=timeout):
            self.logger.warning("MQTT connection timeout; continuing anyway")

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def publish(self, zone_id: str, alert: AlertEvent) -> None:
        topic = f"coachwatch/{zone_id}/alerts"
        payload = alert.model_dump_json()
        if not self.is_connected():
            self.logger.error("Alert dropped (MQTT disconnected) alert=%s zone=%s", alert.alert_id, zone_id)
            return
        result = self.client.publish(topic, payload, qos=1)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error(
                "Failed to publish alert rc=%s alert=%s zone=%s",
                mqtt.error_string(result.rc),
                alert.alert_id,
                zone_id,
            )
            return
        self.logger.info("Published alert %s to %s", alert.alert_id, topic)

    def stop(self) -> None:
        self.client.loop_stop()
        try:
            self.client.disconnect()
        except Exception as exc:
            log_exception(self.logger, "MQTT disconnect failed", exc=exc)


class SecurityLogSink:
    """
    Convert alerts into ``SecurityLogEntry`` records.

    Every alert is logged. The in-memory list keeps one entry per identity,
    newest first, capped at ``max_entries``.
    """

    def __init__(self, max_entries: int = 50, writer: Optional[Any] = None) -> None:
        self.logger = logging.getLogger("security_log")
        self.max_entries = max(1, int(max_entries))
        self.writer = writer
        self._entries: "OrderedDict[str, SecurityLogEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def publish(self, zone_id: str, alert: AlertEvent) -> None:
        entry = SecurityLogEntry(
            description=f"Unauthorized person detected: {alert.meta.display_name}",
            location=zone_id,
            timestamp_utc=alert.timestamp_utc,
            metadata={
                "alert_id": alert.alert_id,
                "identity_id": alert.meta.identity_id,
                "distance": round(alert.meta.distance, 4),
                "bbox": alert.bbox,
            },
        )
        self.logger.warning(
            "Security log: %s location=%s severity=%s",
            entry.description,
            entry.location,
            entry.severity,
        )
        with self._lock:
            key = alert.meta.identity_id
            if key not in self._entries:
                self._entries[key] = entry
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
        if self.writer is not None:
            self.writer(entry)

    def entries(self) -> List[SecurityLogEntry]:
        with self._lock:
            return list(reversed(self._entries.values()))


__all__ = ["MqttAlertSink", "SecurityLogSink"]
