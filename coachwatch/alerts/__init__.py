"""Alert emission and delivery sinks."""

from .emitter import AlertEmitter
from .sinks import MqttAlertSink, SecurityLogSink

__all__ = ["AlertEmitter", "MqttAlertSink", "SecurityLogSink"]
