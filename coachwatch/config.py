"""
Configuration loading for the CoachWatch surveillance core.

This module provides a Settings class that loads configuration data
from a YAML file located on disk and allows overrides via environment
variables. Environment variables take precedence over values defined
in the YAML configuration. See ``config/coachwatch_config.yaml`` for a
sample configuration file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml


DEFAULT_ZONES = ["ENGINE", "A1", "B1", "C1"]


@dataclass
class ZoneConfig:
    """A monitored physical area, usually one coach."""
    id: str
    label: Optional[str] = None


@dataclass
class MatchingConfig:
    """Nearest-neighbour matching parameters.

    Attributes
    ----------
    threshold: float
        Maximum Euclidean distance at which a match is accepted. The
        default suits 128-d face descriptors.
    dimension: int
        Length of every embedding vector produced by the embedding model.
    """

    threshold: float = 0.6
    dimension: int = 128


@dataclass
class SchedulerConfig:
    """Cadences for the recognition loop.

    The hot preview path re-scans roughly every second; background
    monitoring of a coach runs on a slower cadence.
    """

    preview_interval_sec: float = 1.0
    background_interval_sec: float = 5.0


@dataclass
class EnrollmentConfig:
    """Where the enrollment snapshot is persisted between runs."""
    snapshot_file: str = "data/enrollment_snapshot.json"


@dataclass
class Settings:
    """
    Application settings loaded from YAML and environment variables.
    """

    zones: List[ZoneConfig]
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    enrollment: EnrollmentConfig = field(default_factory=EnrollmentConfig)
    mqtt_enabled: bool = False
    mqtt_broker_host: str = "localhost"
    mqtt_broker_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None

    def zone_ids(self) -> List[str]:
        return [zone.id for zone in self.zones]


def _load_yaml_file(config_path: Path) -> dict:
    """Load a YAML configuration file and return a dictionary."""
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file {config_path!s} not found")
    with config_path.open('r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def _read_bool(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y"}


def load_settings(config_path: str) -> Settings:
    """
    Load settings from a YAML file and environment variables.

    Environment variable overrides:

    - ``COACHWATCH_MATCH_THRESHOLD`` overrides ``matching.threshold``
    - ``COACHWATCH_EMBEDDING_DIM`` overrides ``matching.dimension``
    - ``COACHWATCH_SNAPSHOT_FILE`` overrides ``enrollment.snapshot_file``
    - ``MQTT_BROKER_HOST`` overrides broker host (defaults to ``localhost``)
    - ``MQTT_BROKER_PORT`` overrides broker port (defaults to 1883)
    - ``MQTT_USERNAME`` provides MQTT username if set
    - ``MQTT_PASSWORD`` provides MQTT password if set

    Parameters
    ----------
    config_path: str
        Path to the YAML configuration file.

    Returns
    -------
    Settings
        A Settings instance with configuration and environment overrides applied.
    """
    path = Path(config_path)
    data = _load_yaml_file(path)

    zones_cfg: List[ZoneConfig] = []
    for zone in data.get('zones') or []:
        if isinstance(zone, str):
            zones_cfg.append(ZoneConfig(id=zone))
        elif isinstance(zone, dict) and zone.get('id'):
            zones_cfg.append(ZoneConfig(id=str(zone['id']), label=zone.get('label')))
    if not zones_cfg:
        zones_cfg = [ZoneConfig(id=zone_id) for zone_id in DEFAULT_ZONES]

    matching_data = data.get('matching') or {}
    matching = MatchingConfig(
        threshold=float(os.getenv('COACHWATCH_MATCH_THRESHOLD', matching_data.get('threshold', 0.6))),
        dimension=int(os.getenv('COACHWATCH_EMBEDDING_DIM', matching_data.get('dimension', 128))),
    )
    if matching.threshold <= 0:
        raise ValueError(f"matching.threshold must be positive, got {matching.threshold}")
    if matching.dimension <= 0:
        raise ValueError(f"matching.dimension must be positive, got {matching.dimension}")

    sched_data = data.get('scheduler') or {}
    scheduler = SchedulerConfig(
        preview_interval_sec=float(sched_data.get('preview_interval_sec', 1.0)),
        background_interval_sec=float(sched_data.get('background_interval_sec', 5.0)),
    )

    enrollment_data = data.get('enrollment') or {}
    enrollment = EnrollmentConfig(
        snapshot_file=os.getenv(
            'COACHWATCH_SNAPSHOT_FILE',
            str(enrollment_data.get('snapshot_file', EnrollmentConfig.snapshot_file)),
        ),
    )

    mqtt_data = data.get('mqtt') or {}
    return Settings(
        zones=zones_cfg,
        matching=matching,
        scheduler=scheduler,
        enrollment=enrollment,
        mqtt_enabled=_read_bool(mqtt_data.get('enabled'), False),
        mqtt_broker_host=os.getenv('MQTT_BROKER_HOST', mqtt_data.get('host', 'localhost')),
        mqtt_broker_port=int(os.getenv('MQTT_BROKER_PORT', mqtt_data.get('port', 1883))),
        mqtt_username=os.getenv('MQTT_USERNAME', mqtt_data.get('username')),
        mqtt_password=os.getenv('MQTT_PASSWORD', mqtt_data.get('password')),
    )


__all__ = [
    'ZoneConfig',
    'MatchingConfig',
    'SchedulerConfig',
    'EnrollmentConfig',
    'Settings',
    'load_settings',
]
