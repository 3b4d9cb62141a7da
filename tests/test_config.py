import os

import pytest

from coachwatch.config import load_settings


def _sample_config() -> str:
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
    return os.path.join(project_root, 'config', 'coachwatch_config.yaml')


def test_load_settings(tmp_path, monkeypatch):
    import shutil

    for name in ("COACHWATCH_MATCH_THRESHOLD", "COACHWATCH_EMBEDDING_DIM", "COACHWATCH_SNAPSHOT_FILE", "MQTT_BROKER_HOST"):
        monkeypatch.delenv(name, raising=False)
    tmp_config = tmp_path / 'config.yaml'
    shutil.copy(_sample_config(), tmp_config)

    settings = load_settings(str(tmp_config))
    assert settings.zone_ids() == ['ENGINE', 'A1', 'B1', 'C1']
    assert settings.matching.threshold == pytest.approx(1.0)
    assert settings.matching.dimension == 512
    assert settings.scheduler.preview_interval_sec == pytest.approx(1.0)
    assert settings.scheduler.background_interval_sec == pytest.approx(5.0)
    assert settings.mqtt_enabled is False


def test_env_overrides_yaml(tmp_path, monkeypatch):
    cfg = tmp_path / 'config.yaml'
    cfg.write_text("matching:\n  threshold: 0.6\n  dimension: 128\n", encoding='utf-8')
    monkeypatch.setenv("COACHWATCH_MATCH_THRESHOLD", "0.45")
    monkeypatch.setenv("COACHWATCH_EMBEDDING_DIM", "512")
    monkeypatch.setenv("COACHWATCH_SNAPSHOT_FILE", str(tmp_path / "snap.json"))
    monkeypatch.setenv("MQTT_BROKER_HOST", "broker.local")

    settings = load_settings(str(cfg))
    assert settings.matching.threshold == pytest.approx(0.45)
    assert settings.matching.dimension == 512
    assert settings.enrollment.snapshot_file == str(tmp_path / "snap.json")
    assert settings.mqtt_broker_host == "broker.local"
    # Zones fall back to the standard coach layout
    assert settings.zone_ids() == ['ENGINE', 'A1', 'B1', 'C1']


def test_rejects_non_positive_threshold(tmp_path, monkeypatch):
    monkeypatch.delenv("COACHWATCH_MATCH_THRESHOLD", raising=False)
    cfg = tmp_path / 'config.yaml'
    cfg.write_text("zones: [Z1]\nmatching:\n  threshold: 0\n", encoding='utf-8')
    with pytest.raises(ValueError):
        load_settings(str(cfg))


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(str(tmp_path / 'nope.yaml'))
