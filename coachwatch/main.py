"""
Entry point for a CoachWatch surveillance node.

Usage (from project root)::

    python -m coachwatch.main --config config/coachwatch_config.yaml --zone A1

This script loads the configuration, initializes logging, restores the
enrollment snapshot, optionally enrolls photos from roster/watchlist
folders, connects the alert sinks and monitors one zone until
interrupted. The snapshot is saved again on shutdown.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from .alerts.sinks import MqttAlertSink, SecurityLogSink
from .config import Settings, load_settings
from .core.errors import ModelUnavailable
from .enrollment.persistence import bulk_enroll, load_snapshot, save_snapshot
from .logging_config import setup_logging
from .models.identity import Identity, Role
from .recognition.cycle import CycleOutcome
from .service import SurveillanceService

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp"}


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CoachWatch surveillance node")
    parser.add_argument(
        "--config",
        type=str,
        default=os.getenv("COACHWATCH_CONFIG_PATH", "config/coachwatch_config.yaml"),
        help="Path to YAML configuration file",
    )
    parser.add_argument("--zone", type=str, required=True, help="Zone (coach) to monitor, e.g. A1")
    parser.add_argument(
        "--source",
        type=str,
        default=os.getenv("COACHWATCH_CAPTURE_SOURCE", "0"),
        help="Capture device index, RTSP URL or video file",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Use the fast preview cadence instead of background monitoring",
    )
    parser.add_argument("--roster", type=str, default=None, help="Folder of authorized photos (Name.jpg)")
    parser.add_argument("--watchlist", type=str, default=None, help="Folder of known unauthorized photos (Name.jpg)")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    return parser.parse_args(argv)


def _photo_items(folder: str, *, authorized: bool, loader) -> List[Tuple[Identity, object]]:
    items: List[Tuple[Identity, object]] = []
    for path in sorted(Path(folder).expanduser().iterdir()):
        if path.suffix.lower() not in IMAGE_SUFFIXES:
            continue
        name = path.stem.replace("_", " ").strip()
        identity = Identity.create(
            name,
            authorized=authorized,
            role=Role.PASSENGER,
            identity_id=f"face-{path.stem.lower()}",
        )
        items.append((identity, loader(str(path))))
    return items


def _report(outcome: CycleOutcome) -> None:
    logger = logging.getLogger("main")
    if outcome.degraded:
        return
    logger.info(
        "Zone %s: %d face(s), %d unauthorized",
        outcome.zone_id,
        len(outcome.results),
        len(outcome.unauthorized()),
    )


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv if argv is not None else sys.argv[1:])
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    setup_logging(level=log_level)
    logger = logging.getLogger("main")
    try:
        settings: Settings = load_settings(args.config)
    except Exception as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    # Vision adapters need the optional extra; import late for a clear error.
    try:
        from .vision import InsightFaceDetector, OpenCVFrameSource, load_image
    except ImportError as exc:
        logger.error("Vision adapters unavailable: %s", exc)
        return 1

    sinks = [SecurityLogSink()]
    mqtt_sink = None
    if settings.mqtt_enabled:
        mqtt_sink = MqttAlertSink(settings, client_id=f"coachwatch-{args.zone}")
        mqtt_sink.connect()
        sinks.append(mqtt_sink)

    service = SurveillanceService(settings, sinks=sinks)
    snapshot_path = settings.enrollment.snapshot_file
    restored = load_snapshot(service.store, snapshot_path)
    logger.info("Restored %d embeddings from %s", restored, snapshot_path)

    frame_source = None
    try:
        detector = InsightFaceDetector()
        service.check_detector(detector)
        source = int(args.source) if args.source.isdigit() else args.source
        frame_source = OpenCVFrameSource(source)
        if args.roster:
            bulk_enroll(service.store, detector, _photo_items(args.roster, authorized=True, loader=load_image))
        if args.watchlist:
            bulk_enroll(service.store, detector, _photo_items(args.watchlist, authorized=False, loader=load_image))
        scheduler = service.build_scheduler(frame_source, detector, preview=args.preview, on_cycle=_report)
        scheduler.start(args.zone)
    except ModelUnavailable as exc:
        logger.error("Face recognition unavailable: %s", exc)
        if frame_source is not None:
            frame_source.release()
        service.close()
        if mqtt_sink is not None:
            mqtt_sink.stop()
        return 2

    logger.info("Monitoring zone %s with %d enrolled embeddings; press Ctrl+C to stop", args.zone, service.store.count())
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down surveillance node...")
    finally:
        scheduler.stop()
        frame_source.release()
        save_snapshot(service.store, snapshot_path)
        service.close()
        if mqtt_sink is not None:
            mqtt_sink.stop()
        totals = service.zone_states.totals()
        logger.info(
            "Session totals: unauthorized=%s alerts=%s",
            totals["total_unauthorized"],
            totals["total_alerts"],
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
