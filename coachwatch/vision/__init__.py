"""Reference adapters for the capture device and the face model."""

from .capture import OpenCVFrameSource, load_image
from .insightface_detector import InsightFaceDetector

__all__ = ["InsightFaceDetector", "OpenCVFrameSource", "load_image"]
