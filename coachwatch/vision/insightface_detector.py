"""
InsightFace-backed face detector/embedder.

Implements the detector capability consumed by the recognition cycle:
given a BGR frame, return ``(bbox, embedding)`` pairs. The model is loaded
lazily on first use and shared by the instance.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, List, Optional, Tuple

try:
    import numpy as np  # type: ignore
except ImportError:
    np = None  # type: ignore

try:
    from insightface.app import FaceAnalysis  # type: ignore
except ImportError:
    FaceAnalysis = None  # type: ignore

from ..core.errors import DetectionUnavailable, ModelUnavailable


def _l2_normalize(arr: "np.ndarray") -> "np.ndarray":
    norm = float(np.linalg.norm(arr))
    if norm > 0:
        return arr / norm
    return arr


class InsightFaceDetector:
    """
    Detect faces and compute embeddings with an InsightFace model pack.

    Parameters
    ----------
    model_name: Optional[str]
        Model pack name; defaults to ``COACHWATCH_FACE_MODEL`` or ``buffalo_l``.
    root: Optional[str]
        Model directory; defaults to ``INSIGHTFACE_HOME`` or ``~/.insightface``.
    min_face_size: int
        Faces smaller than this in either dimension are ignored.
    embedding_dimension: int
        Length of the vectors the recognition model emits (512 for buffalo_l).
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        root: Optional[str] = None,
        *,
        det_size: Tuple[int, int] = (640, 640),
        ctx_id: int = -1,
        min_face_size: int = 60,
        normalize: bool = True,
        embedding_dimension: int = 512,
    ) -> None:
        self.logger = logging.getLogger("face_detector")
        self.model_name = model_name or os.getenv("COACHWATCH_FACE_MODEL", "buffalo_l")
        self.root = root or os.getenv("INSIGHTFACE_HOME", os.path.expanduser("~/.insightface"))
        self.det_size = det_size
        self.ctx_id = ctx_id
        self.min_face_size = int(min_face_size)
        self.normalize = normalize
        self.embedding_dimension = int(embedding_dimension)
        self._app: Optional["FaceAnalysis"] = None
        self._lock = threading.Lock()

    def ensure_ready(self) -> "FaceAnalysis":
        if FaceAnalysis is None or np is None:
            raise ModelUnavailable("insightface is not installed; install the 'vision' extra to use face recognition")
        with self._lock:
            if self._app is not None:
                return self._app
            try:
                app = FaceAnalysis(name=self.model_name, root=self.root, allowed_modules=["detection", "recognition"])
                app.prepare(ctx_id=self.ctx_id, det_size=self.det_size)
            except AssertionError as exc:
                self.logger.error(
                    "InsightFace model '%s' loaded without 'detection'. "
                    "Check %s/models/%s for *.onnx files (no extra subfolder).",
                    self.model_name, self.root, self.model_name,
                )
                raise ModelUnavailable(f"model pack {self.model_name} is incomplete") from exc
            except Exception as exc:
                raise ModelUnavailable(f"failed to load model pack {self.model_name}: {exc}") from exc
            self._app = app
            self.logger.info("Loaded InsightFace model %s from %s", self.model_name, self.root)
            return app

    def detect(self, frame: Any) -> List[Tuple[List[int], List[float]]]:
        """
        Detect face bounding boxes and embeddings.

        Returns
        -------
        List[Tuple[List[int], List[float]]]
            List of (bbox, embedding) pairs, bbox is [x1, y1, x2, y2].
        """
        app = self.ensure_ready()
        try:
            faces = app.get(frame)
        except Exception as exc:
            raise DetectionUnavailable(f"insightface inference failed: {exc}") from exc
        results: List[Tuple[List[int], List[float]]] = []
        for face in faces:
            bbox = [int(v) for v in face.bbox.tolist()]
            if bbox[2] - bbox[0] < self.min_face_size or bbox[3] - bbox[1] < self.min_face_size:
                continue
            emb = face.embedding
            if self.normalize:
                emb = _l2_normalize(emb)
            results.append((bbox, [float(x) for x in emb]))
        return results


__all__ = ["InsightFaceDetector"]
