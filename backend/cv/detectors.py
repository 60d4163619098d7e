"""
YOLO object detector exposed as an awaitable detection capability.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List

import numpy as np
import torch
from ultralytics import YOLO

from common.config import MODELS_DIR
from common.types import Box, Detection
from cv.config import CONFIDENCE, DETECTOR_MODEL, IOU_THRESHOLD, MAX_DETECTIONS
from cv.exceptions import DetectionFailure

logger = logging.getLogger(__name__)


class YoloDetector:
    """COCO detector; inference runs in a worker thread so the loop stays free."""

    def __init__(
        self,
        model_path: str | None = None,
        confidence: float = CONFIDENCE,
        max_detections: int = MAX_DETECTIONS,
    ):
        self.confidence = confidence
        self.max_detections = max_detections
        self.device = "cuda" if torch.cuda.is_available() else "cpu"
        self._use_half = self.device == "cuda"
        self.model = self._load_model(model_path or DETECTOR_MODEL)

    def _load_model(self, model_path: str) -> YOLO:
        logger.info("PyTorch device: %s", self.device)
        path = Path(model_path)
        if path.exists():
            logger.info("Loading model from: %s", path)
            return YOLO(str(path))

        models_path = MODELS_DIR / model_path
        if models_path.exists():
            logger.info("Loading model from: %s", models_path)
            return YOLO(str(models_path))

        logger.info("Loading default model: %s", model_path)
        return YOLO(model_path)

    def _predict(self, image: np.ndarray) -> List[Detection]:
        results = self.model(
            image,
            conf=self.confidence,
            iou=IOU_THRESHOLD,
            max_det=self.max_detections,
            half=self._use_half,
            verbose=False,
        )[0]

        detections: List[Detection] = []
        boxes = results.boxes
        if boxes is None or len(boxes) == 0:
            return detections

        # Batch GPU->CPU transfer: one round-trip instead of per-box
        xyxy_all = boxes.xyxy.cpu().numpy()
        conf_all = boxes.conf.cpu().numpy()
        cls_all = boxes.cls.cpu().numpy().astype(int)

        for xyxy, conf, class_id in zip(xyxy_all, conf_all, cls_all):
            x1, y1, x2, y2 = (float(v) for v in xyxy)
            detections.append(Detection(
                label=results.names.get(int(class_id), str(class_id)),
                score=min(1.0, max(0.0, float(conf))),
                box=Box(x=x1, y=y1, width=x2 - x1, height=y2 - y1),
            ))
        return detections

    async def detect(self, image: np.ndarray) -> List[Detection]:
        try:
            return await asyncio.to_thread(self._predict, image)
        except Exception as exc:
            raise DetectionFailure(f"{type(exc).__name__}: {exc}") from exc


def get_detector(confidence: float = CONFIDENCE, model_path: str | None = None) -> YoloDetector:
    return YoloDetector(model_path=model_path, confidence=confidence)
