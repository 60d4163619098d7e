"""CV detector configuration."""
import os

DETECTOR_MODEL = os.getenv("DETECTOR_MODEL", "yolov8n.pt")  # COCO classes
CONFIDENCE = float(os.getenv("DETECTOR_CONFIDENCE", "0.5"))
IOU_THRESHOLD = 0.45
MAX_DETECTIONS = 20

# Capture settings
DEFAULT_SOURCE_FPS = 30.0
SOURCE_RECONNECT_MAX_BACKOFF_SEC = 8.0
