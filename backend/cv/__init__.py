"""Frame scheduling, re-projection, metrics and capture/detector adapters."""

import os

# Quiet FFmpeg decoder chatter from CaptureSource before cv2 is imported.
os.environ.setdefault("OPENCV_FFMPEG_LOGLEVEL", "error")
