"""
OpenCV camera adapter producing planar YUV420 frames.

A capture thread grabs BGR frames from V4L2, converts them to I420 and pushes
them to the registered callback. The callback runs on the capture thread; the
planes are writable numpy views, consumers copy them (RawFrame) before handing
them to another worker.
"""
import logging
import time
from threading import Event, Thread

import cv2
import numpy as np

from .frames import CameraImage, Plane

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """No usable capture device"""


def available_cameras(max_index=8):
    """Indices of capture devices that can be opened"""
    found = []
    for index in range(max_index):
        cap = cv2.VideoCapture(index, cv2.CAP_V4L2)
        try:
            if cap.isOpened():
                found.append(index)
        finally:
            cap.release()
    return found


def bgr_to_camera_image(frame):
    """Convert a BGR frame into a planar YUV420 CameraImage"""
    height, width = frame.shape[:2]
    # I420 needs even dimensions
    height -= height % 2
    width -= width % 2
    if height <= 0 or width <= 0:
        raise ValueError(f"Frame too small: {frame.shape}")
    frame = np.ascontiguousarray(frame[:height, :width])

    i420 = cv2.cvtColor(frame, cv2.COLOR_BGR2YUV_I420).reshape(-1)
    luma_size = width * height
    chroma_size = luma_size // 4
    y_plane = i420[:luma_size]
    u_plane = i420[luma_size:luma_size + chroma_size]
    v_plane = i420[luma_size + chroma_size:luma_size + 2 * chroma_size]

    return CameraImage(
        planes=(
            Plane(y_plane, bytes_per_row=width),
            Plane(u_plane, bytes_per_row=width // 2),
            Plane(v_plane, bytes_per_row=width // 2),
        ),
        width=width,
        height=height,
    )


class CameraStream:
    def __init__(self, camera_index=0, resolution=(320, 240), framerate=30):
        self.camera_index = camera_index
        self.resolution = resolution
        self.framerate = framerate
        self.stream = None
        self._thread = None
        self._stopped = Event()
        self._callback = None

    @property
    def is_initialized(self):
        return self.stream is not None and self.stream.isOpened()

    @property
    def is_streaming(self):
        return self._thread is not None and self._thread.is_alive()

    def initialize(self):
        """Open the capture device (low resolution, video only)"""
        self.stream = cv2.VideoCapture(self.camera_index, cv2.CAP_V4L2)
        if not self.stream.isOpened():
            self.stream.release()
            self.stream = None
            raise CameraError(f"Could not open camera {self.camera_index}")

        self.stream.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
        self.stream.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        self.stream.set(cv2.CAP_PROP_FPS, self.framerate)
        self.stream.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        logger.info("Camera %d opened at %sx%s", self.camera_index, *self.resolution)
        return self

    def start_image_stream(self, callback):
        if not self.is_initialized:
            raise CameraError("Camera is not initialized")
        if self.is_streaming:
            return
        self._callback = callback
        self._stopped.clear()
        self._thread = Thread(target=self._update, name="camera-stream", daemon=True)
        self._thread.start()

    def stop_image_stream(self):
        """Stop pushing frames; a no-op when not streaming"""
        if self._thread is None:
            return
        self._stopped.set()
        self._thread.join(timeout=2.0)
        self._thread = None
        self._callback = None

    def _update(self):
        callback = self._callback
        while not self._stopped.is_set():
            grabbed, frame = self.stream.read()
            if not grabbed or frame is None:
                time.sleep(0.01)
                continue
            try:
                callback(bgr_to_camera_image(frame))
            except Exception:
                logger.exception("Frame callback failed")

    def dispose(self):
        self.stop_image_stream()
        if self.stream is not None:
            self.stream.release()
            self.stream = None
