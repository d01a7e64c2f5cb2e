"""
Frame data structures shared by the camera adapter and the color converter.

- Plane / CameraImage: what the camera stream hands to its callback. The plane
  buffers are views owned by the camera side.
- RawFrame: an immutable copy of one planar YUV420 frame, safe to pass to a
  background worker.
"""
from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class Plane:
    """One image plane as exposed by the camera"""
    data: np.ndarray  # flat uint8 buffer
    bytes_per_row: int
    bytes_per_pixel: int = 1


@dataclass(frozen=True)
class CameraImage:
    """Planar YUV420 image delivered by the camera stream"""
    planes: Tuple[Plane, Plane, Plane]
    width: int
    height: int


@dataclass(frozen=True)
class RawFrame:
    """Immutable snapshot of one planar YUV420 camera frame"""
    y_plane: bytes
    u_plane: bytes
    v_plane: bytes
    y_row_stride: int
    uv_row_stride: int
    uv_pixel_stride: int
    width: int
    height: int

    @classmethod
    def from_camera_image(cls, image):
        """Copy the plane buffers out of a camera image"""
        y, u, v = image.planes
        return cls(
            y_plane=np.asarray(y.data, dtype=np.uint8).tobytes(),
            u_plane=np.asarray(u.data, dtype=np.uint8).tobytes(),
            v_plane=np.asarray(v.data, dtype=np.uint8).tobytes(),
            y_row_stride=y.bytes_per_row,
            uv_row_stride=u.bytes_per_row,
            uv_pixel_stride=u.bytes_per_pixel or 1,
            width=image.width,
            height=image.height,
        )
