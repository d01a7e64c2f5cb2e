"""
Planar YUV420 -> RGB conversion.

BT.601 style integer-range math, one chroma sample per 2x2 luma block.
Samples whose plane index falls outside the plane are skipped and the pixel is
left black, so a short buffer never rejects the whole frame.
"""
import numpy as np


def convert_yuv420_to_rgb(frame):
    """Convert one RawFrame into an (height, width, 3) uint8 RGB array"""
    width = frame.width
    height = frame.height

    rgb = np.zeros((max(height, 0), max(width, 0), 3), dtype=np.uint8)
    if width <= 0 or height <= 0:
        return rgb

    bytes_y = np.frombuffer(frame.y_plane, dtype=np.uint8)
    bytes_u = np.frombuffer(frame.u_plane, dtype=np.uint8)
    bytes_v = np.frombuffer(frame.v_plane, dtype=np.uint8)

    # Plane indices for every output pixel
    rows, cols = np.mgrid[0:height, 0:width]
    y_index = rows * frame.y_row_stride + cols
    uv_index = (cols // 2) * frame.uv_pixel_stride + (rows // 2) * frame.uv_row_stride

    valid = (
        (y_index >= 0) & (y_index < bytes_y.size)
        & (uv_index >= 0) & (uv_index < bytes_u.size) & (uv_index < bytes_v.size)
    )
    if not np.any(valid):
        return rgb

    yp = bytes_y[y_index[valid]].astype(np.float64)
    up = bytes_u[uv_index[valid]].astype(np.float64) - 128.0
    vp = bytes_v[uv_index[valid]].astype(np.float64) - 128.0

    r = yp + 1.402 * vp
    g = yp - 0.344136 * up - 0.714136 * vp
    b = yp + 1.772 * up

    # Truncate toward zero, then clamp each channel
    channels = [np.clip(np.trunc(c), 0, 255) for c in (r, g, b)]
    rgb[valid] = np.stack(channels, axis=-1).astype(np.uint8)

    return rgb
