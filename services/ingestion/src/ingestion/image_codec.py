"""YUV 4:2:0 plane conversion and JPEG encoding.

Camera sensors hand out frames as three planes (Y full size, U and V at
half resolution in both directions), each row possibly padded past the
visible width. The detector wants an RGB image, so planes are packed into
NV21 (Y, then interleaved V/U) and converted with OpenCV.
"""
from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np


@dataclass(frozen=True)
class Plane:
    """One image plane: raw bytes and the byte length of a row (with padding)."""

    data: bytes
    row_stride: int


def _plane_pixels(plane: Plane, width: int, height: int, name: str) -> np.ndarray:
    """Visible ``height`` x ``width`` pixels of a plane, padding dropped."""
    if plane.row_stride < width:
        raise ValueError(f"{name} plane row stride {plane.row_stride} < width {width}")
    buf = np.frombuffer(plane.data, dtype=np.uint8)
    # the last row is often not padded out to the full stride
    needed = plane.row_stride * (height - 1) + width
    if buf.size < needed:
        raise ValueError(f"{name} plane has {buf.size} bytes, need at least {needed}")
    if buf.size < plane.row_stride * height:
        buf = np.pad(buf, (0, plane.row_stride * height - buf.size))
    return buf[: plane.row_stride * height].reshape(height, plane.row_stride)[:, :width]


def planes_to_nv21(y: Plane, u: Plane, v: Plane, width: int, height: int) -> np.ndarray:
    """Pack planar YUV 4:2:0 into an NV21 buffer of shape (height * 3 // 2, width)."""
    if width <= 0 or height <= 0 or width % 2 or height % 2:
        raise ValueError(f"frame size must be positive and even, got {width}x{height}")

    cw, ch = width // 2, height // 2
    y_px = _plane_pixels(y, width, height, "Y")
    u_px = _plane_pixels(u, cw, ch, "U")
    v_px = _plane_pixels(v, cw, ch, "V")

    vu = np.empty((ch, width), dtype=np.uint8)
    vu[:, 0::2] = v_px
    vu[:, 1::2] = u_px
    return np.vstack([y_px, vu])


def nv21_to_rgb(nv21: np.ndarray) -> np.ndarray:
    """Convert an NV21 buffer from planes_to_nv21 to an HxWx3 RGB array."""
    return cv2.cvtColor(nv21, cv2.COLOR_YUV2RGB_NV21)


def yuv420_to_rgb(y: Plane, u: Plane, v: Plane, width: int, height: int) -> np.ndarray:
    return nv21_to_rgb(planes_to_nv21(y, u, v, width, height))


def encode_jpeg(img: np.ndarray, quality: int = 90) -> bytes:
    """Encode an RGB numpy array to JPEG bytes using OpenCV."""
    img_bgr = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)
    success, buf = cv2.imencode(".jpg", img_bgr, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not success:
        raise RuntimeError("JPEG encoding failed")
    return bytes(buf)
