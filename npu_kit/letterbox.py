from typing import Optional, Tuple

import numpy as np

from .types import LetterboxTransform


def compute_letterbox(src_w: int, src_h: int, dst_w: int, dst_h: int) -> LetterboxTransform:
    """
    Scale/pad that fit a (src_w, src_h) image inside (dst_w, dst_h) without distortion.

    The scaled size is truncated to whole pixels and the leftover is split evenly,
    any odd pixel going to the right/bottom.
    """

    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"source size must be positive, got {src_w}x{src_h}")
    scale = min(dst_w / src_w, dst_h / src_h)
    # at least one pixel per side, even for very thin images
    scaled_w, scaled_h = max(1, int(src_w * scale)), max(1, int(src_h * scale))
    return LetterboxTransform(scale=scale, pad_x=(dst_w - scaled_w) // 2, pad_y=(dst_h - scaled_h) // 2)


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (114, 114, 114),
    out: Optional[np.ndarray] = None,
):
    """
    Resize with unchanged aspect ratio and pad to `new_shape` (width, height).

    Args:
        out: optional preallocated (H, W, C) uint8 buffer to write into; reused across calls
            by the scratch pool.

    Returns:
        padded: resized + padded image (`out` when given)
        transform: LetterboxTransform needed to map boxes back
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    h, w = image.shape[:2]
    new_w, new_h = new_shape
    transform = compute_letterbox(w, h, new_w, new_h)
    resized_w, resized_h = max(1, int(w * transform.scale)), max(1, int(h * transform.scale))

    if out is None:
        out = np.empty((new_h, new_w) + image.shape[2:], dtype=image.dtype)
    fill = np.asarray(color, dtype=out.dtype)
    out[...] = fill[: out.shape[2]] if out.ndim == 3 else fill[0]

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    top, left = transform.pad_y, transform.pad_x
    region = out[top : top + resized_h, left : left + resized_w]
    # cv2.resize drops a trailing single channel
    region[...] = image.reshape(region.shape)
    return out, transform


def stretch_resize(image: np.ndarray, new_shape: Tuple[int, int], out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Plain resize to `new_shape` (width, height), aspect ratio not preserved. Used by classifiers.
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for stretch_resize(). Install with `pip install opencv-python`.") from e

    new_w, new_h = new_shape
    resized = image
    if image.shape[:2] != (new_h, new_w):
        resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    if out is None:
        return np.ascontiguousarray(resized)
    out[...] = resized.reshape(out.shape)
    return out


def map_boxes_to_original(
    boxes: np.ndarray,
    transform: LetterboxTransform,
    orig_w: int,
    orig_h: int,
) -> np.ndarray:
    """
    Map (N, 4) x, y, w, h boxes from letterboxed model-input pixels back to the original
    image, as whole pixels.

    Boxes are un-padded and un-scaled, then clamped: x in [0, orig_w], y in [0, orig_h],
    and w/h shrunk so the box never extends past the right/bottom edge.
    """

    b = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    if b.shape[0] == 0:
        return np.empty((0, 4), dtype=np.int64)

    x = (b[:, 0] - transform.pad_x) / transform.scale
    y = (b[:, 1] - transform.pad_y) / transform.scale
    w = b[:, 2] / transform.scale
    h = b[:, 3] / transform.scale

    x = np.clip(np.round(x), 0, orig_w)
    y = np.clip(np.round(y), 0, orig_h)
    w = np.clip(np.round(w), 0, orig_w - x)
    h = np.clip(np.round(h), 0, orig_h - y)
    return np.stack([x, y, w, h], axis=1).astype(np.int64)
