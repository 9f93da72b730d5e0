from __future__ import annotations

from typing import Iterable, Tuple

import numpy as np

from .types import ClassificationResult, DetectionResult

# BGR, indexed by class id; ids past the end get a seeded random color.
_PALETTE: Tuple[Tuple[int, int, int], ...] = (
    (255, 56, 56), (255, 157, 151), (255, 112, 31), (255, 178, 29), (207, 210, 49),
    (72, 249, 10), (146, 204, 23), (61, 219, 134), (26, 147, 52), (0, 212, 187),
    (44, 153, 168), (0, 194, 255), (52, 69, 147), (100, 115, 255), (0, 24, 236),
    (132, 56, 255), (82, 0, 133), (203, 56, 255), (255, 149, 200), (255, 55, 199),
)

_TEXT_COLOR = (255, 255, 255)


def color_for_class(class_id: int) -> Tuple[int, int, int]:
    if 0 <= class_id < len(_PALETTE):
        return _PALETTE[class_id]
    b, g, r = np.random.default_rng(int(class_id) & 0xFFFFFFFF).integers(0, 256, size=3)
    return int(b), int(g), int(r)


def _require_cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for drawing. Install with `pip install opencv-python`.") from e
    return cv2


def _copy_bgr(image_bgr: np.ndarray) -> np.ndarray:
    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {image_bgr.shape}")
    return image_bgr.copy()


def _put_label(cv2, out: np.ndarray, text: str, x: int, y: int, color, font_scale: float, thickness: int) -> int:
    """
    Filled label box with its top-left corner at (x, y), kept inside the image.
    Returns the label height so callers can stack labels.
    """

    h, w = out.shape[:2]
    (tw, th), baseline = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, font_scale, thickness)
    label_h = th + baseline
    y = int(np.clip(y, 0, max(h - label_h, 0)))
    cv2.rectangle(out, (x, y), (min(x + tw, w - 1), min(y + label_h, h - 1)), color, thickness=-1)
    cv2.putText(
        out, text, (x, y + th), cv2.FONT_HERSHEY_SIMPLEX, font_scale, _TEXT_COLOR, thickness=thickness, lineType=cv2.LINE_AA
    )
    return label_h


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[DetectionResult],
    *,
    show_score: bool = True,
    box_thickness: int = 1,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw detection boxes with `name score` labels and return a new image.

    Labels sit above the box, or just inside it when the box touches the top edge.
    """

    cv2 = _require_cv2()
    out = _copy_bgr(image_bgr)
    h, w = out.shape[:2]

    for det in detections:
        x1, y1, x2, y2 = det.as_xyxy()
        x1, x2 = (int(np.clip(v, 0, w - 1)) for v in (x1, x2))
        y1, y2 = (int(np.clip(v, 0, h - 1)) for v in (y1, y2))
        color = color_for_class(det.class_id)
        cv2.rectangle(out, (x1, y1), (x2, y2), color, thickness=box_thickness)

        text = f"{det.class_name} {det.confidence:.2f}" if show_score else det.class_name
        (_, th), baseline = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        top = y1 - th - baseline
        _put_label(cv2, out, text, x1, top if top >= 0 else y1, color, font_scale, font_thickness)

    return out


def draw_classifications(
    image_bgr: np.ndarray,
    classifications: Iterable[ClassificationResult],
    *,
    font_scale: float = 0.6,
    font_thickness: int = 1,
    margin: int = 8,
) -> np.ndarray:
    """Ranked `rank. name confidence` list in the top-left corner, on a copy."""

    cv2 = _require_cv2()
    out = _copy_bgr(image_bgr)
    y = margin
    for rank, cls in enumerate(classifications, start=1):
        text = f"{rank}. {cls.class_name} {cls.confidence:.3f}"
        y += _put_label(cv2, out, text, margin, y, color_for_class(cls.class_id), font_scale, font_thickness) + 4
    return out
