from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    # None keeps every survivor; otherwise only the best-scoring ones.
    max_detections: Optional[int] = None


def iou_xywh(a: Sequence[float], b: Sequence[float]) -> float:
    """
    IoU of two (x, y, w, h) boxes. Degenerate pairs (union <= 0) give 0.
    """

    return float(box_iou_xywh(np.asarray(a, dtype=np.float64), np.asarray([b], dtype=np.float64))[0])


def box_iou_xywh(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one (x, y, w, h) box against an (N, 4) array of boxes.
    """

    x1 = np.maximum(box[0], boxes[:, 0])
    y1 = np.maximum(box[1], boxes[:, 1])
    x2 = np.minimum(box[0] + box[2], boxes[:, 0] + boxes[:, 2])
    y2 = np.minimum(box[1] + box[3], boxes[:, 1] + boxes[:, 3])

    inter = np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)
    union = box[2] * box[3] + boxes[:, 2] * boxes[:, 3] - inter

    iou = np.zeros(boxes.shape[0], dtype=np.float64)
    valid = union > 0
    iou[valid] = inter[valid] / union[valid]
    return iou


def valid_box_mask(boxes: np.ndarray) -> np.ndarray:
    """
    Rows with finite coordinates and strictly positive width and height.
    """

    boxes = np.asarray(boxes)
    if boxes.size == 0:
        return np.zeros((boxes.shape[0],), dtype=bool)
    return np.isfinite(boxes).all(axis=1) & (boxes[:, 2] > 0) & (boxes[:, 3] > 0)


def nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    class_ids: np.ndarray,
    cfg: NMSConfig = NMSConfig(),
) -> np.ndarray:
    """
    Per-class greedy NMS. Expects boxes shape (N,4) as x, y, w, h, scores (N,) and class_ids (N,).

    Boxes are visited by descending score (ties keep their input order). Within one class,
    each surviving box removes every later box whose IoU with it is above the threshold;
    a removed box never removes anything itself.

    Returns indices of the surviving boxes in ascending input order.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores).reshape(-1)
    class_ids = np.asarray(class_ids).reshape(-1)
    if boxes.shape[0] == 0:
        return np.empty((0,), dtype=np.int64)

    valid = valid_box_mask(boxes)
    if not valid.all():
        logger.debug("Dropping %d degenerate boxes before NMS", int((~valid).sum()))

    order = np.argsort(-scores, kind="stable")
    order = order[valid[order]]

    keep = []
    for cls in np.unique(class_ids[order]):
        remaining = order[class_ids[order] == cls]
        while remaining.size > 0:
            i = remaining[0]
            keep.append(i)
            iou = box_iou_xywh(boxes[i], boxes[remaining[1:]])
            remaining = remaining[1:][iou <= cfg.iou_threshold]

    kept = np.array(keep, dtype=np.int64)
    if cfg.max_detections is not None and kept.size > cfg.max_detections:
        best = np.argsort(-scores[kept], kind="stable")[: cfg.max_detections]
        kept = kept[best]

    logger.debug("NMS kept %d of %d boxes (iou_threshold=%.3f)", kept.size, boxes.shape[0], cfg.iou_threshold)
    return np.sort(kept)
