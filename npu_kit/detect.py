from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from .errors import DecodeError, ShapeMismatch
from .letterbox import map_boxes_to_original
from .metadata import class_name
from .nms import NMSConfig, nms
from .quant import dequantize_array, sigmoid
from .types import AnchorLayer, Candidates, DetectionResult, LetterboxTransform, RawTensor

logger = logging.getLogger(__name__)

# Per anchor: x, y, w, h, objectness, then one logit per class.
BOX_PROPS = 5
OBJECTNESS = 4


def _check_layer_shape(tensor: RawTensor, layer: AnchorLayer, num_props: int) -> None:
    expected = layer.num_anchors * num_props * layer.grid_h * layer.grid_w
    if tensor.shape is not None and len(tensor.shape) >= 2:
        grid = tuple(int(d) for d in tensor.shape[-2:])
        if grid != (layer.grid_h, layer.grid_w):
            raise ShapeMismatch(
                f"expected grid {layer.grid_h}x{layer.grid_w}, got {grid[0]}x{grid[1]} (shape {tuple(tensor.shape)})"
            )
    if tensor.size != expected:
        raise ShapeMismatch(
            f"expected {expected} elements "
            f"({layer.num_anchors} anchors x {num_props} props x {layer.grid_h} x {layer.grid_w}), got {tensor.size}"
        )


def decode_layer(
    tensor: RawTensor,
    layer: AnchorLayer,
    conf_threshold: float,
    num_classes: int = 1,
) -> Candidates:
    """
    Decode one channel-first, anchor-major head laid out as
    [anchors][5 + num_classes][grid_h][grid_w] into candidate boxes.

    Cells whose objectness (after sigmoid) is below `conf_threshold` are dropped before
    any box or class math runs. Survivors must also have
    `max_class_prob * objectness > conf_threshold`.

    Raises:
        ShapeMismatch: tensor does not match the declared grid.
        InvalidQuantParams: quantized tensor with a non-positive scale.
    """

    if num_classes < 1:
        raise ValueError("num_classes must be >= 1")
    num_props = BOX_PROPS + num_classes
    if tensor.data is None:
        raise ShapeMismatch("layer output buffer is missing")
    _check_layer_shape(tensor, layer, num_props)
    if tensor.quant is not None:
        tensor.quant.validate()

    grid = np.asarray(tensor.data).reshape(layer.num_anchors, num_props, layer.grid_h, layer.grid_w)

    def values(raw: np.ndarray) -> np.ndarray:
        if tensor.quant is not None:
            return dequantize_array(raw, tensor.quant)
        return raw.astype(np.float32, copy=False)

    objectness = sigmoid(values(grid[:, OBJECTNESS]))
    a, row, col = np.nonzero(objectness >= conf_threshold)
    if a.size == 0:
        return Candidates()

    # (num_props, K) gathered only for cells that passed the objectness gate
    cells = values(grid[a, :, row, col].T)
    obj = objectness[a, row, col]

    sig = sigmoid(cells[0:4])
    box_x = (sig[0] * 2.0 - 0.5 + col) * layer.stride
    box_y = (sig[1] * 2.0 - 0.5 + row) * layer.stride
    anchors = np.asarray(layer.anchors, dtype=np.float32)
    box_w = (sig[2] * 2.0) ** 2 * anchors[a, 0]
    box_h = (sig[3] * 2.0) ** 2 * anchors[a, 1]
    box_x = box_x - box_w / 2.0
    box_y = box_y - box_h / 2.0

    class_probs = sigmoid(cells[BOX_PROPS:])
    class_ids = np.argmax(class_probs, axis=0)
    max_class_prob = class_probs[class_ids, np.arange(class_probs.shape[1])]
    scores = (max_class_prob * obj).astype(np.float32)

    keep = scores > conf_threshold
    boxes = np.stack([box_x, box_y, box_w, box_h], axis=1).astype(np.float32)
    return Candidates(boxes=boxes[keep], scores=scores[keep], class_ids=class_ids[keep].astype(np.int64))


def decode_outputs(
    tensors: Sequence[RawTensor],
    layers: Sequence[AnchorLayer],
    conf_threshold: float,
    num_classes: int = 1,
) -> Candidates:
    """
    Decode every head and concatenate the candidates. A head that fails to decode is
    logged and skipped; the remaining heads still contribute.
    """

    if len(tensors) != len(layers):
        logger.warning(
            "Got %d output tensors for %d configured layers; decoding the first %d",
            len(tensors),
            len(layers),
            min(len(tensors), len(layers)),
        )

    parts: List[Candidates] = []
    for i, (tensor, layer) in enumerate(zip(tensors, layers)):
        try:
            part = decode_layer(tensor, layer, conf_threshold, num_classes=num_classes)
        except DecodeError as exc:
            logger.warning("Skipping layer %d (%dx%d, stride=%d): %s", i, layer.grid_h, layer.grid_w, layer.stride, exc)
            continue
        logger.debug("Layer %d (%dx%d, stride=%d): %d candidates", i, layer.grid_h, layer.grid_w, layer.stride, len(part))
        parts.append(part)
    return Candidates.concat(parts)


def decode_detections(
    tensors: Sequence[RawTensor],
    layers: Sequence[AnchorLayer],
    conf_threshold: float,
    nms_threshold: float,
    letterbox: LetterboxTransform,
    orig_w: int,
    orig_h: int,
    class_names: Optional[Sequence[str]] = None,
    num_classes: int = 1,
    max_detections: Optional[int] = None,
) -> List[DetectionResult]:
    """
    Full detection path: decode heads -> per-class NMS -> map back to original image pixels.
    """

    candidates = decode_outputs(tensors, layers, conf_threshold, num_classes=num_classes)
    if len(candidates) == 0:
        return []

    keep = nms(
        candidates.boxes,
        candidates.scores,
        candidates.class_ids,
        NMSConfig(iou_threshold=nms_threshold, max_detections=max_detections),
    )
    if keep.size == 0:
        return []

    pixel_boxes = map_boxes_to_original(candidates.boxes[keep], letterbox, orig_w, orig_h)
    return [
        DetectionResult(
            x=int(x),
            y=int(y),
            w=int(w),
            h=int(h),
            confidence=float(score),
            class_id=int(cls_id),
            class_name=class_name(class_names, int(cls_id)),
        )
        for (x, y, w, h), score, cls_id in zip(pixel_boxes, candidates.scores[keep], candidates.class_ids[keep])
    ]
