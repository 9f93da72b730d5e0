from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidQuantParams


@dataclass(frozen=True)
class QuantParams:
    """
    Per-tensor affine quantization: real = scale * (q - zero_point).
    """

    scale: float
    zero_point: int = 0

    def validate(self) -> None:
        if not math.isfinite(self.scale) or self.scale <= 0:
            raise InvalidQuantParams(f"quantization scale must be > 0, got {self.scale!r}")


@dataclass(frozen=True)
class RawTensor:
    """
    Read-only view over one accelerator output.

    `data` holds int8 (or uint8) values when `quant` is set, float values otherwise.
    `shape` is the shape reported by the runtime, if any; `data` may be flat.
    """

    data: Optional[np.ndarray]
    quant: Optional[QuantParams] = None
    shape: Optional[Tuple[int, ...]] = None

    @property
    def is_quantized(self) -> bool:
        return self.quant is not None

    @property
    def size(self) -> int:
        return 0 if self.data is None else int(self.data.size)


@dataclass(frozen=True)
class AnchorLayer:
    """
    Static description of one detection head: how to view its flat buffer as
    (anchor, property, row, col).
    """

    grid_h: int
    grid_w: int
    stride: int
    anchors: Tuple[Tuple[float, float], ...]

    @property
    def num_anchors(self) -> int:
        return len(self.anchors)


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Uniform scale followed by symmetric padding (model input = src * scale + pad).
    """

    scale: float
    pad_x: int = 0
    pad_y: int = 0

    def forward_point(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale + self.pad_x, y * self.scale + self.pad_y

    def inverse_point(self, x: float, y: float) -> Tuple[float, float]:
        return (x - self.pad_x) / self.scale, (y - self.pad_y) / self.scale


@dataclass
class Candidates:
    """
    Struct-of-arrays for decoded boxes. Row `i` of every array describes the same candidate.

    boxes: (N, 4) float32 as x, y, w, h (top-left + size, model input pixels)
    scores: (N,) float32 in [0, 1]
    class_ids: (N,) int64
    """

    boxes: np.ndarray = field(default_factory=lambda: np.empty((0, 4), dtype=np.float32))
    scores: np.ndarray = field(default_factory=lambda: np.empty((0,), dtype=np.float32))
    class_ids: np.ndarray = field(default_factory=lambda: np.empty((0,), dtype=np.int64))

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    @classmethod
    def concat(cls, parts: Sequence["Candidates"]) -> "Candidates":
        parts = [p for p in parts if len(p)]
        if not parts:
            return cls()
        return cls(
            boxes=np.concatenate([p.boxes for p in parts], axis=0),
            scores=np.concatenate([p.scores for p in parts], axis=0),
            class_ids=np.concatenate([p.class_ids for p in parts], axis=0),
        )


@dataclass(frozen=True)
class ClassScore:
    class_id: int
    score: float


@dataclass(frozen=True)
class DetectionResult:
    """
    Final detection in original image pixels (top-left + size).
    """

    x: int
    y: int
    w: int
    h: int
    confidence: float
    class_id: int
    class_name: str

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.w, self.y + self.h


@dataclass(frozen=True)
class ClassificationResult:
    class_id: int
    class_name: str
    confidence: float


@dataclass(frozen=True)
class Detections:
    items: Tuple[DetectionResult, ...] = ()
    task: str = "detection"


@dataclass(frozen=True)
class Classifications:
    items: Tuple[ClassificationResult, ...] = ()
    task: str = "classification"


# Exactly two payload shapes; branch on the concrete type.
InferenceResult = Union[Detections, Classifications]
