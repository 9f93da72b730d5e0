from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .types import AnchorLayer, QuantParams

TASKS = ("detection", "classification")
INPUT_LAYOUTS = ("nchw", "nhwc")
INPUT_DTYPES = ("float32", "uint8")

DEFAULT_LAYERS: Tuple[AnchorLayer, ...] = (
    AnchorLayer(40, 40, 16, ((3.59968, 3.59968), (4.5352, 3.80864), (4.55072, 4.54688))),
    AnchorLayer(20, 20, 32, ((5.34368, 4.57824), (4.81248, 5.6016), (6.67584, 5.71488))),
)


@dataclass(frozen=True)
class ModelConfig:
    model_path: str
    task: str = "detection"
    backend: Optional[str] = None
    class_file: Optional[str] = None
    conf_threshold: float = 0.25
    nms_threshold: float = 0.45
    max_detections: Optional[int] = None
    top_k: int = 5
    num_classes: int = 1
    layers: Tuple[AnchorLayer, ...] = DEFAULT_LAYERS
    imgsz: Optional[Tuple[int, int]] = None
    letterbox_color: int = 114
    input_layout: str = "nchw"
    input_dtype: str = "float32"
    output_quant: Tuple[Optional[QuantParams], ...] = ()
    onnx_providers: Optional[Tuple[str, ...]] = None
    torch_device: str = "cpu"

    def __post_init__(self) -> None:
        if not self.model_path:
            raise ValueError("model_path must not be empty")
        if self.task not in TASKS:
            raise ValueError(f"task must be one of {TASKS}, got {self.task!r}")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.nms_threshold <= 1.0:
            raise ValueError("nms_threshold must be in [0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")
        if self.top_k < 1:
            raise ValueError("top_k must be >= 1")
        if self.num_classes < 1:
            raise ValueError("num_classes must be >= 1")
        if self.task == "detection" and not self.layers:
            raise ValueError("detection models need at least one layer")
        if self.imgsz is not None and (self.imgsz[0] < 1 or self.imgsz[1] < 1):
            raise ValueError("imgsz must be positive")
        if not 0 <= self.letterbox_color <= 255:
            raise ValueError("letterbox_color must be in [0, 255]")
        if self.input_layout not in INPUT_LAYOUTS:
            raise ValueError(f"input_layout must be one of {INPUT_LAYOUTS}")
        if self.input_dtype not in INPUT_DTYPES:
            raise ValueError(f"input_dtype must be one of {INPUT_DTYPES}")


def _require_number(payload: Dict[str, Any], key: str) -> float:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _require_str(payload: Dict[str, Any], key: str) -> str:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value.strip()


def _parse_layer(raw: Any, index: int) -> AnchorLayer:
    if not isinstance(raw, dict):
        raise ValueError(f"layers[{index}] must be an object")
    unknown = sorted(set(raw.keys()) - {"grid_h", "grid_w", "stride", "anchors"})
    if unknown:
        raise ValueError(f"Unknown layers[{index}] keys: {unknown}")
    grid_h = _require_int(raw, "grid_h")
    grid_w = _require_int(raw, "grid_w")
    stride = _require_int(raw, "stride")
    if grid_h < 1 or grid_w < 1 or stride < 1:
        raise ValueError(f"layers[{index}] grid_h, grid_w and stride must be >= 1")

    anchors = raw.get("anchors")
    if not isinstance(anchors, list) or not anchors:
        raise ValueError(f"layers[{index}].anchors must be a non-empty list of [w, h] pairs")
    pairs: List[Tuple[float, float]] = []
    for pair in anchors:
        if (
            not isinstance(pair, (list, tuple))
            or len(pair) != 2
            or any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in pair)
        ):
            raise ValueError(f"layers[{index}].anchors entries must be [w, h] number pairs")
        if pair[0] <= 0 or pair[1] <= 0:
            raise ValueError(f"layers[{index}].anchors must be positive")
        pairs.append((float(pair[0]), float(pair[1])))
    return AnchorLayer(grid_h=grid_h, grid_w=grid_w, stride=stride, anchors=tuple(pairs))


def _parse_quant(raw: Any, index: int) -> Optional[QuantParams]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError(f"output_quant[{index}] must be an object or null")
    unknown = sorted(set(raw.keys()) - {"scale", "zero_point"})
    if unknown:
        raise ValueError(f"Unknown output_quant[{index}] keys: {unknown}")
    scale = _require_number(raw, "scale")
    if not math.isfinite(scale) or scale <= 0:
        raise ValueError(f"output_quant[{index}].scale must be > 0")
    zero_point = _require_int(raw, "zero_point") if "zero_point" in raw else 0
    return QuantParams(scale=scale, zero_point=zero_point)


def _parse_imgsz(value: Any) -> Tuple[int, int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value, value
    if (
        isinstance(value, list)
        and len(value) == 2
        and all(isinstance(v, int) and not isinstance(v, bool) for v in value)
    ):
        return int(value[0]), int(value[1])
    raise ValueError("imgsz must be an integer or [width, height]")


def _parse_str_list(value: Any, key: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        items: Sequence[Any] = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        raise ValueError(f"{key} must be a string or list of strings")
    if any(not isinstance(item, str) for item in items):
        raise ValueError(f"{key} must be a string or list of strings")
    cleaned = tuple(item.strip() for item in items if item.strip())
    if not cleaned:
        raise ValueError(f"{key} must not be empty")
    return cleaned


def parse_model_config(payload: Dict[str, Any]) -> ModelConfig:
    allowed = {
        "model_path",
        "task",
        "backend",
        "class_file",
        "conf_threshold",
        "nms_threshold",
        "max_detections",
        "top_k",
        "num_classes",
        "layers",
        "imgsz",
        "letterbox_color",
        "input_layout",
        "input_dtype",
        "output_quant",
        "onnx_providers",
        "torch_device",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown model config keys: {unknown}")

    kwargs: Dict[str, Any] = {"model_path": _require_str(payload, "model_path")}

    for key in ("task", "backend", "class_file", "input_layout", "input_dtype", "torch_device"):
        if payload.get(key) is not None:
            kwargs[key] = _require_str(payload, key)
    if "task" in kwargs:
        kwargs["task"] = kwargs["task"].lower()
    for key in ("conf_threshold", "nms_threshold"):
        if payload.get(key) is not None:
            kwargs[key] = _require_number(payload, key)
    for key in ("max_detections", "top_k", "num_classes", "letterbox_color"):
        if payload.get(key) is not None:
            kwargs[key] = _require_int(payload, key)

    if payload.get("layers") is not None:
        layers = payload["layers"]
        if not isinstance(layers, list):
            raise ValueError("layers must be a list")
        kwargs["layers"] = tuple(_parse_layer(raw, i) for i, raw in enumerate(layers))
    if payload.get("output_quant") is not None:
        quant = payload["output_quant"]
        if not isinstance(quant, list):
            raise ValueError("output_quant must be a list")
        kwargs["output_quant"] = tuple(_parse_quant(raw, i) for i, raw in enumerate(quant))
    if payload.get("imgsz") is not None:
        kwargs["imgsz"] = _parse_imgsz(payload["imgsz"])
    if payload.get("onnx_providers") is not None:
        kwargs["onnx_providers"] = _parse_str_list(payload["onnx_providers"], "onnx_providers")

    return ModelConfig(**kwargs)


def load_model_config(path: Path) -> ModelConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid model config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Model config must be a JSON object")
    return parse_model_config(payload)
