"""
Decode-and-select pipeline for quantized/float accelerator outputs.

Turns raw output tensors (affine-quantized int8 or float) into classification
top-k lists or detection boxes in original image pixels. The core only needs
NumPy; OpenCV is used for letterboxing/drawing and inference runtimes live in
`npu_kit.backends`.
"""

from .classify import decode_classification, softmax, top_k
from .config import ModelConfig, load_model_config
from .detect import decode_detections, decode_layer, decode_outputs
from .errors import DecodeError, EmptyInput, InvalidQuantParams, ShapeMismatch
from .letterbox import compute_letterbox, letterbox, map_boxes_to_original
from .metadata import class_name, load_class_names
from .nms import NMSConfig, iou_xywh, nms
from .quant import dequantize, dequantize_array
from .runtime import (
    ClassificationDecoder,
    DetectionDecoder,
    Model,
    ScratchPool,
    find_project_root,
    load_model,
    resolve_path,
    run_inference,
)
from .types import (
    AnchorLayer,
    Candidates,
    ClassificationResult,
    Classifications,
    ClassScore,
    DetectionResult,
    Detections,
    InferenceResult,
    LetterboxTransform,
    QuantParams,
    RawTensor,
)
from .visualize import draw_classifications, draw_detections

__all__ = [
    "decode_classification",
    "softmax",
    "top_k",
    "ModelConfig",
    "load_model_config",
    "decode_detections",
    "decode_layer",
    "decode_outputs",
    "DecodeError",
    "EmptyInput",
    "InvalidQuantParams",
    "ShapeMismatch",
    "compute_letterbox",
    "letterbox",
    "map_boxes_to_original",
    "class_name",
    "load_class_names",
    "NMSConfig",
    "iou_xywh",
    "nms",
    "dequantize",
    "dequantize_array",
    "ClassificationDecoder",
    "DetectionDecoder",
    "Model",
    "ScratchPool",
    "find_project_root",
    "load_model",
    "resolve_path",
    "run_inference",
    "AnchorLayer",
    "Candidates",
    "ClassificationResult",
    "Classifications",
    "ClassScore",
    "DetectionResult",
    "Detections",
    "InferenceResult",
    "LetterboxTransform",
    "QuantParams",
    "RawTensor",
    "draw_classifications",
    "draw_detections",
]
