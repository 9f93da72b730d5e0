from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import numpy as np

from .classify import decode_classification
from .config import ModelConfig
from .detect import decode_detections
from .errors import DecodeError
from .letterbox import letterbox, stretch_resize
from .metadata import class_name, load_class_names
from .types import (
    AnchorLayer,
    ClassificationResult,
    Classifications,
    Detections,
    InferenceResult,
    LetterboxTransform,
    RawTensor,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Nearest ancestor of `start` (default: cwd) holding one of `markers`.

    `model_path` and `class_file` in a model config are usually written relative to
    this directory, e.g. `models/detector.onnx`.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - `root` if provided
      - project root (auto) otherwise
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


class Backend(Protocol):
    input_size: Optional[Tuple[int, int]]

    def infer(self, blob: np.ndarray) -> List[RawTensor]: ...


class ScratchPool:
    """
    Reusable preprocessing buffers keyed by (shape, dtype).

    Owned by the caller and handed to every call. Buffers are overwritten on each use, so a
    pool must not be shared by calls that run at the same time.
    """

    def __init__(self) -> None:
        self._buffers: Dict[Tuple[Tuple[int, ...], str], np.ndarray] = {}

    def get(self, shape: Tuple[int, ...], dtype=np.uint8) -> np.ndarray:
        key = (tuple(int(d) for d in shape), np.dtype(dtype).str)
        buf = self._buffers.get(key)
        if buf is None:
            buf = np.empty(key[0], dtype=dtype)
            self._buffers[key] = buf
        return buf

    def __len__(self) -> int:
        return len(self._buffers)


class Decoder(Protocol):
    """
    What a task type provides to `run_inference`.
    """

    task: str
    input_size: Optional[Tuple[int, int]]

    def setup(self, backend: Backend) -> None: ...

    def preprocess(self, image_bgr: np.ndarray, scratch: ScratchPool) -> Tuple[np.ndarray, Any]: ...

    def postprocess(self, outputs: Sequence[RawTensor], context: Any) -> InferenceResult: ...


@dataclass(frozen=True)
class PreprocessContext:
    orig_size: Tuple[int, int]
    transform: LetterboxTransform


def _check_image(image_bgr: np.ndarray) -> np.ndarray:
    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim == 2 or (image_bgr.ndim == 3 and image_bgr.shape[2] == 1):
        # Grayscale input, replicate to three channels.
        return np.repeat(image_bgr.reshape(image_bgr.shape[0], image_bgr.shape[1], 1), 3, axis=2)
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")
    return image_bgr


def to_blob(image_bgr: np.ndarray, layout: str = "nchw", dtype: str = "float32") -> np.ndarray:
    """
    BGR (H, W, 3) uint8 -> RGB batch of one, in the layout/dtype the model expects.
    """

    rgb = image_bgr[:, :, ::-1]
    if dtype == "float32":
        blob = rgb.astype(np.float32) / 255.0
    else:
        blob = np.ascontiguousarray(rgb, dtype=np.uint8)
    if layout == "nchw":
        blob = np.transpose(blob, (2, 0, 1))
    return np.ascontiguousarray(blob[None, ...])


class DetectionDecoder:
    """
    Grid/anchor detector: letterbox -> decode heads -> per-class NMS -> original pixels.
    """

    task = "detection"

    def __init__(
        self,
        layers: Sequence[AnchorLayer],
        *,
        conf_threshold: float = 0.25,
        nms_threshold: float = 0.45,
        num_classes: int = 1,
        max_detections: Optional[int] = None,
        class_names: Optional[Sequence[str]] = None,
        input_size: Optional[Tuple[int, int]] = None,
        letterbox_color: int = 114,
        input_layout: str = "nchw",
        input_dtype: str = "float32",
    ):
        self.layers = tuple(layers)
        self.conf_threshold = conf_threshold
        self.nms_threshold = nms_threshold
        self.num_classes = num_classes
        self.max_detections = max_detections
        self.class_names = tuple(class_names) if class_names is not None else None
        self.input_size = input_size
        self.letterbox_color = letterbox_color
        self.input_layout = input_layout
        self.input_dtype = input_dtype

    def setup(self, backend: Backend) -> None:
        if self.input_size is None:
            self.input_size = getattr(backend, "input_size", None)
        if self.input_size is None:
            raise ValueError("Model input size is unknown; set imgsz in the model config.")
        logger.info(
            "Detection decoder: input %dx%d, %d layer(s), %d class(es), conf=%.3f, nms=%.3f",
            self.input_size[0],
            self.input_size[1],
            len(self.layers),
            self.num_classes,
            self.conf_threshold,
            self.nms_threshold,
        )

    def preprocess(self, image_bgr: np.ndarray, scratch: ScratchPool) -> Tuple[np.ndarray, PreprocessContext]:
        image_bgr = _check_image(image_bgr)
        w, h = self.input_size
        buf = scratch.get((h, w, 3))
        color = (self.letterbox_color,) * 3
        img, transform = letterbox(image_bgr, new_shape=(w, h), color=color, out=buf)
        orig_h, orig_w = image_bgr.shape[:2]
        blob = to_blob(img, self.input_layout, self.input_dtype)
        return blob, PreprocessContext(orig_size=(orig_w, orig_h), transform=transform)

    def postprocess(self, outputs: Sequence[RawTensor], context: PreprocessContext) -> Detections:
        if not outputs:
            logger.warning("Detection model returned no outputs")
            return Detections()
        orig_w, orig_h = context.orig_size
        results = decode_detections(
            outputs,
            self.layers,
            self.conf_threshold,
            self.nms_threshold,
            context.transform,
            orig_w,
            orig_h,
            class_names=self.class_names,
            num_classes=self.num_classes,
            max_detections=self.max_detections,
        )
        return Detections(items=tuple(results))


class ClassificationDecoder:
    """
    Whole-image classifier: stretch resize -> softmax -> top-k.
    """

    task = "classification"

    def __init__(
        self,
        *,
        top_k: int = 5,
        class_names: Optional[Sequence[str]] = None,
        input_size: Optional[Tuple[int, int]] = None,
        input_layout: str = "nchw",
        input_dtype: str = "float32",
    ):
        self.top_k = top_k
        self.class_names = tuple(class_names) if class_names is not None else None
        self.input_size = input_size
        self.input_layout = input_layout
        self.input_dtype = input_dtype

    def setup(self, backend: Backend) -> None:
        if self.input_size is None:
            self.input_size = getattr(backend, "input_size", None)
        if self.input_size is None:
            raise ValueError("Model input size is unknown; set imgsz in the model config.")
        logger.info("Classification decoder: input %dx%d, top_k=%d", self.input_size[0], self.input_size[1], self.top_k)

    def preprocess(self, image_bgr: np.ndarray, scratch: ScratchPool) -> Tuple[np.ndarray, None]:
        image_bgr = _check_image(image_bgr)
        w, h = self.input_size
        img = stretch_resize(image_bgr, (w, h), out=scratch.get((h, w, 3)))
        return to_blob(img, self.input_layout, self.input_dtype), None

    def postprocess(self, outputs: Sequence[RawTensor], context: None = None) -> Classifications:
        if not outputs:
            logger.warning("Classification model returned no outputs")
            return Classifications()
        try:
            scores = decode_classification(outputs[0], self.top_k)
        except DecodeError as exc:
            logger.warning("Classification decode failed: %s", exc)
            return Classifications()
        return Classifications(
            items=tuple(
                ClassificationResult(
                    class_id=s.class_id,
                    class_name=class_name(self.class_names, s.class_id),
                    confidence=s.score,
                )
                for s in scores
            )
        )


def run_inference(decoder: Decoder, backend: Backend, image_bgr: np.ndarray, scratch: ScratchPool) -> InferenceResult:
    """
    preprocess -> infer -> postprocess, one image at a time.

    The backend's output buffers are only read inside `postprocess`; nothing returned
    references them.
    """

    t0 = time.perf_counter()
    blob, context = decoder.preprocess(image_bgr, scratch)
    t1 = time.perf_counter()
    outputs = backend.infer(blob)
    t2 = time.perf_counter()
    result = decoder.postprocess(outputs, context)
    t3 = time.perf_counter()
    logger.debug(
        "preprocess %.2f ms, inference %.2f ms, postprocess %.2f ms, %d result(s)",
        (t1 - t0) * 1000.0,
        (t2 - t1) * 1000.0,
        (t3 - t2) * 1000.0,
        len(result.items),
    )
    return result


class Model:
    """
    Plug-and-play bundle of backend + decoder + scratch buffers.

    Calls on one instance must not overlap; use one Model per thread.
    """

    def __init__(
        self,
        backend: Backend,
        decoder: Decoder,
        *,
        backend_name: Optional[str] = None,
        name: Optional[str] = None,
    ):
        self.backend = backend
        self.decoder = decoder
        self.backend_name = backend_name
        self._name = name
        self.scratch = ScratchPool()
        decoder.setup(backend)

    @property
    def task(self) -> str:
        """Task name: detection or classification."""

        return self.decoder.task

    @property
    def input_size(self) -> Tuple[int, int]:
        """Model input (width, height) as resolved during setup."""

        w, h = self.decoder.input_size
        return int(w), int(h)

    @property
    def name(self) -> Optional[str]:
        return self._name

    def __call__(self, image_bgr: np.ndarray) -> InferenceResult:
        return run_inference(self.decoder, self.backend, image_bgr, self.scratch)


def _infer_backend_name(model_path: Path, backend: Optional[str]) -> str:
    if backend is not None:
        return backend.lower()
    suffix = model_path.suffix.lower()
    if suffix == ".onnx":
        return "onnxruntime"
    if suffix in {".torchscript", ".ts", ".pt"}:
        return "torchscript"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def create_backend(config: ModelConfig, model_path: Path) -> Tuple[Backend, str]:
    chosen = _infer_backend_name(model_path, config.backend)

    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return (
            OnnxRuntimeBackend(
                model_path,
                OnnxRuntimeBackendConfig(
                    providers=config.onnx_providers,
                    input_layout=config.input_layout,
                    output_quant=config.output_quant,
                ),
            ),
            chosen,
        )

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        return (
            TorchScriptBackend(
                model_path,
                TorchScriptBackendConfig(device=config.torch_device, input_size=config.imgsz),
            ),
            chosen,
        )

    raise ValueError(f"Unsupported backend: {config.backend!r}")


def create_decoder(config: ModelConfig, class_names: Optional[Sequence[str]] = None) -> Decoder:
    if config.task == "classification":
        return ClassificationDecoder(
            top_k=config.top_k,
            class_names=class_names,
            input_size=config.imgsz,
            input_layout=config.input_layout,
            input_dtype=config.input_dtype,
        )
    return DetectionDecoder(
        config.layers,
        conf_threshold=config.conf_threshold,
        nms_threshold=config.nms_threshold,
        num_classes=config.num_classes,
        max_detections=config.max_detections,
        class_names=class_names,
        input_size=config.imgsz,
        letterbox_color=config.letterbox_color,
        input_layout=config.input_layout,
        input_dtype=config.input_dtype,
    )


def load_model(config: ModelConfig, *, root: Optional[PathLike] = "auto") -> Model:
    """
    Build a ready-to-call Model from a ModelConfig.

    Typical usage:
        model = load_model(load_model_config(Path("configs/detector.json")))
        result = model(image_bgr)

    Relative paths in the config resolve against `root` (project root by default). A class
    file that cannot be read is logged and `class_<id>` names are used instead.
    """

    model_path = resolve_path(config.model_path, root=root)
    class_names: Optional[List[str]] = None
    if config.class_file:
        try:
            class_names = load_class_names(resolve_path(config.class_file, root=root))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load class names from %s: %s", config.class_file, exc)

    backend, backend_name = create_backend(config, model_path)
    decoder = create_decoder(config, class_names)
    model = Model(backend, decoder, backend_name=backend_name, name=model_path.stem)
    logger.info("Model %s ready: %s, input %dx%d", model.name, model.task, *model.input_size)
    return model
