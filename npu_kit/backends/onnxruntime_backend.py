from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..types import QuantParams, RawTensor

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_QUANTIZED_TYPES = {"tensor(int8)", "tensor(uint8)"}


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name: override the auto-selected input name if needed
    - input_layout: "nchw" or "nhwc", used to read the model input size
    - output_quant: per-output quantization params for int8/uint8 outputs (None entries = float)
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    input_layout: str = "nchw"
    output_quant: Sequence[Optional[QuantParams]] = ()


def _static_dim(value: Any) -> Optional[int]:
    return int(value) if isinstance(value, int) and value > 0 else None


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime backend.

    Feeds one input blob and returns every model output as a RawTensor, in session output order.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        model_input = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or model_input.name
        self.input_layout = cfg.input_layout
        self._input_shape = tuple(model_input.shape)

        self.outputs = self.session.get_outputs()
        self.output_names = [o.name for o in self.outputs]
        self._quant: List[Optional[QuantParams]] = []
        for i, out in enumerate(self.outputs):
            params = cfg.output_quant[i] if i < len(cfg.output_quant) else None
            if out.type in _QUANTIZED_TYPES:
                if params is None:
                    logger.warning("Output %r is %s but no quantization params were configured", out.name, out.type)
                self._quant.append(params)
            else:
                self._quant.append(None)

        logger.info(
            "Loaded %s with %d output(s), providers=%s", self.model_path.name, len(self.outputs), self.providers_in_use
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    @property
    def input_size(self) -> Optional[Tuple[int, int]]:
        """(width, height) of the model input, or None when the dims are dynamic."""

        shape = self._input_shape
        if len(shape) != 4:
            return None
        if self.input_layout == "nhwc":
            h, w = _static_dim(shape[1]), _static_dim(shape[2])
        else:
            h, w = _static_dim(shape[2]), _static_dim(shape[3])
        if h is None or w is None:
            return None
        return w, h

    def infer(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> List[RawTensor]:
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        outputs = self.session.run(self.output_names, inputs)
        return [
            RawTensor(data=np.asarray(out), quant=quant, shape=tuple(np.shape(out)))
            for out, quant in zip(outputs, self._quant)
        ]
