from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import numpy as np

from ..types import QuantParams, RawTensor

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    - device: torch device string, e.g. "cpu" or "cuda:0"
    - half: feed float16 input (the scripted model must expect it)
    - input_size: (width, height); TorchScript files do not record the input shape
    """

    device: str = "cpu"
    half: bool = False
    input_size: Optional[Tuple[int, int]] = None


def _flatten(outputs: Any) -> List[Any]:
    # Scripted detectors return a tensor, a tuple/list of per-head tensors, or a dict.
    if isinstance(outputs, dict):
        outputs = list(outputs.values())
    if isinstance(outputs, (tuple, list)):
        flat: List[Any] = []
        for item in outputs:
            flat.extend(_flatten(item))
        return flat
    return [outputs]


class TorchScriptBackend:
    """
    Runs a `torch.jit` model and returns every output tensor as a RawTensor.

    Per-tensor quantized outputs (`torch.qint8` / `torch.quint8`) are returned as their
    integer representation together with the tensor's own scale and zero point, so they go
    through the same dequantization as NPU outputs.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.device = torch.device(cfg.device)
        self.dtype = torch.float16 if cfg.half else torch.float32
        self.input_size = cfg.input_size
        self.model = torch.jit.load(str(self.model_path), map_location=self.device).eval()
        logger.info("Loaded %s on %s (%s input)", self.model_path.name, self.device, self.dtype)

    @staticmethod
    def _to_raw(y) -> RawTensor:
        y = y.detach().cpu()
        if y.is_quantized:
            data = y.int_repr().numpy()
            quant = QuantParams(scale=float(y.q_scale()), zero_point=int(y.q_zero_point()))
        else:
            data, quant = y.float().numpy(), None
        return RawTensor(data=data, quant=quant, shape=tuple(data.shape))

    def infer(self, blob: np.ndarray) -> List[RawTensor]:
        torch = self._torch
        x = torch.as_tensor(blob, device=self.device).to(self.dtype).contiguous()
        with torch.no_grad():
            outputs = _flatten(self.model(x))
        return [self._to_raw(y) for y in outputs if hasattr(y, "detach")]
