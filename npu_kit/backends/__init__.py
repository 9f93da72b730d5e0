"""
Optional inference backends for npu_kit.

Backends are kept in a separate module so the decode pipeline stays lightweight and
can be used without installing inference runtimes. A backend exposes:

- `input_size`: (width, height) of the model input, or None if unknown
- `infer(blob)`: run once and return every output as a `RawTensor`
"""

from __future__ import annotations

__all__ = []
