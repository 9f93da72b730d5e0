class DecodeError(ValueError):
    """
    Base class for problems found while decoding raw output tensors.

    None of these are fatal: callers log them and fall back to fewer (or zero) results.
    """


class EmptyInput(DecodeError):
    """Output buffer is absent or has no elements."""


class ShapeMismatch(DecodeError):
    """Declared layer grid does not match the tensor actually returned by the runtime."""


class InvalidQuantParams(DecodeError):
    """Quantization scale is not a positive finite number."""
