class InferenceResultMissing(RuntimeError):
    """The engine returned no tensor under the expected output name."""


class OutputShapeMismatch(ValueError):
    """The engine output does not have the rank/shape the model declares."""


class DeadlineExceeded(TimeoutError):
    """A caller-supplied deadline passed before or after the engine call."""
