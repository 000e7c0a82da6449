from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple

import numpy as np


def _fixed_dims(name: str, shape: Sequence[object], rank: int) -> Tuple[int, ...]:
    if len(shape) != rank:
        raise ValueError(f"Tensor {name!r} must have rank {rank}, model declares {list(shape)}")
    dims = []
    for dim in shape:
        # ORT reports dynamic axes as strings (e.g. "batch") or None.
        if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
            raise ValueError(f"Tensor {name!r} must have a fixed shape, model declares {list(shape)}")
        dims.append(int(dim))
    return tuple(dims)


@dataclass(frozen=True)
class ModelIO:
    """
    Names and fixed shapes of the single input and output a detector uses.

    input_shape is (batch, 3, H, W); output_shape is (batch, N, 5 + C).
    """

    input_name: str
    input_shape: Tuple[int, int, int, int]
    output_name: str
    output_shape: Tuple[int, int, int]

    @classmethod
    def from_shapes(
        cls,
        input_name: str,
        input_shape: Sequence[object],
        output_name: str,
        output_shape: Sequence[object],
    ) -> "ModelIO":
        in_dims = _fixed_dims(input_name, input_shape, 4)
        out_dims = _fixed_dims(output_name, output_shape, 3)
        if in_dims[1] != 3:
            raise ValueError(f"Input {input_name!r} must have 3 channels, model declares {list(input_shape)}")
        if out_dims[2] < 5:
            raise ValueError(f"Output {output_name!r} needs at least 5 fields per row, model declares {list(output_shape)}")
        if in_dims[0] != out_dims[0]:
            raise ValueError(f"Input/output batch sizes differ: {list(input_shape)} vs {list(output_shape)}")
        return cls(input_name, in_dims, output_name, out_dims)  # type: ignore[arg-type]

    @property
    def batch_capacity(self) -> int:
        return self.input_shape[0]

    @property
    def input_height(self) -> int:
        return self.input_shape[2]

    @property
    def input_width(self) -> int:
        return self.input_shape[3]

    @property
    def num_detections(self) -> int:
        return self.output_shape[1]

    @property
    def elements_per_detection(self) -> int:
        return self.output_shape[2]

    @property
    def num_classes(self) -> int:
        return self.output_shape[2] - 5


class InferenceEngine(Protocol):
    """What the detector needs from an inference runtime."""

    io: ModelIO

    def infer(self, blob: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...
