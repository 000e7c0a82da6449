from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .backends.base import InferenceEngine, ModelIO
from .config import PipelineConfig
from .decoder import decode_batch, validate_output
from .errors import DeadlineExceeded, OutputShapeMismatch
from .mapping import map_batch
from .nms import nms_batch
from .packer import PackedBatch, pack_batch, read_images
from .types import Detection

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def resolve_path(path: PathLike, root: Optional[PathLike] = None) -> Path:
    """
    Absolute paths are returned as-is; relative ones resolve against `root`,
    or the current working directory when `root` is None.
    """

    p = Path(path)
    if p.is_absolute():
        return p
    base = Path(root) if root is not None else Path.cwd()
    return (base / p).resolve()


def _check_deadline(deadline: Optional[float], stage: str) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise DeadlineExceeded(f"Deadline passed {stage} inference")


class BatchDetector:
    """
    Batch pipeline: letterbox + pack -> inference -> decode -> per-class NMS -> map back.

    Owns the engine: `close()` (or leaving a `with` block) releases it exactly
    once. Single-image use is just a model exported with batch size 1.
    Detections are returned in original image pixels, one list per image.
    """

    def __init__(self, engine: InferenceEngine, cfg: PipelineConfig = PipelineConfig()):
        self.engine = engine
        self.cfg = cfg
        self._closed = False

    @property
    def io(self) -> ModelIO:
        return self.engine.io

    @property
    def batch_capacity(self) -> int:
        return self.io.batch_capacity

    def preprocess(self, images: Sequence[Optional[np.ndarray]]) -> PackedBatch:
        return pack_batch(
            images,
            batch_capacity=self.io.batch_capacity,
            input_height=self.io.input_height,
            input_width=self.io.input_width,
            color=self.cfg.pad_color,
            workers=self.cfg.pack_workers,
        )

    def postprocess(self, output: np.ndarray, packed: PackedBatch) -> List[List[Detection]]:
        p = validate_output(output, expected_batch=self.io.batch_capacity)
        if tuple(p.shape) != self.io.output_shape:
            raise OutputShapeMismatch(f"Model declares output shape {list(self.io.output_shape)}, got {list(p.shape)}")
        candidates = decode_batch(
            p,
            conf_threshold=self.cfg.conf_threshold,
            drop_degenerate=self.cfg.drop_degenerate_boxes,
        )
        kept = nms_batch(candidates, self.cfg.iou_threshold)
        return map_batch(kept, packed.params)

    def detect(
        self,
        images: Sequence[Optional[np.ndarray]],
        *,
        deadline: Optional[float] = None,
    ) -> List[List[Detection]]:
        """
        Run one batch of up to `batch_capacity` BGR images (None = empty slot).

        `deadline` is a `time.monotonic()` value checked before and after the
        blocking engine call.
        """

        if self._closed:
            raise RuntimeError("BatchDetector is closed.")

        t0 = time.perf_counter()
        packed = self.preprocess(images)
        t1 = time.perf_counter()

        _check_deadline(deadline, "before")
        output = self.engine.infer(packed.tensor)
        _check_deadline(deadline, "after")
        t2 = time.perf_counter()

        per_slot = self.postprocess(output, packed)
        t3 = time.perf_counter()

        LOGGER.debug(
            "batch of %d/%d: pack %.1fms, infer %.1fms, post %.1fms",
            len(packed.filled_slots),
            self.batch_capacity,
            (t1 - t0) * 1000,
            (t2 - t1) * 1000,
            (t3 - t2) * 1000,
        )
        return per_slot[: len(images)]

    def detect_paths(
        self,
        paths: Sequence[Optional[PathLike]],
        *,
        deadline: Optional[float] = None,
    ) -> List[List[Detection]]:
        return self.detect(read_images(paths), deadline=deadline)

    def detect_all(self, paths: Sequence[PathLike]) -> Iterator[Tuple[PathLike, List[Detection]]]:
        """
        Run any number of image paths in capacity-sized batches.
        """

        cap = self.batch_capacity
        for start in range(0, len(paths), cap):
            chunk = list(paths[start : start + cap])
            for path, dets in zip(chunk, self.detect_paths(chunk)):
                yield path, dets

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.engine.close()

    def __enter__(self) -> "BatchDetector":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def load_detector(
    model_path: PathLike,
    cfg: PipelineConfig = PipelineConfig(),
    *,
    root: Optional[PathLike] = None,
) -> BatchDetector:
    """
    Create a detector for an ONNX model on disk.

    Typical usage:
        with load_detector("models/best.onnx") as det:
            results = det.detect_paths(paths)

    Args:
        model_path: path to the .onnx file; relative paths resolve against `root`
        cfg: thresholds, padding and execution providers
        root: base directory for relative model paths (None = current working directory)
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    resolved = resolve_path(model_path, root=root)
    LOGGER.info("Loading model from %s", resolved)
    backend = OnnxRuntimeBackend(
        resolved,
        OnnxRuntimeBackendConfig(
            providers=cfg.providers,
            input_name=cfg.input_name,
            output_name=cfg.output_name,
        ),
    )
    return BatchDetector(backend, cfg)
