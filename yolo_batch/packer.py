from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .letterbox import LetterboxParams, letterbox

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class PackedBatch:
    """
    NCHW float32 batch plus the letterbox geometry of every filled slot.

    `params[i]` and `source_sizes[i]` are None for slots that were left zero
    (no image); `source_sizes[i]` is the (width, height) of the image packed
    into slot i.
    """

    tensor: np.ndarray
    params: Tuple[Optional[LetterboxParams], ...]
    source_sizes: Tuple[Optional[Tuple[int, int]], ...]

    @property
    def batch_capacity(self) -> int:
        return int(self.tensor.shape[0])

    @property
    def filled_slots(self) -> List[int]:
        return [i for i, p in enumerate(self.params) if p is not None]


def write_slot(tensor: np.ndarray, slot: int, canvas_bgr: np.ndarray) -> None:
    """
    Write one letterboxed BGR canvas into `tensor[slot]` as planar RGB / 255.

    Element (slot, c, y, x) sits at flat offset ((slot * 3 + c) * H + y) * W + x
    of the row-major buffer; plane 0 takes canvas channel 2 (R), plane 1
    channel 1 (G), plane 2 channel 0 (B).
    """

    if tensor.ndim != 4 or tensor.shape[1] != 3:
        raise ValueError(f"Expected tensor shape (B, 3, H, W), got {tensor.shape}")
    batch, _, height, width = tensor.shape
    if not 0 <= slot < batch:
        raise ValueError(f"slot {slot} out of range for batch capacity {batch}")
    if canvas_bgr.shape != (height, width, 3):
        raise ValueError(f"Expected canvas shape {(height, width, 3)}, got {canvas_bgr.shape}")
    if canvas_bgr.dtype != np.uint8:
        raise TypeError(f"Expected an 8-bit (uint8) canvas, got dtype {canvas_bgr.dtype}")

    # BGR -> RGB, normalize, HWC -> CHW
    planes = canvas_bgr[:, :, ::-1].astype(np.float32) / 255.0
    tensor[slot] = np.transpose(planes, (2, 0, 1))


def pack_batch(
    images: Sequence[Optional[np.ndarray]],
    *,
    batch_capacity: int,
    input_height: int,
    input_width: int,
    color: Tuple[int, int, int] = (114, 114, 114),
    workers: int = 1,
) -> PackedBatch:
    """
    Letterbox up to `batch_capacity` BGR images into one zero-initialised batch.

    Missing images (None) and slots past the end of `images` stay all-zero,
    which the model sees as a black frame.
    """

    if batch_capacity < 1:
        raise ValueError("batch_capacity must be >= 1")
    if len(images) > batch_capacity:
        raise ValueError(f"Got {len(images)} images for a batch capacity of {batch_capacity}")

    tensor = np.zeros((batch_capacity, 3, input_height, input_width), dtype=np.float32)
    params: List[Optional[LetterboxParams]] = [None] * batch_capacity

    def _fill(slot: int) -> None:
        image = images[slot]
        if image is None:
            return
        canvas, slot_params = letterbox(image, new_shape=(input_width, input_height), color=color)
        write_slot(tensor, slot, canvas)
        params[slot] = slot_params

    if workers > 1 and len(images) > 1:
        # Each slot owns a disjoint region of `tensor` and its own `params` entry.
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for future in [pool.submit(_fill, slot) for slot in range(len(images))]:
                future.result()
    else:
        for slot in range(len(images)):
            _fill(slot)

    source_sizes = tuple(None if p is None else (p.orig_width, p.orig_height) for p in params)
    return PackedBatch(tensor=tensor, params=tuple(params), source_sizes=source_sizes)


def read_images(paths: Sequence[Optional[PathLike]]) -> List[Optional[np.ndarray]]:
    """
    Load images with OpenCV (BGR). Unreadable or missing entries become None.
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for read_images(). Install with `pip install opencv-python`.") from e

    out: List[Optional[np.ndarray]] = []
    for path in paths:
        if path is None or str(path) == "":
            out.append(None)
            continue
        if not Path(path).is_file():
            LOGGER.warning("Image not found, leaving slot empty: %s", path)
            out.append(None)
            continue
        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None:
            LOGGER.warning("Could not decode image, leaving slot empty: %s", path)
        out.append(img)
    return out
