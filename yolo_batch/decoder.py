from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .errors import OutputShapeMismatch
from .types import UNSET_CLASS_ID, Detection

LOGGER = logging.getLogger(__name__)

# cx, cy, w, h, objectness
NUM_BOX_FIELDS = 5


def validate_output(output: np.ndarray, expected_batch: Optional[int] = None) -> np.ndarray:
    """
    Check a raw (B, N, 5 + C) output and return it as a NumPy array.
    """

    p = np.asarray(output)
    if p.ndim != 3:
        raise OutputShapeMismatch(f"Expected output of rank 3 (batch, detections, fields), got shape {p.shape}")
    if p.shape[2] < NUM_BOX_FIELDS:
        raise OutputShapeMismatch(
            f"Expected at least {NUM_BOX_FIELDS} fields per detection (cx, cy, w, h, conf), got shape {p.shape}"
        )
    if expected_batch is not None and p.shape[0] != expected_batch:
        raise OutputShapeMismatch(f"Expected batch dimension {expected_batch}, got shape {p.shape}")
    return p


def decode_rows(
    rows: np.ndarray,
    conf_threshold: float = 0.45,
    drop_degenerate: bool = False,
) -> List[Detection]:
    """
    Decode one image's (N, 5 + C) rows: [cx, cy, w, h, obj, class_scores...].

    A row survives when obj > conf_threshold. Its class is the first index of
    the highest class score; with no class columns the class stays unset.
    Geometry is copied as-is (letterboxed pixels) and row order is kept.
    """

    p = np.asarray(rows)
    if p.ndim != 2 or p.shape[1] < NUM_BOX_FIELDS:
        raise OutputShapeMismatch(f"Expected rows of shape (N, 5 + C), got {p.shape}")
    if p.shape[0] == 0:
        return []

    keep = p[:, 4] > conf_threshold
    if drop_degenerate:
        keep &= (p[:, 2] > 0) & (p[:, 3] > 0)
    kept = p[keep]
    if kept.shape[0] == 0:
        return []

    class_scores = kept[:, NUM_BOX_FIELDS:]
    if class_scores.shape[1] > 0:
        # np.argmax returns the first occurrence on ties.
        class_ids = np.argmax(class_scores, axis=1)
    else:
        class_ids = np.full(kept.shape[0], UNSET_CLASS_ID, dtype=np.int64)

    return [
        Detection(
            confidence=float(row[4]),
            center_x=float(row[0]),
            center_y=float(row[1]),
            width=float(row[2]),
            height=float(row[3]),
            class_id=int(cls_id),
        )
        for row, cls_id in zip(kept, class_ids)
    ]


def decode_batch(
    output: np.ndarray,
    conf_threshold: float = 0.45,
    drop_degenerate: bool = False,
) -> List[List[Detection]]:
    """
    Decode a (B, N, 5 + C) output into one detection list per batch index.
    """

    p = validate_output(output)
    batch = [decode_rows(p[b], conf_threshold=conf_threshold, drop_degenerate=drop_degenerate) for b in range(p.shape[0])]
    LOGGER.debug("Decoded %d candidates across %d images (output %s)", sum(len(d) for d in batch), len(batch), p.shape)
    return batch
