from typing import List, Optional, Sequence

from .letterbox import LetterboxParams
from .types import Detection


def to_original(det: Detection, params: LetterboxParams) -> Detection:
    """
    Map a letterboxed detection back to original image pixels.

    Exact inverse of `LetterboxParams.to_letterbox`. Boxes are not clipped to
    the image; that is left to whoever draws or reports them.
    """

    return det.replace_geometry(
        center_x=(det.center_x - params.pad_x) / params.ratio,
        center_y=(det.center_y - params.pad_y) / params.ratio,
        width=det.width / params.ratio,
        height=det.height / params.ratio,
    )


def map_detections(detections: Sequence[Detection], params: LetterboxParams) -> List[Detection]:
    return [to_original(d, params) for d in detections]


def map_batch(
    batch: Sequence[Sequence[Detection]],
    params: Sequence[Optional[LetterboxParams]],
) -> List[List[Detection]]:
    """Map each slot with its own params; slots without params (no image) map to []."""
    if len(batch) != len(params):
        raise ValueError(f"Got {len(batch)} detection lists for {len(params)} slots")
    return [map_detections(dets, p) if p is not None else [] for dets, p in zip(batch, params)]
