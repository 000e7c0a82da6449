from collections import defaultdict
from typing import Dict, List, Sequence

import numpy as np

from .types import Detection


def _to_xyxy(detections: Sequence[Detection]) -> np.ndarray:
    if not detections:
        return np.empty((0, 4), dtype=np.float64)
    return np.array([d.as_xyxy() for d in detections], dtype=np.float64)


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against (N, 4) xyxy boxes.

    Intersections are clamped at zero; a pair whose union is <= 0 gets IoU 0.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.float64)

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter

    iou = np.zeros_like(inter)
    np.divide(inter, union, out=iou, where=union > 0)
    return iou


def box_iou(a: Detection, b: Detection) -> float:
    return float(iou_one_to_many(np.array(a.as_xyxy()), _to_xyxy([b]))[0])


def _nms_single_class(detections: List[Detection], iou_threshold: float) -> List[Detection]:
    # Stable sort keeps decode order among equal confidences.
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    order = np.argsort(-scores, kind="stable")
    boxes = _to_xyxy(detections)

    keep: List[Detection] = []
    while order.size > 0:
        i = order[0]
        keep.append(detections[i])

        iou = iou_one_to_many(boxes[i], boxes[order[1:]])
        order = order[1:][iou <= iou_threshold]

    return keep


def nms(detections: Sequence[Detection], iou_threshold: float = 0.45) -> List[Detection]:
    """
    Greedy per-class NMS.

    Detections are grouped by class_id (unset is its own group). Within a
    group the most confident box is kept and every remaining box with IoU
    strictly above `iou_threshold` against it is dropped, until the group is
    empty. Groups are returned back to back in ascending class_id order.
    """

    groups: Dict[int, List[Detection]] = defaultdict(list)
    for det in detections:
        groups[det.class_id].append(det)

    kept: List[Detection] = []
    for class_id in sorted(groups):
        kept.extend(_nms_single_class(groups[class_id], iou_threshold))
    return kept


def nms_batch(batch: Sequence[Sequence[Detection]], iou_threshold: float = 0.45) -> List[List[Detection]]:
    return [nms(dets, iou_threshold) for dets in batch]
