"""
Batch YOLO detection around a fixed-shape ONNX model.

Letterbox -> planar batch tensor -> inference -> decode -> per-class NMS ->
original image coordinates. The core works on NumPy arrays; OpenCV is used for
resizing/drawing and ONNX Runtime only by the backend.
"""

from .types import UNSET_CLASS_ID, Detection
from .errors import DeadlineExceeded, InferenceResultMissing, OutputShapeMismatch
from .config import PipelineConfig, load_pipeline_config
from .letterbox import LetterboxParams, compute_letterbox, letterbox
from .packer import PackedBatch, pack_batch, read_images, write_slot
from .decoder import decode_batch, decode_rows, validate_output
from .nms import box_iou, nms, nms_batch
from .mapping import map_batch, map_detections, to_original
from .runtime import BatchDetector, load_detector, resolve_path
from .metadata import load_class_names, parse_names_metadata
from .files import dated_output_dir, output_path_for, scan_images
from .visualize import draw_detections

__all__ = [
    "UNSET_CLASS_ID",
    "Detection",
    "DeadlineExceeded",
    "InferenceResultMissing",
    "OutputShapeMismatch",
    "PipelineConfig",
    "load_pipeline_config",
    "LetterboxParams",
    "compute_letterbox",
    "letterbox",
    "PackedBatch",
    "pack_batch",
    "read_images",
    "write_slot",
    "decode_batch",
    "decode_rows",
    "validate_output",
    "box_iou",
    "nms",
    "nms_batch",
    "map_batch",
    "map_detections",
    "to_original",
    "BatchDetector",
    "load_detector",
    "resolve_path",
    "load_class_names",
    "parse_names_metadata",
    "dated_output_dir",
    "output_path_for",
    "scan_images",
    "draw_detections",
]
