import argparse
import logging
import time
from dataclasses import replace
from pathlib import Path

import cv2

from yolo_batch import (
    PipelineConfig,
    dated_output_dir,
    draw_detections,
    load_class_names,
    load_detector,
    load_pipeline_config,
    output_path_for,
    scan_images,
)

LOGGER = logging.getLogger("detect_images")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run batch YOLO detection over a directory and save annotated images.")
    parser.add_argument("--model", required=True, help="Path to a fixed-shape YOLO ONNX model.")
    parser.add_argument("--images", required=True, help="Directory with .png/.jpg/.jpeg images.")
    parser.add_argument("--out", default="outputs", help="Root for dated output directories (YYYYMMDD).")
    parser.add_argument("--config", default=None, help="Optional pipeline config JSON; CLI thresholds override it.")
    parser.add_argument("--metadata", default=None, help="Optional class names file (names: mapping).")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold (default 0.45).")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS (default 0.45).")
    parser.add_argument("--workers", type=int, default=None, help="Threads used to pack a batch.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING...).")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = load_pipeline_config(Path(args.config)) if args.config else PipelineConfig()
    overrides = {}
    if args.conf is not None:
        overrides["conf_threshold"] = args.conf
    if args.iou is not None:
        overrides["iou_threshold"] = args.iou
    if args.workers is not None:
        overrides["pack_workers"] = args.workers
    if args.onnx_providers:
        overrides["providers"] = tuple(p.strip() for p in str(args.onnx_providers).split(",") if p.strip())
    if overrides:
        cfg = replace(cfg, **overrides)

    paths = scan_images(args.images)
    if not paths:
        LOGGER.warning("No images found in %s", args.images)
        return 0

    out_dir = dated_output_dir(args.out)
    written = 0
    total_dets = 0

    with load_detector(args.model, cfg) as detector:
        class_names = load_class_names(args.metadata) if args.metadata else {}
        if not class_names and hasattr(detector.engine, "class_names"):
            class_names = detector.engine.class_names

        start = time.perf_counter()
        for path, detections in detector.detect_all(paths):
            total_dets += len(detections)
            for det in detections:
                name = class_names.get(det.class_id, str(det.class_id)) if det.has_class else "object"
                LOGGER.debug("%s: %s %.2f ltwh=%s", Path(path).name, name, det.confidence, det.as_ltwh())
            if not detections:
                continue

            img = cv2.imread(str(path))
            if img is None:
                continue
            vis = draw_detections(img, detections, class_names=class_names)
            out_path = output_path_for(path, out_dir)
            if not cv2.imwrite(str(out_path), vis):
                raise RuntimeError(f"Failed to write output image: {out_path}")
            written += 1
        elapsed_ms = (time.perf_counter() - start) * 1000

    LOGGER.info(
        "Processed %d images in %.0fms: %d detections, %d annotated images in %s",
        len(paths),
        elapsed_ms,
        total_dets,
        written,
        out_dir,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
