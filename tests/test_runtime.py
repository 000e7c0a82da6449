import tempfile
import unittest
from pathlib import Path
from typing import List, Optional
from unittest import mock

import cv2
import numpy as np

from yolo_batch.backends.base import ModelIO
from yolo_batch.config import PipelineConfig
from yolo_batch.errors import DeadlineExceeded, InferenceResultMissing, OutputShapeMismatch
from yolo_batch.runtime import BatchDetector, load_detector, resolve_path
from yolo_batch.types import UNSET_CLASS_ID


class FakeEngine:
    def __init__(self, io: ModelIO, output: Optional[np.ndarray] = None, error: Optional[Exception] = None):
        self.io = io
        self.output = output if output is not None else np.zeros(io.output_shape, dtype=np.float32)
        self.error = error
        self.blobs: List[np.ndarray] = []
        self.close_calls = 0

    def infer(self, blob: np.ndarray) -> np.ndarray:
        self.blobs.append(blob)
        if self.error is not None:
            raise self.error
        return self.output

    def close(self) -> None:
        self.close_calls += 1


def _io(batch: int = 2, size: int = 64, rows: int = 3, fields: int = 7) -> ModelIO:
    return ModelIO.from_shapes("images", [batch, 3, size, size], "output0", [batch, rows, fields])


def _image(h: int, w: int) -> np.ndarray:
    return np.full((h, w, 3), 90, dtype=np.uint8)


class TestModelIO(unittest.TestCase):
    def test_dims(self) -> None:
        io = _io(batch=4, size=160, rows=100, fields=9)
        self.assertEqual(io.batch_capacity, 4)
        self.assertEqual((io.input_height, io.input_width), (160, 160))
        self.assertEqual(io.num_detections, 100)
        self.assertEqual(io.elements_per_detection, 9)
        self.assertEqual(io.num_classes, 4)

    def test_rejects_dynamic_or_malformed_shapes(self) -> None:
        with self.assertRaises(ValueError):
            ModelIO.from_shapes("images", ["batch", 3, 64, 64], "output0", [1, 3, 7])
        with self.assertRaises(ValueError):
            ModelIO.from_shapes("images", [1, 4, 64, 64], "output0", [1, 3, 7])
        with self.assertRaises(ValueError):
            ModelIO.from_shapes("images", [1, 3, 64, 64], "output0", [1, 3, 4])
        with self.assertRaises(ValueError):
            ModelIO.from_shapes("images", [2, 3, 64, 64], "output0", [1, 3, 7])
        with self.assertRaises(ValueError):
            ModelIO.from_shapes("images", [1, 3, 64], "output0", [1, 3, 7])


class TestBatchDetector(unittest.TestCase):
    def test_end_to_end_maps_to_original_pixels(self) -> None:
        io = _io()
        out = np.zeros(io.output_shape, dtype=np.float32)
        # slot 0: 128x64 image -> ratio 0.5, pad_y 16
        out[0, 0] = [32, 32, 20, 10, 0.9, 0.1, 0.95]
        out[0, 1] = [33, 32, 20, 10, 0.8, 0.1, 0.95]  # duplicate, suppressed
        out[0, 2] = [10, 10, 4, 4, 0.3, 0.9, 0.1]  # below threshold
        # slot 1 holds no image; whatever the model says there is ignored
        out[1, 0] = [5, 5, 5, 5, 0.99, 1.0, 0.0]
        engine = FakeEngine(io, out)

        with BatchDetector(engine) as detector:
            results = detector.detect([_image(64, 128)])

        self.assertEqual(engine.close_calls, 1)
        blob = engine.blobs[0]
        self.assertEqual(blob.shape, (2, 3, 64, 64))
        self.assertEqual(blob.dtype, np.float32)
        self.assertFalse(blob[1].any())

        self.assertEqual(len(results), 1)
        self.assertEqual(len(results[0]), 1)
        d = results[0][0]
        self.assertEqual(d.class_id, 1)
        self.assertAlmostEqual(d.confidence, 0.9, places=6)
        self.assertAlmostEqual(d.center_x, 64.0)
        self.assertAlmostEqual(d.center_y, 32.0)
        self.assertAlmostEqual(d.width, 40.0)
        self.assertAlmostEqual(d.height, 20.0)
        self.assertEqual(d.as_ltwh(), (44.0, 22.0, 40.0, 20.0))

    def test_empty_slot_in_the_middle(self) -> None:
        io = _io(batch=3)
        out = np.zeros(io.output_shape, dtype=np.float32)
        out[:, 0] = [32, 32, 8, 8, 0.9, 1.0, 0.0]
        detector = BatchDetector(FakeEngine(io, out))
        results = detector.detect([_image(64, 64), None, _image(64, 64)])
        self.assertEqual([len(r) for r in results], [1, 0, 1])

    def test_zero_class_model(self) -> None:
        io = _io(batch=1, fields=5)
        out = np.zeros(io.output_shape, dtype=np.float32)
        out[0, 0] = [32, 32, 8, 8, 0.9]
        results = BatchDetector(FakeEngine(io, out)).detect([_image(64, 64)])
        self.assertEqual(results[0][0].class_id, UNSET_CLASS_ID)

    def test_thresholds_come_from_config(self) -> None:
        io = _io(batch=1)
        out = np.zeros(io.output_shape, dtype=np.float32)
        out[0, 0] = [32, 32, 20, 20, 0.9, 1.0, 0.0]
        out[0, 1] = [34, 32, 20, 20, 0.6, 1.0, 0.0]
        cfg = PipelineConfig(conf_threshold=0.5, iou_threshold=0.95)
        results = BatchDetector(FakeEngine(io, out), cfg).detect([_image(64, 64)])
        self.assertEqual(len(results[0]), 2)
        cfg = PipelineConfig(conf_threshold=0.7)
        results = BatchDetector(FakeEngine(io, out), cfg).detect([_image(64, 64)])
        self.assertEqual(len(results[0]), 1)

    def test_missing_output_propagates_and_engine_released(self) -> None:
        engine = FakeEngine(_io(), error=InferenceResultMissing("no output0"))
        with self.assertRaises(InferenceResultMissing):
            with BatchDetector(engine) as detector:
                detector.detect([_image(64, 64)])
        self.assertEqual(engine.close_calls, 1)

    def test_unexpected_output_shape(self) -> None:
        io = _io()
        for bad in (np.zeros((2, 3), dtype=np.float32), np.zeros((2, 4, 7), dtype=np.float32), np.zeros((1, 3, 7))):
            with self.subTest(shape=bad.shape):
                with self.assertRaises(OutputShapeMismatch):
                    BatchDetector(FakeEngine(io, bad)).detect([_image(64, 64)])

    def test_too_many_images(self) -> None:
        with self.assertRaises(ValueError):
            BatchDetector(FakeEngine(_io(batch=1))).detect([_image(8, 8), _image(8, 8)])

    def test_deadline_before_call(self) -> None:
        engine = FakeEngine(_io())
        with self.assertRaises(DeadlineExceeded):
            BatchDetector(engine).detect([_image(64, 64)], deadline=0.0)
        self.assertEqual(engine.blobs, [])

    def test_deadline_after_call(self) -> None:
        engine = FakeEngine(_io())
        clock = iter([1.0, 10.0])
        with mock.patch("yolo_batch.runtime.time.monotonic", side_effect=lambda: next(clock, 10.0)):
            with self.assertRaises(DeadlineExceeded):
                BatchDetector(engine).detect([_image(64, 64)], deadline=5.0)
        self.assertEqual(len(engine.blobs), 1)

    def test_close_is_idempotent(self) -> None:
        engine = FakeEngine(_io())
        detector = BatchDetector(engine)
        detector.close()
        detector.close()
        self.assertEqual(engine.close_calls, 1)
        with self.assertRaises(RuntimeError):
            detector.detect([_image(8, 8)])

    def test_detect_all_chunks_by_capacity(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        paths = []
        for i in range(3):
            p = Path(tmpdir.name) / f"img{i}.png"
            cv2.imwrite(str(p), _image(64, 64))
            paths.append(p)
        paths.insert(1, Path(tmpdir.name) / "missing.png")

        io = _io(batch=2)
        out = np.zeros(io.output_shape, dtype=np.float32)
        out[:, 0] = [32, 32, 8, 8, 0.9, 1.0, 0.0]
        engine = FakeEngine(io, out)

        with self.assertLogs("yolo_batch.packer", level="WARNING"):
            results = list(BatchDetector(engine).detect_all(paths))

        self.assertEqual(len(engine.blobs), 2)
        self.assertEqual([p for p, _ in results], paths)
        self.assertEqual([len(d) for _, d in results], [1, 0, 1, 1])


class TestResolvePath(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name).resolve()

    def test_absolute_and_rooted(self) -> None:
        root = self.root
        self.assertEqual(resolve_path(root / "m.onnx"), root / "m.onnx")
        self.assertEqual(resolve_path("models/m.onnx", root=root), root / "models" / "m.onnx")

    def test_relative_without_root_uses_cwd(self) -> None:
        # A project marker above the cwd must not redirect relative paths.
        (self.root / "pyproject.toml").write_text("", encoding="utf-8")
        cwd = self.root / "work"
        cwd.mkdir()
        with mock.patch.object(Path, "cwd", return_value=cwd):
            self.assertEqual(resolve_path("models/m.onnx"), cwd / "models" / "m.onnx")
            self.assertEqual(resolve_path("m.onnx", root=None), cwd / "m.onnx")

    def test_load_detector_resolves_against_cwd(self) -> None:
        cwd = self.root / "work"
        cwd.mkdir()
        with mock.patch.object(Path, "cwd", return_value=cwd), mock.patch(
            "yolo_batch.backends.onnxruntime_backend.OnnxRuntimeBackend"
        ) as backend_cls:
            detector = load_detector("m.onnx", PipelineConfig())
        self.assertEqual(backend_cls.call_args[0][0], cwd / "m.onnx")
        self.assertIs(detector.engine, backend_cls.return_value)


if __name__ == "__main__":
    unittest.main()
