from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

import numpy as np

from ..errors import InferenceResultMissing
from ..metadata import parse_names_metadata
from .base import ModelIO

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None


def _pick(kind: str, metas: Sequence[object], name: Optional[str]) -> object:
    if not metas:
        raise ValueError(f"Model declares no {kind}s")
    if name is None:
        return metas[0]
    for meta in metas:
        if getattr(meta, "name") == name:
            return meta
    available = [getattr(m, "name") for m in metas]
    raise ValueError(f"Model has no {kind} named {name!r}; available: {available}")


class OnnxRuntimeBackend:
    """
    ONNX Runtime engine for fixed-shape YOLO exports.

    Input/output names and shapes are read from the session once, at load time.
    Expects an NCHW float32 blob shaped exactly like `io.input_shape` and
    returns the single named output as a NumPy array.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        try:
            inp = _pick("input", self.session.get_inputs(), cfg.input_name)
            out = _pick("output", self.session.get_outputs(), cfg.output_name)
            self.io = ModelIO.from_shapes(inp.name, inp.shape, out.name, out.shape)
        except Exception:
            self.close()
            raise

        self._log_model_info()

    def _log_model_info(self) -> None:
        for kind, metas in (("input", self.session.get_inputs()), ("output", self.session.get_outputs())):
            for m in metas:
                LOGGER.info("Model %s: name=%s type=%s shape=%s", kind, m.name, m.type, m.shape)
        LOGGER.info("Session providers: %s", ", ".join(self.providers_in_use))

    def _require_session(self):
        if self.session is None:
            raise RuntimeError("OnnxRuntimeBackend is closed.")
        return self.session

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self._require_session().get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    @property
    def class_names(self) -> Dict[int, str]:
        """Class names stored in the model metadata by YOLO exports, if any."""
        meta = self._require_session().get_modelmeta().custom_metadata_map
        raw = meta.get("names")
        return parse_names_metadata(raw) if raw else {}

    def infer(self, blob: np.ndarray) -> np.ndarray:
        outputs = self._require_session().run([self.io.output_name], {self.io.input_name: blob})
        if not outputs or outputs[0] is None:
            raise InferenceResultMissing(f"Inference returned no tensor named {self.io.output_name!r}")
        return np.asarray(outputs[0])

    def close(self) -> None:
        # ORT frees the native session when the last reference goes away.
        self.session = None

    def __enter__(self) -> "OnnxRuntimeBackend":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
