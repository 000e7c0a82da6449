from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class PipelineConfig:
    """
    Settings for one detector, built once and passed to every stage.

    - conf_threshold: rows need objectness strictly above this to be decoded
    - iou_threshold: same-class boxes overlapping strictly above this are suppressed
    - pad_color: letterbox fill (BGR)
    - drop_degenerate_boxes: reject rows whose width or height is <= 0
    - pack_workers: threads used to letterbox/pack batch slots
    - providers: ORT execution providers, forwarded as-is
    - input_name/output_name: override the tensor names read from the model
    """

    conf_threshold: float = 0.45
    iou_threshold: float = 0.45
    pad_color: Tuple[int, int, int] = (114, 114, 114)
    drop_degenerate_boxes: bool = False
    pack_workers: int = 1
    providers: Optional[Tuple[str, ...]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if len(self.pad_color) != 3 or any(not 0 <= int(c) <= 255 for c in self.pad_color):
            raise ValueError("pad_color must be three values within [0, 255]")
        if self.pack_workers < 1:
            raise ValueError("pack_workers must be >= 1")
        if self.providers is not None and not isinstance(self.providers, tuple):
            # frozen: lists become tuples
            object.__setattr__(self, "providers", tuple(self.providers))


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string if provided")
    return value.strip()


def load_pipeline_config(path: Path) -> PipelineConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    allowed = {
        "conf_threshold",
        "iou_threshold",
        "pad_color",
        "drop_degenerate_boxes",
        "pack_workers",
        "providers",
        "input_name",
        "output_name",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key in ("conf_threshold", "iou_threshold"):
        if key in payload:
            kwargs[key] = _require_number(payload, key)
    if "pack_workers" in payload:
        kwargs["pack_workers"] = _require_int(payload, "pack_workers")
    if "drop_degenerate_boxes" in payload:
        if not isinstance(payload["drop_degenerate_boxes"], bool):
            raise ValueError("drop_degenerate_boxes must be a boolean")
        kwargs["drop_degenerate_boxes"] = payload["drop_degenerate_boxes"]
    if "pad_color" in payload:
        color = payload["pad_color"]
        if (
            not isinstance(color, list)
            or len(color) != 3
            or any(isinstance(c, bool) or not isinstance(c, int) for c in color)
        ):
            raise ValueError("pad_color must be a list of three integers")
        kwargs["pad_color"] = tuple(color)
    if payload.get("providers") is not None:
        providers = payload["providers"]
        if not isinstance(providers, list) or not all(isinstance(p, str) and p.strip() for p in providers):
            raise ValueError("providers must be a list of non-empty strings")
        kwargs["providers"] = tuple(p.strip() for p in providers)
    for key in ("input_name", "output_name"):
        value = _optional_str(payload, key)
        if value is not None:
            kwargs[key] = value

    return PipelineConfig(**kwargs)
