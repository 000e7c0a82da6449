"""
Inference engines for yolo_batch.

Kept in a separate module so pre/post-processing can be used without
installing an inference runtime.
"""

from __future__ import annotations

from .base import InferenceEngine, ModelIO

__all__ = ["InferenceEngine", "ModelIO"]
