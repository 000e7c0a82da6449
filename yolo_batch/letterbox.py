from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class LetterboxParams:
    """
    Geometry of one letterbox resize.

    Stored next to the canvas it produced so boxes can be mapped back with
    exactly the same ratio and padding.
    """

    ratio: float
    pad_x: int
    pad_y: int
    orig_width: int
    orig_height: int
    target_width: int
    target_height: int
    new_width: int
    new_height: int

    def to_letterbox(self, x: float, y: float) -> Tuple[float, float]:
        """Forward-map a point from the original image onto the canvas."""
        return x * self.ratio + self.pad_x, y * self.ratio + self.pad_y

    def to_letterbox_size(self, width: float, height: float) -> Tuple[float, float]:
        return width * self.ratio, height * self.ratio


def compute_letterbox(orig_width: int, orig_height: int, target_width: int, target_height: int) -> LetterboxParams:
    """
    ratio = min(W / w, H / h), new size = floor(size * ratio), centered padding.

    The floors are taken with integer arithmetic so the limiting side always
    fills the canvas exactly (w * (W / w) can land a hair under W in floats).
    """

    for name, value in (
        ("orig_width", orig_width),
        ("orig_height", orig_height),
        ("target_width", target_width),
        ("target_height", target_height),
    ):
        if int(value) != value or value <= 0:
            raise ValueError(f"{name} must be a positive integer, got {value!r}")

    w, h = int(orig_width), int(orig_height)
    tw, th = int(target_width), int(target_height)

    # Compare tw / w against th / h without division.
    if tw * h <= th * w:
        ratio = tw / w
        new_w = tw
        new_h = (h * tw) // w
    else:
        ratio = th / h
        new_w = (w * th) // h
        new_h = th

    # Extreme aspect ratios would otherwise resize to zero pixels.
    new_w = max(new_w, 1)
    new_h = max(new_h, 1)

    return LetterboxParams(
        ratio=ratio,
        pad_x=(tw - new_w) // 2,
        pad_y=(th - new_h) // 2,
        orig_width=w,
        orig_height=h,
        target_width=tw,
        target_height=th,
        new_width=new_w,
        new_height=new_h,
    )


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (114, 114, 114),
) -> Tuple[np.ndarray, LetterboxParams]:
    """
    Resize `image` into a `new_shape` (width, height) canvas without distortion.

    Returns:
        padded: (H, W, 3) canvas filled with `color`, resized image at (pad_x, pad_y)
        params: the LetterboxParams needed to invert the mapping
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if image is None or not hasattr(image, "shape"):
        raise TypeError("image must be a NumPy array (BGR).")
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")
    if image.dtype != np.uint8:
        raise TypeError(f"Expected an 8-bit (uint8) image, got dtype {image.dtype}")

    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)

    h, w = image.shape[:2]
    target_w, target_h = new_shape
    params = compute_letterbox(w, h, target_w, target_h)

    if (w, h) != (params.new_width, params.new_height):
        image = cv2.resize(image, (params.new_width, params.new_height), interpolation=cv2.INTER_LINEAR)

    top, left = params.pad_y, params.pad_x
    bottom = target_h - params.new_height - top
    right = target_w - params.new_width - left
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return padded, params
