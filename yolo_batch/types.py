from dataclasses import dataclass
from typing import Tuple


UNSET_CLASS_ID = -1


@dataclass(frozen=True)
class Detection:
    """
    One detected box in center form.

    Geometry is in letterboxed pixel space when produced by the decoder and in
    original image pixels after `mapping.to_original`.
    """

    confidence: float
    center_x: float
    center_y: float
    width: float
    height: float
    class_id: int = UNSET_CLASS_ID

    @property
    def has_class(self) -> bool:
        return self.class_id >= 0

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        half_w = self.width / 2
        half_h = self.height / 2
        return (
            self.center_x - half_w,
            self.center_y - half_h,
            self.center_x + half_w,
            self.center_y + half_h,
        )

    def as_ltwh(self) -> Tuple[float, float, float, float]:
        """(left_top_x, left_top_y, width, height)"""
        return self.center_x - self.width / 2, self.center_y - self.height / 2, self.width, self.height

    def replace_geometry(self, center_x: float, center_y: float, width: float, height: float) -> "Detection":
        return Detection(
            confidence=self.confidence,
            center_x=center_x,
            center_y=center_y,
            width=width,
            height=height,
            class_id=self.class_id,
        )
