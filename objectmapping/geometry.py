"""Integer image rectangles and overlap tests between them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

Point = tuple[float, float]


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle with a top-left corner and a size in pixels."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def area(self) -> int:
        """Number of pixels covered."""
        return self.width * self.height

    def is_empty(self) -> bool:
        """True when the rectangle covers no pixel."""
        return self.width <= 0 or self.height <= 0

    def contains(self, point: Sequence[float]) -> bool:
        """True when ``point`` lies inside; the right and bottom edges are excluded."""
        px, py = point
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height

    def intersection(self, other: "Rect") -> "Rect":
        """Common part of two rectangles, or an empty rectangle."""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.x + self.width, other.x + other.width)
        y2 = min(self.y + self.height, other.y + other.height)
        if x2 - x1 <= 0 or y2 - y1 <= 0:
            return Rect()
        return Rect(x1, y1, x2 - x1, y2 - y1)

    def center(self) -> Point:
        """Centre point using integer halving of the size."""
        return float(self.x + int(self.width / 2)), float(self.y + int(self.height / 2))

    def to_contour(self) -> list[Point]:
        """The four corners, clockwise from the top-left."""
        right = self.x + self.width
        bottom = self.y + self.height
        return [
            (float(self.x), float(self.y)),
            (float(right), float(self.y)),
            (float(right), float(bottom)),
            (float(self.x), float(bottom)),
        ]


def rect_overlaps_contour(rect: Rect, contour: Iterable[Sequence[float]]) -> bool:
    """True when any contour point lies inside ``rect``."""
    return any(rect.contains(point) for point in contour)


def rects_overlap(rect1: Rect, rect2: Rect) -> bool:
    """True when a corner of ``rect2`` lies inside ``rect1``."""
    return rect_overlaps_contour(rect1, rect2.to_contour())