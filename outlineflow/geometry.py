"""
Geometry utilities for shapes and connections.

Provides the small set of rectangle operations the engine needs:
- Center-in-rectangle containment (the grouping predicate)
- Rectangle overlap and bounding boxes
- Clamping
- Connection anchor points and Bezier curve routing

Functions accept any object with `x`, `y`, `width` and `height` attributes,
so they work on both `Rect` values and `Shape` records.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol


class HasBounds(Protocol):
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Point:
    """A point in canvas coordinates."""
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in canvas coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @classmethod
    def of(cls, item: HasBounds) -> "Rect":
        """Snapshot the geometry of a shape-like object."""
        return cls(item.x, item.y, item.width, item.height)

    def inflate(self, left: float, top: float, right: float, bottom: float) -> "Rect":
        """Grow the rectangle outward by the given amount on each side."""
        return Rect(self.x - left, self.y - top, self.width + left + right, self.height + top + bottom)


@dataclass(frozen=True)
class ConnectionPath:
    """Rendered geometry of a connection."""
    start: Point
    end: Point
    control1: Point
    control2: Point
    label_position: Point

    @property
    def svg_path(self) -> str:
        return (
            f"M {self.start.x} {self.start.y} "
            f"C {self.control1.x} {self.control1.y}, "
            f"{self.control2.x} {self.control2.y}, "
            f"{self.end.x} {self.end.y}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "start": {"x": self.start.x, "y": self.start.y},
            "end": {"x": self.end.x, "y": self.end.y},
            "path": self.svg_path,
            "label": {"x": self.label_position.x, "y": self.label_position.y},
        }


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def center(item: HasBounds) -> Point:
    """Center point of a rectangle."""
    return Point(item.x + item.width / 2, item.y + item.height / 2)


def contains_point(outer: HasBounds, px: float, py: float) -> bool:
    """True if the point lies within `outer` (edges inclusive)."""
    return (
        outer.x <= px <= outer.x + outer.width
        and outer.y <= py <= outer.y + outer.height
    )


def center_inside(inner: HasBounds, outer: HasBounds) -> bool:
    """
    True if the center of `inner` lies within `outer`.

    This is a point-in-rectangle test, not a full overlap test: a shape that
    is mostly inside another counts as contained.
    """
    c = center(inner)
    return contains_point(outer, c.x, c.y)


def rects_overlap(a: HasBounds, b: HasBounds) -> bool:
    """True if the two rectangles share interior area."""
    return (
        a.x < b.x + b.width and b.x < a.x + a.width
        and a.y < b.y + b.height and b.y < a.y + a.height
    )


def bounding_box(items: Iterable[HasBounds]) -> Optional[Rect]:
    """
    Axis-aligned bounding box of a collection of rectangles.

    Returns:
        The enclosing Rect, or None if the collection is empty
    """
    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")

    for item in items:
        min_x = min(min_x, item.x)
        min_y = min(min_y, item.y)
        max_x = max(max_x, item.x + item.width)
        max_y = max(max_y, item.y + item.height)

    if min_x == float("inf"):
        return None
    return Rect(min_x, min_y, max_x - min_x, max_y - min_y)


def anchor_point(item: HasBounds, side: str) -> Point:
    """
    Connection anchor on one side of a rectangle.

    Args:
        item: The shape
        side: "top", "bottom", "left" or "right"; anything else is "bottom"

    Returns:
        The midpoint of that side
    """
    cx = item.x + item.width / 2
    cy = item.y + item.height / 2

    if side == "top":
        return Point(cx, item.y)
    if side == "left":
        return Point(item.x, cy)
    if side == "right":
        return Point(item.x + item.width, cy)
    return Point(cx, item.y + item.height)


def nearest_anchor(item: HasBounds, px: float, py: float, tolerance: float) -> Optional[str]:
    """Side whose anchor lies within `tolerance` of the point, if any."""
    best: Optional[str] = None
    best_dist = tolerance
    for side in ("top", "right", "bottom", "left"):
        pt = anchor_point(item, side)
        dist = ((pt.x - px) ** 2 + (pt.y - py) ** 2) ** 0.5
        if dist <= best_dist:
            best, best_dist = side, dist
    return best


def _push(point: Point, side: Optional[str], offset: float) -> Point:
    if side == "top":
        return Point(point.x, point.y - offset)
    if side == "bottom":
        return Point(point.x, point.y + offset)
    if side == "left":
        return Point(point.x - offset, point.y)
    if side == "right":
        return Point(point.x + offset, point.y)
    return point


def route_connection(
    source: HasBounds,
    target: HasBounds,
    from_point: str = "bottom",
    to_point: str = "top",
    max_offset: float = 50,
    label_lift: float = 8,
) -> ConnectionPath:
    """
    Compute the cubic Bezier curve between two anchored shapes.

    Control points are pushed outward from each anchor, perpendicular to the
    side it sits on, by half the larger axis distance (capped at `max_offset`).

    Args:
        source: Shape the connection starts at
        target: Shape the connection ends at
        from_point: Anchor side on the source
        to_point: Anchor side on the target
        max_offset: Upper bound for the control point offset
        label_lift: Distance of the label above the curve midpoint

    Returns:
        ConnectionPath with endpoints, control points and label position
    """
    start = anchor_point(source, from_point)
    end = anchor_point(target, to_point)

    dx = abs(end.x - start.x)
    dy = abs(end.y - start.y)
    offset = min(max_offset, max(dx, dy) / 2)

    return ConnectionPath(
        start=start,
        end=end,
        control1=_push(start, from_point, offset),
        control2=_push(end, to_point, offset),
        label_position=Point((start.x + end.x) / 2, (start.y + end.y) / 2 - label_lift),
    )
