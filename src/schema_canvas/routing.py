from __future__ import annotations

from dataclasses import dataclass

from .types import BoxGeometry, Point

# ============================================================================
# Relationship routing -- orthogonal polylines between table boxes
# ============================================================================

# How far a self-referencing loop sticks out of its table
SELF_LOOP_OFFSET = 24


@dataclass(slots=True)
class NodeRect:
    """Box for endpoint placement -- uses center-based coordinates."""

    cx: float
    cy: float
    hw: float
    hh: float

    @classmethod
    def from_box(cls, box: BoxGeometry) -> NodeRect:
        return cls(
            cx=box.x + box.width / 2,
            cy=box.y + box.height / 2,
            hw=box.width / 2,
            hh=box.height / 2,
        )

    @property
    def left(self) -> float:
        return self.cx - self.hw

    @property
    def right(self) -> float:
        return self.cx + self.hw

    @property
    def top(self) -> float:
        return self.cy - self.hh

    @property
    def bottom(self) -> float:
        return self.cy + self.hh


def route_orthogonal(
    source: NodeRect,
    target: NodeRect,
    source_y: float | None = None,
    target_y: float | None = None,
    self_loop: bool = False,
) -> list[Point]:
    """Route a line from ``source`` to ``target`` with 90-degree bends.

    Boxes side by side are joined from their facing left/right sides at
    ``source_y``/``target_y`` (a field's row, defaulting to the box center).
    Boxes stacked vertically are joined from their facing top/bottom sides.
    A ``self_loop`` leaves and re-enters the right side of ``source``.
    """
    sy = source.cy if source_y is None else source_y
    ty = target.cy if target_y is None else target_y

    if self_loop:
        x = source.right + SELF_LOOP_OFFSET
        if abs(sy - ty) < 1:
            ty = min(sy + SELF_LOOP_OFFSET, source.bottom)
        return [
            Point(x=source.right, y=sy),
            Point(x=x, y=sy),
            Point(x=x, y=ty),
            Point(x=source.right, y=ty),
        ]

    if source.right <= target.left:
        x1, x2 = source.right, target.left
    elif target.right <= source.left:
        x1, x2 = source.left, target.right
    else:
        # Horizontal overlap -- leave through top/bottom
        if source.cy <= target.cy:
            y1, y2 = source.bottom, target.top
        else:
            y1, y2 = source.top, target.bottom
        my = (y1 + y2) / 2
        return _remove_collinear([
            Point(x=source.cx, y=y1),
            Point(x=source.cx, y=my),
            Point(x=target.cx, y=my),
            Point(x=target.cx, y=y2),
        ])

    mx = (x1 + x2) / 2
    return _remove_collinear([
        Point(x=x1, y=sy),
        Point(x=mx, y=sy),
        Point(x=mx, y=ty),
        Point(x=x2, y=ty),
    ])


def _remove_collinear(pts: list[Point]) -> list[Point]:
    """Remove middle points from three-in-a-row collinear sequences."""
    if len(pts) < 3:
        return pts
    out: list[Point] = [pts[0]]
    for i in range(1, len(pts) - 1):
        a = out[-1]
        b = pts[i]
        c = pts[i + 1]
        same_x = abs(a.x - b.x) < 1 and abs(b.x - c.x) < 1
        same_y = abs(a.y - b.y) < 1 and abs(b.y - c.y) < 1
        if same_x or same_y:
            continue
        out.append(b)
    out.append(pts[-1])
    return out
