from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

from .events import ListenerSet
from .types import DiagramOptions, Point, merge_options

# ============================================================================
# Viewport transform
#
# Maps diagram space to screen space:
#
#   screen = zoom * (diagram + pan)
#
# The matrix is kept in SVG order (a, b, c, d, e, f):
#
#   x' = a*x + c*y + e
#   y' = b*x + d*y + f
# ============================================================================

Matrix = tuple[float, float, float, float, float, float]

IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


def apply_matrix(m: Matrix, pt: Point) -> Point:
    a, b, c, d, e, f = m
    return Point(x=a * pt.x + c * pt.y + e, y=b * pt.x + d * pt.y + f)


def invert_matrix(m: Matrix) -> Matrix:
    """Invert a 2x3 affine matrix."""
    a, b, c, d, e, f = m
    det = a * d - b * c
    if det == 0 or not math.isfinite(det):
        raise ValueError(f"Matrix is not invertible: {m}")
    return (
        d / det,
        -b / det,
        -c / det,
        a / det,
        (c * f - d * e) / det,
        (b * e - a * f) / det,
    )


@dataclass(frozen=True, slots=True)
class _Matrices:
    """The CTM and its inverse, always replaced together."""

    ctm: Matrix
    inverse: Matrix


class ViewportTransform:
    """Zoom and pan of one diagram view, with cached forward/inverse matrices."""

    def __init__(
        self,
        zoom: float = 1.0,
        pan: Point | None = None,
        width: float = 0.0,
        height: float = 0.0,
    ) -> None:
        self._zoom = 1.0
        self._pan = Point(0.0, 0.0)
        self._matrices = _Matrices(IDENTITY, IDENTITY)
        self.width = width
        self.height = height
        self._listeners: ListenerSet[ViewportTransform] = ListenerSet()
        self._update(zoom, pan if pan is not None else Point(0.0, 0.0), notify=False)

    # --- state ---

    @property
    def zoom(self) -> float:
        return self._zoom

    @property
    def pan(self) -> Point:
        return Point(self._pan.x, self._pan.y)

    @property
    def ctm(self) -> Matrix:
        return self._matrices.ctm

    @property
    def inverse_ctm(self) -> Matrix:
        return self._matrices.inverse

    # --- mutation ---

    def set_zoom(self, zoom: float) -> None:
        self._update(zoom, self._pan)

    def set_pan(self, pan: Point) -> None:
        self._update(self._zoom, pan)

    def set_view(self, zoom: float, pan: Point) -> None:
        """Replace zoom and pan in one step."""
        self._update(zoom, pan)

    def pan_by(self, dx: float, dy: float) -> None:
        """Shift the view by a drag distance measured in screen pixels."""
        self._update(self._zoom, Point(self._pan.x + dx / self._zoom, self._pan.y + dy / self._zoom))

    def zoom_at(self, zoom: float, screen_pt: Point) -> None:
        """Zoom while keeping the diagram point under ``screen_pt`` in place."""
        anchor = self.screen_to_diagram(screen_pt)
        self._update(zoom, Point(screen_pt.x / zoom - anchor.x, screen_pt.y / zoom - anchor.y))

    def resize(self, width: float, height: float) -> None:
        self.width = width
        self.height = height
        self._listeners.notify(self)

    def _update(self, zoom: float, pan: Point, notify: bool = True) -> None:
        if not math.isfinite(zoom) or zoom <= 0:
            raise ValueError(f"Zoom must be a positive number, got {zoom}")
        if not (math.isfinite(pan.x) and math.isfinite(pan.y)):
            raise ValueError(f"Pan must be finite, got ({pan.x}, {pan.y})")

        ctm: Matrix = (zoom, 0.0, 0.0, zoom, zoom * pan.x, zoom * pan.y)
        matrices = _Matrices(ctm, invert_matrix(ctm))

        # Nothing is assigned until both matrices exist
        self._zoom = zoom
        self._pan = Point(pan.x, pan.y)
        self._matrices = matrices
        if notify:
            self._listeners.notify(self)

    # --- conversion ---

    def screen_to_diagram(self, pt: Point) -> Point:
        return apply_matrix(self._matrices.inverse, pt)

    def diagram_to_screen(self, pt: Point) -> Point:
        return apply_matrix(self._matrices.ctm, pt)

    def add_listener(self, callback: Callable[[ViewportTransform], None]) -> Callable[[], None]:
        return self._listeners.add(callback)


# ============================================================================
# Zoom slider -- integer percentages
# ============================================================================


@dataclass(frozen=True, slots=True)
class ZoomControl:
    min_percent: int = 10
    max_percent: int = 200
    step: int = 1

    @classmethod
    def from_options(cls, options: DiagramOptions | None = None) -> ZoomControl:
        opts = merge_options(options)
        return cls(opts.zoom_min_percent, opts.zoom_max_percent, opts.zoom_step)

    @property
    def min_zoom(self) -> float:
        return self.min_percent / 100

    @property
    def max_zoom(self) -> float:
        return self.max_percent / 100

    def clamp_zoom(self, zoom: float) -> float:
        return min(max(zoom, self.min_zoom), self.max_zoom)

    def to_percent(self, zoom: float) -> int:
        return round(zoom * 100)

    def from_percent(self, percent: float) -> float:
        """Slider value -> zoom factor, snapped to the step and clamped."""
        snapped = self.min_percent + round((percent - self.min_percent) / self.step) * self.step
        snapped = min(max(snapped, self.min_percent), self.max_percent)
        return snapped / 100
