from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# ============================================================================
# Geometry primitives -- diagram space unless stated otherwise
# ============================================================================

EntityKind = Literal["table", "tableGroup", "ref"]

ENTITY_KINDS: tuple[EntityKind, ...] = ("table", "tableGroup", "ref")


@dataclass(slots=True)
class Point:
    x: float
    y: float


@dataclass(slots=True)
class BoxGeometry:
    """Position and size of a table or table group box."""

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

    def overlaps(self, other: BoxGeometry) -> bool:
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )

    def contains(self, other: BoxGeometry) -> bool:
        return (
            self.x <= other.x
            and self.y <= other.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )


@dataclass(frozen=True, slots=True)
class EntityAnchor:
    """One end of a relationship: a table, optionally narrowed to a field."""

    table: str
    field: str | None = None


@dataclass(slots=True)
class RefGeometry:
    """Routing of a relationship line.

    ``auto`` means the vertices are computed by the layout engine; a
    user-dragged route has ``auto=False`` and is left alone by auto-layout.
    """

    endpoints: list[EntityAnchor] = field(default_factory=list)
    vertices: list[Point] = field(default_factory=list)
    auto: bool = True


# ============================================================================
# Source text positions -- 0-based rows and columns
# ============================================================================


@dataclass(frozen=True, slots=True, order=True)
class TokenPosition:
    row: int
    col: int


@dataclass(frozen=True, slots=True)
class TokenRange:
    """Half-open ``[start, end)`` span of source text."""

    start: TokenPosition
    end: TokenPosition

    @classmethod
    def of(cls, start_row: int, start_col: int, end_row: int, end_col: int) -> TokenRange:
        return cls(TokenPosition(start_row, start_col), TokenPosition(end_row, end_col))

    def covers(self, other: TokenRange) -> bool:
        """True when ``other`` lies inside this range.

        A caret (empty range) sitting right after the last character still
        counts as inside, so clicking at the end of a token finds it.
        """
        if other.start == other.end:
            return self.start <= other.start <= self.end
        return self.start <= other.start and other.end <= self.end

    def span(self) -> tuple[int, int]:
        """Sort key that orders narrower ranges first."""
        return (self.end.row - self.start.row, self.end.col - self.start.col)


@dataclass(frozen=True, slots=True)
class ParseErrorRecord:
    """The single active parse failure published to the editor."""

    location: TokenRange
    kind: str
    message: str


# ============================================================================
# Diagram options -- user-facing configuration
# ============================================================================


@dataclass(slots=True)
class DiagramOptions:
    format: str | None = None
    # Zoom slider bounds, in percent
    zoom_min_percent: int | None = None
    zoom_max_percent: int | None = None
    zoom_step: int | None = None
    # Fraction of the viewport kept free on each side by scale-to-fit
    fit_margin: float | None = None
    # Quiet period before an edit is parsed, in seconds
    debounce_seconds: float | None = None
    grid_size: float | None = None
    grid_divisions: int | None = None
    grid_snap: float | None = None
    node_spacing: float | None = None
    layer_spacing: float | None = None
    component_spacing: float | None = None
    group_padding: float | None = None
    table_width: float | None = None
    table_height: float | None = None


OPTION_DEFAULTS = {
    "format": "dbml",
    "zoom_min_percent": 10,
    "zoom_max_percent": 200,
    "zoom_step": 1,
    "fit_margin": 0.05,
    "debounce_seconds": 0.5,
    "grid_size": 100,
    "grid_divisions": 10,
    "grid_snap": 5,
    "node_spacing": 50,
    "layer_spacing": 120,
    "component_spacing": 80,
    "group_padding": 20,
    "table_width": 200,
    "table_height": 32,
}


def merge_options(options: DiagramOptions | None = None) -> DiagramOptions:
    """Return a copy of ``options`` with every unset field filled from the defaults."""
    merged = DiagramOptions()
    for name, default in OPTION_DEFAULTS.items():
        value = getattr(options, name) if options is not None else None
        setattr(merged, name, default if value is None else value)
    if merged.zoom_min_percent <= 0 or merged.zoom_min_percent > merged.zoom_max_percent:
        raise ValueError(
            f"Invalid zoom bounds: {merged.zoom_min_percent}%..{merged.zoom_max_percent}%"
        )
    if not 0 <= merged.fit_margin < 0.5:
        raise ValueError(f"fit_margin must be in [0, 0.5), got {merged.fit_margin}")
    return merged
