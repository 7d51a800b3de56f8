from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Protocol, Union

from .types import BoxGeometry, EntityKind, ParseErrorRecord, Point, RefGeometry, TokenRange

if TYPE_CHECKING:
    from .schema.types import Database

# ============================================================================
# Boundaries to the collaborators this package does not implement:
# the text parser, the text editor widget and the shape renderer.
# ============================================================================

# parse(text, format) -> Database; raises on invalid text
ParseFn = Callable[[str, str], "Database"]


class EditorPort(Protocol):
    """What the diagram needs from the text editor widget."""

    def highlight_token_range(self, token: TokenRange) -> None:
        """Move the editor selection to ``token`` and mark it."""

    def clear_annotations(self) -> None:
        """Remove error markers and gutter annotations."""

    def publish_parse_error(self, record: ParseErrorRecord | None) -> None:
        """Show ``record`` inline, or clear the error when ``None``."""


@dataclass(frozen=True, slots=True)
class DiagramElement:
    """Something on the diagram a user can point at.

    ``field`` narrows a table element to one of its columns.
    """

    kind: EntityKind
    id: str
    field: str | None = None


Geometry = Union[BoxGeometry, RefGeometry]


@dataclass(frozen=True, slots=True)
class RenderItem:
    """One entity for the renderer to draw, in diagram space."""

    element: DiagramElement
    geometry: Geometry
    highlighted: bool


@dataclass(frozen=True, slots=True)
class Tooltip:
    """Hover card state for the renderer; ``position`` is in diagram space."""

    element: DiagramElement | None = None
    position: Point = field(default_factory=lambda: Point(0.0, 0.0))
    show: bool = False
