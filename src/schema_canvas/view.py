from __future__ import annotations

from dataclasses import replace
from typing import Callable

from .events import ListenerSet
from .layout import auto_layout, route_refs, scale_to_fit
from .ports import DiagramElement, EditorPort, Geometry, ParseFn, RenderItem, Tooltip
from .registry import EntityLayoutRegistry
from .scheduling import Scheduler
from .schema.types import Database, Schema
from .selection import SelectionBridge
from .sync import SchemaSyncPipeline
from .types import (
    BoxGeometry,
    DiagramOptions,
    ParseErrorRecord,
    Point,
    RefGeometry,
    TokenPosition,
    TokenRange,
    merge_options,
)
from .viewport import ViewportTransform, ZoomControl

# Zoom factor per wheel notch
WHEEL_ZOOM_FACTOR = 1.1


class DiagramView:
    """One open diagram: the single owner of viewport, layout, selection and sync.

    Hosts forward UI events here (text edits, drags, wheel, clicks) and
    read ``frame()`` to draw.
    """

    def __init__(
        self,
        editor: EditorPort,
        parse: ParseFn | None = None,
        scheduler: Scheduler | None = None,
        options: DiagramOptions | None = None,
        width: float = 0.0,
        height: float = 0.0,
    ) -> None:
        self.options = merge_options(options)
        self.zoom_control = ZoomControl.from_options(self.options)
        self.viewport = ViewportTransform(width=width, height=height)
        self.registry = EntityLayoutRegistry(self.options)
        self.pipeline = SchemaSyncPipeline(self.registry, editor, parse, scheduler, self.options)
        self.selection = SelectionBridge(lambda: self.pipeline.schema, editor)
        self._tooltip = Tooltip()
        self._tooltip_listeners: ListenerSet[Tooltip] = ListenerSet()
        self.pipeline.add_listener(self._on_synced)

    @property
    def schema(self) -> Schema | None:
        return self.pipeline.schema

    @property
    def loaded(self) -> bool:
        return self.pipeline.database is not None

    @property
    def error(self) -> ParseErrorRecord | None:
        return self.pipeline.error

    @property
    def sub_grid_size(self) -> float:
        return self.options.grid_size / self.options.grid_divisions

    # --- text ---

    def on_content_changed(self, text: str) -> None:
        self.pipeline.on_content_changed(text)

    def load(self, text: str) -> bool:
        return self.pipeline.load(text)

    def _on_synced(self, database: Database) -> None:
        route_refs(self.registry, database.schemas[0])
        self.selection.revalidate()
        target = self._tooltip.element
        if target is not None and self.selection.element_range(target) is None:
            self.hide_tooltip()

    # --- rendering ---

    def frame(self) -> list[RenderItem]:
        """Geometry and highlight state of every entity, groups first so tables draw on top."""
        schema = self.schema
        if schema is None:
            return []
        highlight = self.selection.highlight
        items: list[RenderItem] = []
        for group in schema.table_groups:
            items.append(self._item(DiagramElement("tableGroup", group.id), highlight))
        for table in schema.tables:
            items.append(self._item(DiagramElement("table", table.id), highlight))
        for ref in schema.refs:
            items.append(self._item(DiagramElement("ref", ref.id), highlight))
        return items

    def _item(self, element: DiagramElement, highlight: DiagramElement | None) -> RenderItem:
        highlighted = (
            highlight is not None
            and highlight.kind == element.kind
            and highlight.id == element.id
        )
        return RenderItem(element, _snapshot(self.registry.get(element.kind, element.id)), highlighted)

    # --- layout ---

    def auto_layout(self, measure: bool = False) -> bool:
        return auto_layout(self.registry, self.schema, self.options, measure=measure)

    def scale_to_fit(self) -> bool:
        return scale_to_fit(self.viewport, self.registry, self.schema, self.options)

    def drag_table(self, table_id: str, x: float, y: float) -> BoxGeometry:
        """Move a table (diagram space, grid-snapped) and re-route its auto refs."""
        box = self.registry.move_table(table_id, x, y)
        if self.schema is not None:
            route_refs(self.registry, self.schema)
        return box

    def drag_ref_vertices(self, ref_id: str, vertices: list[Point]) -> None:
        """Pin a user-drawn route; auto-layout leaves it alone from now on."""
        current = self.registry.get_ref(ref_id)
        self.registry.set(
            "ref", ref_id, RefGeometry(endpoints=list(current.endpoints), vertices=list(vertices), auto=False)
        )

    def reset_ref(self, ref_id: str) -> None:
        """Hand a ref back to automatic routing."""
        current = self.registry.get_ref(ref_id)
        self.registry.set("ref", ref_id, RefGeometry(endpoints=list(current.endpoints), auto=True))
        if self.schema is not None:
            route_refs(self.registry, self.schema)

    # --- viewport ---

    def resize(self, width: float, height: float) -> None:
        self.viewport.resize(width, height)

    def pan_by(self, dx: float, dy: float) -> None:
        self.viewport.pan_by(dx, dy)

    def wheel(self, steps: float, at: Point) -> None:
        """Zoom by wheel notches around the screen point ``at``."""
        zoom = self.zoom_control.clamp_zoom(self.viewport.zoom * WHEEL_ZOOM_FACTOR ** steps)
        self.viewport.zoom_at(zoom, at)

    @property
    def zoom_percent(self) -> int:
        return self.zoom_control.to_percent(self.viewport.zoom)

    def set_zoom_percent(self, percent: float) -> None:
        self.viewport.set_zoom(self.zoom_control.from_percent(percent))

    # --- selection ---

    def double_click(self, element: DiagramElement) -> TokenRange | None:
        return self.selection.element_double_clicked(element)

    def cursor_moved(self, row: int, col: int) -> DiagramElement | None:
        return self.selection.cursor_moved(TokenPosition(row, col))

    # --- tooltip ---

    @property
    def tooltip(self) -> Tooltip:
        pos = self._tooltip.position
        return replace(self._tooltip, position=Point(pos.x, pos.y))

    def show_tooltip(self, element: DiagramElement, at: Point) -> None:
        """Show the hover card for ``element`` anchored at ``at`` (diagram space)."""
        self._set_tooltip(Tooltip(element=element, position=Point(at.x, at.y), show=True))

    def hide_tooltip(self) -> None:
        if self._tooltip.show:
            self._set_tooltip(Tooltip())

    def add_tooltip_listener(self, callback: Callable[[Tooltip], None]) -> Callable[[], None]:
        return self._tooltip_listeners.add(callback)

    def _set_tooltip(self, tooltip: Tooltip) -> None:
        self._tooltip = tooltip
        self._tooltip_listeners.notify(tooltip)


def _snapshot(record: Geometry) -> Geometry:
    """Copy of a registry record, so renderers never write layout state."""
    if isinstance(record, RefGeometry):
        return RefGeometry(
            endpoints=list(record.endpoints),
            vertices=[Point(p.x, p.y) for p in record.vertices],
            auto=record.auto,
        )
    return replace(record)
