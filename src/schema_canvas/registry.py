from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping

from .events import ListenerSet
from .ports import Geometry
from .types import (
    ENTITY_KINDS,
    BoxGeometry,
    DiagramOptions,
    EntityKind,
    RefGeometry,
    merge_options,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Entity layout registry
#
# Geometry records for tables, table groups and refs, keyed by kind and id.
# Records are created on first access and stay put until reconciliation
# drops an entity that vanished from the schema.
# ============================================================================

# (kind, id) of the record that changed
LayoutChange = tuple[EntityKind, str]


class EntityLayoutRegistry:
    def __init__(self, options: DiagramOptions | None = None) -> None:
        self._options = merge_options(options)
        self._records: dict[str, dict[str, Geometry]] = {kind: {} for kind in ENTITY_KINDS}
        self._listeners: ListenerSet[LayoutChange] = ListenerSet()

    def _kind(self, kind: str) -> dict[str, Geometry]:
        try:
            return self._records[kind]
        except KeyError:
            raise KeyError(f"Unknown entity kind: {kind!r}") from None

    def _default(self, kind: str) -> Geometry:
        if kind == "ref":
            return RefGeometry()
        return BoxGeometry(x=0.0, y=0.0, width=self._options.table_width, height=self._options.table_height)

    # --- access ---

    def get(self, kind: EntityKind, entity_id: str) -> Geometry:
        """Return the record for ``entity_id``, inserting a default one if missing."""
        records = self._kind(kind)
        record = records.get(entity_id)
        if record is None:
            record = self._default(kind)
            records[entity_id] = record
        return record

    def get_box(self, kind: EntityKind, entity_id: str) -> BoxGeometry:
        record = self.get(kind, entity_id)
        if not isinstance(record, BoxGeometry):
            raise TypeError(f"{kind} {entity_id!r} has no box geometry")
        return record

    def get_ref(self, ref_id: str) -> RefGeometry:
        record = self.get("ref", ref_id)
        if not isinstance(record, RefGeometry):
            raise TypeError(f"ref {ref_id!r} has no ref geometry")
        return record

    def set(self, kind: EntityKind, entity_id: str, record: Geometry) -> None:
        self._kind(kind)[entity_id] = record
        self._listeners.notify((kind, entity_id))

    def remove(self, kind: EntityKind, entity_id: str) -> None:
        if self._kind(kind).pop(entity_id, None) is not None:
            self._listeners.notify((kind, entity_id))

    def ids(self, kind: EntityKind) -> list[str]:
        return list(self._kind(kind))

    def __contains__(self, key: LayoutChange) -> bool:
        kind, entity_id = key
        return entity_id in self._kind(kind)

    # --- reconciliation ---

    def reconcile(self, ids_by_kind: Mapping[EntityKind, Iterable[str]]) -> dict[EntityKind, list[str]]:
        """Drop records whose ids are absent from ``ids_by_kind``.

        Survivors keep their geometry; new ids are created lazily by ``get``.
        Returns the removed ids per kind.
        """
        removed: dict[EntityKind, list[str]] = {}
        for kind in ENTITY_KINDS:
            keep = set(ids_by_kind.get(kind, ()))
            gone = [entity_id for entity_id in self._kind(kind) if entity_id not in keep]
            for entity_id in gone:
                self.remove(kind, entity_id)
            if gone:
                removed[kind] = gone
        if removed:
            logger.debug("Reconciliation removed %s", removed)
        return removed

    # --- interaction ---

    def move_table(self, table_id: str, x: float, y: float) -> BoxGeometry:
        """Drag a table to (x, y), snapped to the grid's snap increment."""
        snap = self._options.grid_snap
        box = self.get_box("table", table_id)
        if snap:
            x = round(x / snap) * snap
            y = round(y / snap) * snap
        moved = BoxGeometry(x=x, y=y, width=box.width, height=box.height)
        self.set("table", table_id, moved)
        return moved

    def add_listener(self, callback: Callable[[LayoutChange], None]) -> Callable[[], None]:
        return self._listeners.add(callback)
