"""schema-canvas -- Interactive entity-relationship diagrams kept in sync with schema source text."""

from __future__ import annotations

from .types import (
    BoxGeometry,
    DiagramOptions,
    EntityAnchor,
    ParseErrorRecord,
    Point,
    RefGeometry,
    TokenPosition,
    TokenRange,
    merge_options,
)
from .ports import DiagramElement, EditorPort, RenderItem, Tooltip
from .viewport import ViewportTransform, ZoomControl
from .registry import EntityLayoutRegistry
from .layout import auto_layout, scale_to_fit
from .selection import SelectionBridge
from .scheduling import AsyncioScheduler, ManualScheduler
from .sync import SchemaSyncPipeline, SyncState
from .view import DiagramView
from .schema import SchemaParseError, parse

__all__ = [
    "AsyncioScheduler",
    "BoxGeometry",
    "DiagramElement",
    "DiagramOptions",
    "DiagramView",
    "EditorPort",
    "EntityAnchor",
    "EntityLayoutRegistry",
    "ManualScheduler",
    "ParseErrorRecord",
    "Point",
    "RefGeometry",
    "RenderItem",
    "SchemaParseError",
    "SchemaSyncPipeline",
    "SelectionBridge",
    "SyncState",
    "TokenPosition",
    "TokenRange",
    "Tooltip",
    "ViewportTransform",
    "ZoomControl",
    "auto_layout",
    "merge_options",
    "parse",
    "scale_to_fit",
]
