"""Tests for auto-layout and scale-to-fit.

These call the layout functions directly against a registry and inspect
the boxes they write, rather than going through a diagram view.
"""
from __future__ import annotations

import itertools
import math

import pytest

from schema_canvas import layout
from schema_canvas.layout import auto_layout, compute_layout, scale_to_fit
from schema_canvas.registry import EntityLayoutRegistry
from schema_canvas.schema.dbml import parse_dbml
from schema_canvas.types import BoxGeometry, DiagramOptions, Point, RefGeometry, merge_options
from schema_canvas.viewport import ViewportTransform


def load(text: str):
    """Helper: parse and normalize DBML, return the drawn schema."""
    return parse_dbml(text).normalize().schema


SHOP = (
    "Table users {\n  id int [pk]\n  name varchar\n}\n"
    "Table orders {\n  id int [pk]\n  user_id int [ref: > users.id]\n}\n"
    "Table items {\n  id int [pk]\n  order_id int [ref: > orders.id]\n  product_id int [ref: > products.id]\n}\n"
    "Table products {\n  id int [pk]\n}\n"
    "Table audit_log {\n  id int\n}\n"
    "Table settings {\n  key varchar\n}\n"
)

GROUPED = SHOP + "TableGroup sales {\n  orders\n  items\n}\n"


def table_boxes(registry, schema):
    return {t.id: registry.get_box("table", t.id) for t in schema.tables}


def assert_finite(box: BoxGeometry):
    for v in (box.x, box.y, box.width, box.height):
        assert math.isfinite(v)


# ============================================================================
# Auto-layout
# ============================================================================


class TestAutoLayout:
    def test_places_every_table_without_overlap(self):
        schema = load(SHOP)
        registry = EntityLayoutRegistry()
        assert auto_layout(registry, schema)

        boxes = table_boxes(registry, schema)
        assert len(boxes) == 6
        for box in boxes.values():
            assert_finite(box)
        for (a, box_a), (b, box_b) in itertools.combinations(boxes.items(), 2):
            assert not box_a.overlaps(box_b), f"{a} overlaps {b}"

    def test_referenced_table_is_left_of_referencing_table(self):
        schema = load(SHOP)
        registry = EntityLayoutRegistry()
        auto_layout(registry, schema)
        boxes = table_boxes(registry, schema)
        assert boxes["users"].right <= boxes["orders"].x
        assert boxes["orders"].right <= boxes["items"].x

    def test_groups_contain_their_members(self):
        schema = load(GROUPED)
        registry = EntityLayoutRegistry()
        assert auto_layout(registry, schema)

        group = registry.get_box("tableGroup", "sales")
        assert_finite(group)
        boxes = table_boxes(registry, schema)
        assert group.contains(boxes["orders"])
        assert group.contains(boxes["items"])
        for tid in ("users", "products", "audit_log", "settings"):
            assert not group.overlaps(boxes[tid]), tid
        for (a, box_a), (b, box_b) in itertools.combinations(boxes.items(), 2):
            assert not box_a.overlaps(box_b), f"{a} overlaps {b}"

    def test_every_group_contains_all_of_its_tables(self):
        schema = load(
            SHOP
            + "TableGroup sales {\n  orders\n  items\n}\n"
            + "TableGroup catalog {\n  products\n}\n"
            + "TableGroup ops {\n  audit_log\n  settings\n  users\n}\n"
        )
        registry = EntityLayoutRegistry()
        assert auto_layout(registry, schema)
        for group in schema.table_groups:
            box = registry.get_box("tableGroup", group.id)
            for tid in group.table_ids:
                assert box.contains(registry.get_box("table", tid)), f"{tid} outside {group.id}"
        groups = [registry.get_box("tableGroup", g.id) for g in schema.table_groups]
        for a, b in itertools.combinations(groups, 2):
            assert not a.overlaps(b)

    def test_repeated_member_gets_one_cell(self):
        schema = load("Table a {\n  id int\n}\nTableGroup g {\n  a\n}\n")
        schema.table_groups[0].table_ids = ["a", "a"]
        registry = EntityLayoutRegistry()
        auto_layout(registry, schema)
        group = registry.get_box("tableGroup", "g")
        # One 200x32 table plus padding and header
        assert (group.width, group.height) == (240, 100)

    def test_empty_group_gets_a_box(self):
        schema = load("Table a {\n  id int\n}\nTableGroup empty {\n}\n")
        registry = EntityLayoutRegistry()
        assert auto_layout(registry, schema)
        group = registry.get_box("tableGroup", "empty")
        assert not group.overlaps(registry.get_box("table", "a"))

    def test_is_deterministic(self):
        results = []
        for _ in range(3):
            registry = EntityLayoutRegistry()
            schema = load(GROUPED)
            auto_layout(registry, schema)
            results.append((table_boxes(registry, schema), registry.get_box("tableGroup", "sales")))
        assert results[0] == results[1] == results[2]

    def test_uses_current_sizes(self):
        schema = load(SHOP)
        registry = EntityLayoutRegistry()
        registry.set("table", "users", BoxGeometry(0, 0, 420, 300))
        auto_layout(registry, schema)
        users = registry.get_box("table", "users")
        assert (users.width, users.height) == (420, 300)
        for tid, box in table_boxes(registry, schema).items():
            if tid != "users":
                assert not box.overlaps(users)

    def test_measure_sizes_tables_by_their_fields(self):
        schema = load(SHOP)
        registry = EntityLayoutRegistry()
        auto_layout(registry, schema, measure=True)
        items = registry.get_box("table", "items")
        assert items.height == 32 + 3 * 22
        assert items.width >= 200

    def test_cycles_and_self_refs_are_laid_out(self):
        schema = load(
            "Table a {\n  id int\n  b_id int [ref: > b.id]\n  parent_id int [ref: > a.id]\n}\n"
            "Table b {\n  id int\n  a_id int [ref: > a.id]\n}\n"
        )
        registry = EntityLayoutRegistry()
        assert auto_layout(registry, schema)
        assert not registry.get_box("table", "a").overlaps(registry.get_box("table", "b"))

    def test_routes_auto_refs_between_new_boxes(self):
        schema = load(SHOP)
        registry = EntityLayoutRegistry()
        auto_layout(registry, schema, measure=True)
        ref = registry.get_ref("orders.user_id-users.id")
        assert ref.auto
        assert [(a.table, a.field) for a in ref.endpoints] == [("orders", "user_id"), ("users", "id")]
        orders = registry.get_box("table", "orders")
        users = registry.get_box("table", "users")
        # Leaves orders from its left side at the user_id row
        assert ref.vertices[0] == Point(orders.x, orders.y + 32 + 22 + 11)
        assert ref.vertices[-1].x == users.right

    def test_user_routed_refs_are_kept(self):
        schema = load(SHOP)
        registry = EntityLayoutRegistry()
        pinned = RefGeometry(vertices=[Point(1, 2), Point(3, 2)], auto=False)
        registry.set("ref", "orders.user_id-users.id", pinned)
        auto_layout(registry, schema)
        assert registry.get_ref("orders.user_id-users.id") is pinned

    def test_grandalf_vertices_carry_block_width_and_height(self, monkeypatch):
        sizes = []

        class RecordingView(layout._VertexView):
            def __init__(self, w=60, h=36):
                super().__init__(w, h)
                sizes.append((w, h))

        monkeypatch.setattr(layout, "_VertexView", RecordingView)
        registry = EntityLayoutRegistry()
        registry.set("table", "wide", BoxGeometry(0, 0, 300, 50))
        registry.set("table", "plain", BoxGeometry(0, 0, 200, 32))
        assert auto_layout(registry, None)
        assert sorted(sizes) == [(200, 32), (300, 50)]

    def test_registry_tables_without_schema_are_placed(self):
        registry = EntityLayoutRegistry()
        for name in ("a", "b", "c"):
            registry.get("table", name)
        assert auto_layout(registry, None)
        boxes = [registry.get_box("table", n) for n in ("a", "b", "c")]
        for a, b in itertools.combinations(boxes, 2):
            assert not a.overlaps(b)


class TestAutoLayoutNoOps:
    def test_no_tables_leaves_registry_unchanged(self):
        registry = EntityLayoutRegistry()
        assert not auto_layout(registry, load(""))
        assert registry.ids("table") == []

    def test_degenerate_size_is_a_no_op(self):
        registry = EntityLayoutRegistry()
        registry.set("table", "a", BoxGeometry(5, 5, 0, 10))
        registry.set("table", "b", BoxGeometry(50, 50, 100, 10))
        assert not auto_layout(registry, None)
        assert registry.get_box("table", "a") == BoxGeometry(5, 5, 0, 10)
        assert registry.get_box("table", "b") == BoxGeometry(50, 50, 100, 10)

    def test_nan_size_is_rejected_by_compute_layout(self):
        registry = EntityLayoutRegistry()
        registry.set("table", "a", BoxGeometry(0, 0, float("nan"), 10))
        with pytest.raises(ValueError):
            compute_layout(registry, None, merge_options())


# ============================================================================
# Scale-to-fit
# ============================================================================


def registry_with(*boxes):
    registry = EntityLayoutRegistry()
    for i, box in enumerate(boxes):
        registry.set("table", f"t{i}", box)
    return registry


class TestScaleToFit:
    def test_frames_three_tables_inside_the_margin(self):
        registry = registry_with(
            BoxGeometry(0, 0, 200, 32),
            BoxGeometry(300, 0, 200, 32),
            BoxGeometry(0, 100, 200, 32),
        )
        viewport = ViewportTransform(width=800, height=600)
        assert scale_to_fit(viewport, registry, options=DiagramOptions(fit_margin=0.05))

        top_left = viewport.diagram_to_screen(Point(0, 0))
        bottom_right = viewport.diagram_to_screen(Point(500, 132))
        eps = 1e-6
        assert 40 - eps <= top_left.x and bottom_right.x <= 760 + eps
        assert 30 - eps <= top_left.y and bottom_right.y <= 570 + eps
        # Width is the binding dimension, so it fills the margin exactly
        assert top_left.x == pytest.approx(40)
        assert bottom_right.x == pytest.approx(760)
        assert viewport.zoom == pytest.approx(1.44)

    def test_centers_the_bounding_box(self):
        registry = registry_with(BoxGeometry(100, 100, 400, 100))
        viewport = ViewportTransform(width=1000, height=1000)
        scale_to_fit(viewport, registry)
        center = viewport.diagram_to_screen(Point(300, 150))
        assert center.x == pytest.approx(500)
        assert center.y == pytest.approx(500)

    def test_clamps_to_max_zoom(self):
        registry = registry_with(BoxGeometry(0, 0, 10, 10))
        viewport = ViewportTransform(width=800, height=600)
        scale_to_fit(viewport, registry)
        assert viewport.zoom == 2.0
        center = viewport.diagram_to_screen(Point(5, 5))
        assert center.x == pytest.approx(400)
        assert center.y == pytest.approx(300)

    def test_clamps_to_min_zoom(self):
        registry = registry_with(BoxGeometry(0, 0, 100_000, 100))
        viewport = ViewportTransform(width=800, height=600)
        scale_to_fit(viewport, registry)
        assert viewport.zoom == 0.1

    def test_includes_table_groups(self):
        registry = registry_with(BoxGeometry(0, 0, 200, 32))
        registry.set("tableGroup", "g", BoxGeometry(-300, 0, 100, 100))
        viewport = ViewportTransform(width=800, height=600)
        scale_to_fit(viewport, registry)
        left = viewport.diagram_to_screen(Point(-300, 0))
        assert left.x >= 40 - 1e-6

    def test_materializes_schema_tables(self):
        schema = load("Table a {\n  id int\n}")
        registry = EntityLayoutRegistry()
        viewport = ViewportTransform(width=800, height=600)
        assert scale_to_fit(viewport, registry, schema)
        assert ("table", "a") in registry

    def test_zero_entities_leave_viewport_unchanged(self):
        viewport = ViewportTransform(zoom=1.5, pan=Point(3, 4), width=800, height=600)
        before = (viewport.zoom, viewport.pan, viewport.ctm)
        assert not scale_to_fit(viewport, EntityLayoutRegistry())
        assert (viewport.zoom, viewport.pan, viewport.ctm) == before

    def test_unknown_viewport_size_is_a_no_op(self):
        registry = registry_with(BoxGeometry(0, 0, 200, 32))
        viewport = ViewportTransform()
        assert not scale_to_fit(viewport, registry)
        assert viewport.zoom == 1.0

    def test_non_finite_geometry_is_a_no_op(self):
        registry = registry_with(BoxGeometry(float("inf"), 0, 200, 32))
        viewport = ViewportTransform(width=800, height=600)
        assert not scale_to_fit(viewport, registry)
        assert viewport.pan == Point(0, 0)

    def test_respects_custom_zoom_bounds(self):
        registry = registry_with(BoxGeometry(0, 0, 10, 10))
        viewport = ViewportTransform(width=800, height=600)
        scale_to_fit(viewport, registry, options=DiagramOptions(zoom_max_percent=400))
        assert viewport.zoom == 4.0
