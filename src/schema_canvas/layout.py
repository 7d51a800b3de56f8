from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from grandalf.graphs import Edge, Graph, Vertex
from grandalf.layouts import SugiyamaLayout

from .registry import EntityLayoutRegistry
from .routing import NodeRect, route_orthogonal
from .schema.types import Schema
from .styles import GROUP_HEADER_HEIGHT, TABLE_HEADER_HEIGHT, TABLE_ROW_HEIGHT, measure_table
from .types import BoxGeometry, DiagramOptions, EntityAnchor, EntityKind, Point, RefGeometry, merge_options
from .viewport import ViewportTransform, ZoomControl

logger = logging.getLogger(__name__)

# ============================================================================
# Layout algorithms
#
# Auto-layout places every table and table group without overlap:
#   1. Each table group becomes one block, its members packed in a grid
#      under a header row. Every ungrouped table is a block of its own.
#   2. grandalf's Sugiyama layering over the block graph (edges from refs)
#      decides which column each block goes in and its order in the column.
#   3. Columns are stacked left to right; connected components are packed
#      into rows, left to right.
#   4. Auto-routed refs are re-routed between the new table boxes.
#
# Scale-to-fit picks the zoom and pan that frame every box in the viewport.
# ============================================================================

BlockKey = tuple[EntityKind, str]


class _VertexView:
    """Minimal view object required by grandalf's SugiyamaLayout."""

    def __init__(self, w: float = 60, h: float = 36) -> None:
        self.w = w
        self.h = h
        # xy is set by the layout engine (center coordinates)
        self.xy = (0.0, 0.0)


@dataclass(slots=True)
class _Block:
    key: BlockKey
    width: float
    height: float
    # Member table offsets inside the block, relative to its top-left corner
    members: dict[str, BoxGeometry] = field(default_factory=dict)


@dataclass(slots=True)
class LayoutResult:
    tables: dict[str, BoxGeometry] = field(default_factory=dict)
    table_groups: dict[str, BoxGeometry] = field(default_factory=dict)


# ============================================================================
# Auto-layout
# ============================================================================


def auto_layout(
    registry: EntityLayoutRegistry,
    schema: Schema | None,
    options: DiagramOptions | None = None,
    measure: bool = False,
) -> bool:
    """Place every table and table group and re-route auto refs.

    With ``measure`` the table boxes are first resized to fit their fields.
    Returns False, leaving the registry untouched, when there is nothing to
    place or the input geometry is degenerate.
    """
    opts = merge_options(options)
    try:
        result = compute_layout(registry, schema, opts, measure)
    except (RuntimeError, ValueError) as err:
        logger.warning("Auto-layout skipped: %s", err)
        return False
    if not result.tables and not result.table_groups:
        logger.debug("Auto-layout skipped: no tables")
        return False

    for table_id, box in result.tables.items():
        registry.set("table", table_id, box)
    for group_id, box in result.table_groups.items():
        registry.set("tableGroup", group_id, box)
    if schema is not None:
        route_refs(registry, schema)

    logger.debug(
        "Auto-layout placed %d tables and %d groups",
        len(result.tables),
        len(result.table_groups),
    )
    return True


def compute_layout(
    registry: EntityLayoutRegistry,
    schema: Schema | None,
    opts: DiagramOptions,
    measure: bool = False,
) -> LayoutResult:
    """Compute new boxes without writing them. Raises ValueError on degenerate sizes."""
    # 1. Collect tables: schema order first, then anything else the registry holds
    table_ids: list[str] = [t.id for t in schema.tables] if schema else []
    table_ids += [tid for tid in registry.ids("table") if tid not in table_ids]
    if not table_ids:
        return LayoutResult()

    sizes: dict[str, tuple[float, float]] = {}
    for tid in table_ids:
        table = schema.find_table(tid) if schema else None
        if measure and table is not None:
            sizes[tid] = measure_table(table)
        else:
            box = registry.get_box("table", tid)
            sizes[tid] = (box.width, box.height)
        w, h = sizes[tid]
        if not (math.isfinite(w) and math.isfinite(h)) or w <= 0 or h <= 0:
            raise ValueError(f"table '{tid}' has degenerate size {w}x{h}")

    # 2. Build blocks
    blocks: list[_Block] = []
    block_of_table: dict[str, BlockKey] = {}
    placed: set[str] = set()
    group_ids: list[str] = [g.id for g in schema.table_groups] if schema else []
    group_ids += [gid for gid in registry.ids("tableGroup") if gid not in group_ids]

    for gid in group_ids:
        group = next((g for g in schema.table_groups if g.id == gid), None) if schema else None
        candidates = group.table_ids if group else []
        members = [tid for tid in dict.fromkeys(candidates) if tid in sizes and tid not in placed]
        block = _pack_group(("tableGroup", gid), members, sizes, opts)
        blocks.append(block)
        for tid in members:
            placed.add(tid)
            block_of_table[tid] = block.key

    for tid in table_ids:
        if tid in placed:
            continue
        w, h = sizes[tid]
        blocks.append(_Block(("table", tid), w, h))
        block_of_table[tid] = ("table", tid)

    # 3. Order blocks into columns with grandalf
    edges: list[tuple[BlockKey, BlockKey]] = []
    if schema is not None:
        for ref in schema.refs:
            if len(ref.endpoints) != 2:
                continue
            a, b = ref.endpoints
            if a.table not in block_of_table or b.table not in block_of_table:
                continue
            # Referenced ("one") side goes left of the referencing side
            if a.relation == "*" and b.relation == "1":
                a, b = b, a
            pair = (block_of_table[a.table], block_of_table[b.table])
            if pair[0] != pair[1] and pair not in edges:
                edges.append(pair)

    components = _layer_blocks(blocks, edges)

    # 4. Place columns, then pack components into rows
    by_key = {b.key: b for b in blocks}
    positions: dict[BlockKey, tuple[float, float]] = {}
    comp_frames: list[tuple[float, float, dict[BlockKey, tuple[float, float]]]] = []
    for layers in components:
        frame, comp_w, comp_h = _place_columns(layers, by_key, opts)
        comp_frames.append((comp_w, comp_h, frame))

    total_area = sum(w * h for w, h, _ in comp_frames)
    row_limit = max(max(w for w, _, _ in comp_frames), math.sqrt(total_area) * 1.5)
    x = y = row_h = 0.0
    for comp_w, comp_h, frame in comp_frames:
        if x > 0 and x + comp_w > row_limit:
            x = 0.0
            y += row_h + opts.component_spacing
            row_h = 0.0
        for key, (bx, by) in frame.items():
            positions[key] = (x + bx, y + by)
        x += comp_w + opts.component_spacing
        row_h = max(row_h, comp_h)

    # 5. Resolve absolute boxes
    result = LayoutResult()
    for block in blocks:
        bx, by = positions[block.key]
        kind, entity_id = block.key
        if kind == "table":
            result.tables[entity_id] = BoxGeometry(bx, by, block.width, block.height)
            continue
        result.table_groups[entity_id] = BoxGeometry(bx, by, block.width, block.height)
        for tid, rel in block.members.items():
            result.tables[tid] = BoxGeometry(bx + rel.x, by + rel.y, rel.width, rel.height)
    return result


def _pack_group(
    key: BlockKey,
    members: list[str],
    sizes: dict[str, tuple[float, float]],
    opts: DiagramOptions,
) -> _Block:
    """Pack member tables row-major in a near-square grid under a header."""
    pad = opts.group_padding
    if not members:
        return _Block(key, opts.table_width + pad * 2, GROUP_HEADER_HEIGHT + opts.table_height + pad * 2)

    cols = math.ceil(math.sqrt(len(members)))
    rows = math.ceil(len(members) / cols)
    col_w = [0.0] * cols
    row_h = [0.0] * rows
    for i, tid in enumerate(members):
        w, h = sizes[tid]
        col_w[i % cols] = max(col_w[i % cols], w)
        row_h[i // cols] = max(row_h[i // cols], h)

    block = _Block(key, 0.0, 0.0)
    for i, tid in enumerate(members):
        c, r = i % cols, i // cols
        x = pad + sum(col_w[:c]) + pad * c
        y = GROUP_HEADER_HEIGHT + pad + sum(row_h[:r]) + pad * r
        w, h = sizes[tid]
        block.members[tid] = BoxGeometry(x, y, w, h)
    block.width = pad * 2 + sum(col_w) + pad * (cols - 1)
    block.height = GROUP_HEADER_HEIGHT + pad * 2 + sum(row_h) + pad * (rows - 1)
    return block


def _layer_blocks(
    blocks: list[_Block],
    edges: list[tuple[BlockKey, BlockKey]],
) -> list[list[list[BlockKey]]]:
    """Split blocks into connected components, each a list of ordered layers."""
    vertices: dict[BlockKey, Vertex] = {}
    for block in blocks:
        v = Vertex(block.key)
        v.view = _VertexView(block.width, block.height)
        vertices[block.key] = v
    key_of = {id(v): key for key, v in vertices.items()}
    index_of = {block.key: i for i, block in enumerate(blocks)}

    g = Graph(list(vertices.values()), [Edge(vertices[a], vertices[b]) for a, b in edges])

    components: list[list[list[BlockKey]]] = []
    for core in g.C:
        comp_vertices = list(core.sV)
        if len(comp_vertices) == 1:
            components.append([[key_of[id(comp_vertices[0])]]])
            continue
        try:
            sug = SugiyamaLayout(core)
            sug.init_all()
            sug.draw()
        except Exception as err:
            raise RuntimeError(f"Grandalf layout failed: {err}") from err
        layers = []
        for layer in sug.layers:
            # Dummy vertices for long edges are not ours
            keys = [key_of[id(v)] for v in layer if id(v) in key_of]
            if keys:
                layers.append(keys)
        components.append(layers)

    # grandalf's component order is not tied to input order; restore it
    components.sort(key=lambda layers: min(index_of[k] for layer in layers for k in layer))
    return components


def _place_columns(
    layers: list[list[BlockKey]],
    by_key: dict[BlockKey, _Block],
    opts: DiagramOptions,
) -> tuple[dict[BlockKey, tuple[float, float]], float, float]:
    """Lay layers out as columns, each vertically centered on the tallest."""
    heights = [
        sum(by_key[k].height for k in layer) + opts.node_spacing * (len(layer) - 1)
        for layer in layers
    ]
    comp_h = max(heights)

    frame: dict[BlockKey, tuple[float, float]] = {}
    x = 0.0
    for layer, col_h in zip(layers, heights):
        col_w = max(by_key[k].width for k in layer)
        y = (comp_h - col_h) / 2
        for k in layer:
            frame[k] = (x, y)
            y += by_key[k].height + opts.node_spacing
        x += col_w + opts.layer_spacing
    return frame, x - opts.layer_spacing, comp_h


# ============================================================================
# Ref routing
# ============================================================================


def route_refs(registry: EntityLayoutRegistry, schema: Schema) -> None:
    """Recompute vertices of every auto-routed ref from its table boxes."""
    for ref in schema.refs:
        current = registry.get_ref(ref.id)
        if not current.auto or len(ref.endpoints) != 2:
            continue
        a, b = ref.endpoints
        src_box = registry.get_box("table", a.table)
        tgt_box = registry.get_box("table", b.table)
        vertices = route_orthogonal(
            NodeRect.from_box(src_box),
            NodeRect.from_box(tgt_box),
            source_y=_field_row_y(schema, a.table, a.column, src_box),
            target_y=_field_row_y(schema, b.table, b.column, tgt_box),
            self_loop=a.table == b.table,
        )
        registry.set(
            "ref",
            ref.id,
            RefGeometry(
                endpoints=[EntityAnchor(a.table, a.column), EntityAnchor(b.table, b.column)],
                vertices=vertices,
                auto=True,
            ),
        )


def _field_row_y(schema: Schema, table_id: str, column: str | None, box: BoxGeometry) -> float | None:
    """Vertical center of a field's row, if it falls inside the box."""
    table = schema.find_table(table_id)
    if table is None or column is None:
        return None
    for i, f in enumerate(table.fields):
        if f.name == column:
            y = box.y + TABLE_HEADER_HEIGHT + i * TABLE_ROW_HEIGHT + TABLE_ROW_HEIGHT / 2
            return y if y < box.bottom else None
    return None


# ============================================================================
# Scale-to-fit
# ============================================================================


def scale_to_fit(
    viewport: ViewportTransform,
    registry: EntityLayoutRegistry,
    schema: Schema | None = None,
    options: DiagramOptions | None = None,
) -> bool:
    """Frame every table and table group in the viewport.

    Keeps ``fit_margin`` of the viewport free on each side, unless the zoom
    bounds force a tighter or looser fit. Returns False and leaves the
    viewport unchanged when there is nothing to frame.
    """
    opts = merge_options(options)
    control = ZoomControl.from_options(opts)

    # Materialize records for schema entities nobody has drawn yet
    if schema is not None:
        for table in schema.tables:
            registry.get("table", table.id)
        for group in schema.table_groups:
            registry.get("tableGroup", group.id)

    boxes = [registry.get_box("table", tid) for tid in registry.ids("table")]
    boxes += [registry.get_box("tableGroup", gid) for gid in registry.ids("tableGroup")]
    if not boxes:
        logger.debug("Scale-to-fit skipped: no entities")
        return False
    if viewport.width <= 0 or viewport.height <= 0:
        logger.warning("Scale-to-fit skipped: viewport size is %sx%s", viewport.width, viewport.height)
        return False

    min_x = min(b.x for b in boxes)
    min_y = min(b.y for b in boxes)
    max_x = max(b.right for b in boxes)
    max_y = max(b.bottom for b in boxes)
    if not all(math.isfinite(v) for v in (min_x, min_y, max_x, max_y)):
        logger.warning("Scale-to-fit skipped: non-finite geometry")
        return False

    avail_w = viewport.width * (1 - 2 * opts.fit_margin)
    avail_h = viewport.height * (1 - 2 * opts.fit_margin)
    bw = max_x - min_x
    bh = max_y - min_y
    ideal = min(
        avail_w / bw if bw > 0 else math.inf,
        avail_h / bh if bh > 0 else math.inf,
    )
    zoom = control.clamp_zoom(ideal)

    # Center the bounding box: zoom * (center + pan) = viewport center
    cx = (min_x + max_x) / 2
    cy = (min_y + max_y) / 2
    pan = Point(x=viewport.width / 2 / zoom - cx, y=viewport.height / 2 / zoom - cy)
    viewport.set_view(zoom, pan)
    logger.debug("Scale-to-fit: zoom=%.3f pan=(%.1f, %.1f)", zoom, pan.x, pan.y)
    return True
