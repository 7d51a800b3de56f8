from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schema.types import Table

# ============================================================================
# Font metrics -- character width estimates for Inter at different sizes.
# ============================================================================


def estimate_text_width(text: str, font_size: float, font_weight: int) -> float:
    """Average character width in px at the given font size and weight (proportional font)."""
    if font_weight >= 600:
        width_ratio = 0.58
    elif font_weight >= 500:
        width_ratio = 0.55
    else:
        width_ratio = 0.52
    return len(text) * font_size * width_ratio


def estimate_mono_text_width(text: str, font_size: float) -> float:
    """Average character width in px for monospace fonts (uniform glyph width)."""
    return len(text) * font_size * 0.6


FONT_SIZES = {
    "table_header": 13,
    "field": 11,
    "group_header": 12,
}

FONT_WEIGHTS = {
    "table_header": 600,
    "field": 400,
    "group_header": 600,
}

# ============================================================================
# Table box metrics
#
# A table box is a header row (table name) followed by one row per field:
#   name            type  PK
# ============================================================================

TABLE_HEADER_HEIGHT = 32
TABLE_ROW_HEIGHT = 22
TABLE_BOX_PAD_X = 12
TABLE_MIN_WIDTH = 200
# Group box header above its member tables
GROUP_HEADER_HEIGHT = 28


def measure_table(table: Table) -> tuple[float, float]:
    """Estimate the (width, height) a table box needs for its name and fields."""
    header_w = estimate_text_width(
        table.name, FONT_SIZES["table_header"], FONT_WEIGHTS["table_header"]
    )

    max_row_w = 0.0
    for f in table.fields:
        row_text = f"{f.name}  {f.type}"
        if f.pk:
            row_text += "  PK"
        max_row_w = max(max_row_w, estimate_mono_text_width(row_text, FONT_SIZES["field"]))

    width = max(TABLE_MIN_WIDTH, header_w + TABLE_BOX_PAD_X * 2, max_row_w + TABLE_BOX_PAD_X * 2)
    height = TABLE_HEADER_HEIGHT + len(table.fields) * TABLE_ROW_HEIGHT
    return width, height
