from __future__ import annotations

import re

from ..types import TokenRange
from .types import Database, Field, Ref, RefEndpoint, Relation, SchemaParseError, Table

# ============================================================================
# Mermaid erDiagram parser
#
# Reads Mermaid ER syntax into the same Database shape the DBML parser
# produces, so either source format can drive the diagram.
#
#   erDiagram
#     CUSTOMER ||--o{ ORDER : places
#     CUSTOMER {
#       string name PK
#       string email UK "user email"
#     }
#
# Entities become tables, attributes become fields, relationships become
# refs between whole tables (Mermaid has no column-level relationships).
#
# Cardinality notation:
#   ||  exactly one       o|  zero or one (also |o)
#   }|  one or more       o{  zero or more (also {o)
# ============================================================================

ENTITY_BLOCK_RE = re.compile(r"^(\S+)\s*\{$")
RELATIONSHIP_RE = re.compile(r"^(\S+)\s+([|o}{]+(?:--|\.\.)[|o}{]+)\s+(\S+)\s*:\s*(.+)$")
CARDINALITY_RE = re.compile(r"^([|o}{]+)(--|\.\.)([|o}{]+)$")
ATTRIBUTE_RE = re.compile(r"^(\S+)\s+(\S+)(?:\s+(.+))?$")


def parse_mermaid_er(text: str) -> Database:
    """Parse a Mermaid ER diagram.

    Expects the first non-blank line to be "erDiagram".
    """
    lines = text.split("\n")
    db = Database()
    schema = db.schema

    # Entities by id, in first-mention order
    entity_map: dict[str, Table] = {}
    current: Table | None = None
    header_seen = False

    for row, raw in enumerate(lines):
        line = raw.strip()
        if not line or line.startswith("%%"):
            continue
        col = len(raw) - len(raw.lstrip())
        token = TokenRange.of(row, col, row, col + len(line))

        if not header_seen:
            if line.lower() != "erdiagram":
                raise SchemaParseError.at("Expected 'erDiagram'", token)
            header_seen = True
            continue

        # --- Inside entity body ---
        if current is not None:
            if line == "}":
                current.token = TokenRange(current.token.start, token.end)
                current = None
                continue
            f = _parse_attribute(line, token)
            if f is None:
                raise SchemaParseError.at(f"Invalid attribute in entity '{current.name}'", token)
            current.fields.append(f)
            continue

        # --- Entity block start: `ENTITY_NAME {` ---
        m = ENTITY_BLOCK_RE.match(line)
        if m:
            current = _ensure_entity(entity_map, m.group(1), token)
            # A block redefines the entity's source location
            current.token = token
            continue

        # --- Relationship: `ENTITY1 cardinality1--cardinality2 ENTITY2 : label` ---
        ref = _parse_relationship_line(line, token)
        if ref is not None:
            for ep in ref.endpoints:
                _ensure_entity(entity_map, ep.table, token)
            schema.refs.append(ref)
            continue

        raise SchemaParseError.at(f"Unexpected '{line.split()[0]}'", token)

    if current is not None:
        raise SchemaParseError.at(f"Expected '}}' to close entity '{current.name}'", current.token)

    schema.tables = list(entity_map.values())
    return db


def _ensure_entity(entity_map: dict[str, Table], entity_id: str, token: TokenRange) -> Table:
    """Ensure an entity exists in the map; the first mention is its location."""
    entity = entity_map.get(entity_id)
    if entity is None:
        entity = Table(name=entity_id, token=token)
        entity_map[entity_id] = entity
    return entity


def _parse_attribute(line: str, token: TokenRange) -> Field | None:
    """Parse an attribute line inside an entity block.

    Format: type name [PK|FK|UK [...]] ["comment"]
    """
    match = ATTRIBUTE_RE.match(line)
    if not match:
        return None

    rest = (match.group(3) or "").strip()
    comment_match = re.search(r'"([^"]*)"', rest)
    keys = {part.upper() for part in re.sub(r'"[^"]*"', "", rest).replace(",", " ").split()}

    return Field(
        name=match.group(2),
        type=match.group(1),
        token=token,
        pk="PK" in keys,
        unique="UK" in keys,
        note=comment_match.group(1) if comment_match else None,
    )


def _parse_relationship_line(line: str, token: TokenRange) -> Ref | None:
    match = RELATIONSHIP_RE.match(line)
    if not match:
        return None

    line_match = CARDINALITY_RE.match(match.group(2))
    if not line_match:
        return None
    left = _parse_cardinality(line_match.group(1))
    right = _parse_cardinality(line_match.group(3))
    if left is None or right is None:
        return None

    return Ref(
        endpoints=[
            RefEndpoint(match.group(1), None, left),
            RefEndpoint(match.group(3), None, right),
        ],
        token=token,
        label=match.group(4).strip(),
    )


def _parse_cardinality(s: str) -> Relation | None:
    """Collapse crow's foot notation to the multiplicity of that end."""
    # Sorting makes `|o` and `o|` compare equal
    sorted_s = "".join(sorted(s))
    if sorted_s in ("||", "o|"):
        return "1"
    if sorted_s in ("|}", "{|", "o{", "o}"):
        return "*"
    return None
