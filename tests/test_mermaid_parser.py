"""Tests for the Mermaid erDiagram parser.

Covers: entity definitions, attribute parsing (types, names, keys, comments),
relationships with every cardinality, token ranges and errors.
"""
from __future__ import annotations

import pytest

from schema_canvas.schema import SchemaParseError, parse
from schema_canvas.types import TokenRange


def load(text: str):
    """Helper to parse and normalize a Mermaid ER diagram."""
    return parse(text, "mermaid").normalize().schema


# ============================================================================
# Entity definitions
# ============================================================================


class TestEntityDefinitions:
    def test_parses_an_entity_with_attributes(self):
        schema = load(
            "erDiagram\n"
            "  CUSTOMER {\n"
            "    string name\n"
            "    int age\n"
            "    string email\n"
            "  }"
        )
        assert len(schema.tables) == 1
        customer = schema.tables[0]
        assert customer.id == "CUSTOMER"
        assert [f.name for f in customer.fields] == ["name", "age", "email"]
        assert customer.fields[0].type == "string"

    def test_parses_keys_and_comment(self):
        schema = load(
            "erDiagram\n"
            "  USER {\n"
            "    int id PK\n"
            '    string email UK "user email address"\n'
            "    int team_id FK\n"
            "  }"
        )
        fields = schema.tables[0].fields
        assert fields[0].pk
        assert fields[1].unique
        assert fields[1].note == "user email address"
        assert not fields[2].pk

    def test_entity_token_spans_the_block(self):
        schema = load(
            "erDiagram\n"
            "  ORDER {\n"
            "    int id PK\n"
            "  }"
        )
        assert schema.tables[0].token == TokenRange.of(1, 2, 3, 3)
        assert schema.tables[0].fields[0].token == TokenRange.of(2, 4, 2, 13)

    def test_auto_creates_entities_from_relationships(self):
        schema = load(
            "erDiagram\n"
            "  CUSTOMER ||--o{ ORDER : places"
        )
        assert [t.id for t in schema.tables] == ["CUSTOMER", "ORDER"]
        # Both point at the relationship that introduced them
        assert schema.tables[0].token == TokenRange.of(1, 2, 1, 32)

    def test_skips_comments(self):
        schema = load(
            "erDiagram\n"
            "  %% just a note\n"
            "  A ||--|| B : is"
        )
        assert len(schema.tables) == 2


# ============================================================================
# Relationships
# ============================================================================


class TestRelationships:
    @pytest.mark.parametrize(
        "arrow,relations",
        [
            ("||--o{", ("1", "*")),
            ("|o--|{", ("1", "*")),
            ("}|..||", ("*", "1")),
            ("}o--o|", ("*", "1")),
            ("||--||", ("1", "1")),
        ],
    )
    def test_maps_cardinality_to_relation(self, arrow, relations):
        schema = load(f"erDiagram\n  A {arrow} B : links")
        ref = schema.refs[0]
        assert tuple(e.relation for e in ref.endpoints) == relations
        assert [e.table for e in ref.endpoints] == ["A", "B"]
        assert all(e.column is None for e in ref.endpoints)

    def test_keeps_label_and_assigns_unique_ids(self):
        schema = load(
            "erDiagram\n"
            "  CUSTOMER ||--o{ ORDER : places\n"
            "  CUSTOMER ||--o{ ORDER : cancels"
        )
        assert [r.label for r in schema.refs] == ["places", "cancels"]
        assert [r.id for r in schema.refs] == ["CUSTOMER-ORDER", "CUSTOMER-ORDER#2"]


# ============================================================================
# Errors
# ============================================================================


class TestErrors:
    def test_requires_header(self):
        with pytest.raises(SchemaParseError) as exc:
            parse("CUSTOMER {\n}", "mermaid")
        assert exc.value.location["start"] == {"line": 1, "column": 1}

    def test_unclosed_entity(self):
        with pytest.raises(SchemaParseError, match="close entity 'A'"):
            parse("erDiagram\n  A {\n    int id", "mermaid")

    def test_unknown_line(self):
        with pytest.raises(SchemaParseError) as exc:
            parse("erDiagram\n  A --> B", "mermaid")
        assert exc.value.location["start"] == {"line": 2, "column": 3}
