from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from ..types import TokenRange

# ============================================================================
# Parsed schema types
#
# The structured object a parser produces from source text. Every entity
# that ends up on the diagram carries the token range that defined it, so
# the diagram can point back into the editor.
# ============================================================================

# Relationship multiplicity at one end of a ref:
#   '1'  exactly one
#   '*'  many
Relation = Literal["1", "*"]


class SchemaParseError(ValueError):
    """Raised when source text cannot be parsed or normalized.

    ``location`` uses 1-based lines and columns:
    ``{"start": {"line": 1, "column": 1}, "end": {"line": 1, "column": 5}}``
    """

    def __init__(self, message: str, location: dict[str, dict[str, int]]) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    @classmethod
    def at(cls, message: str, token: TokenRange) -> SchemaParseError:
        """Build an error from a 0-based token range."""
        return cls(
            message,
            {
                "start": {"line": token.start.row + 1, "column": token.start.col + 1},
                "end": {"line": token.end.row + 1, "column": token.end.col + 1},
            },
        )


@dataclass(slots=True)
class Field:
    """A column of a table."""

    name: str
    type: str
    token: TokenRange
    pk: bool = False
    unique: bool = False
    not_null: bool = False
    note: str | None = None
    # Inline `[ref: > other.col]`, as (operator, table, column)
    inline_ref: tuple[str, str, str] | None = None


@dataclass(slots=True)
class Table:
    name: str
    token: TokenRange
    alias: str | None = None
    fields: list[Field] = field(default_factory=list)
    note: str | None = None
    id: str = ""

    def find_field(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(slots=True)
class TableGroup:
    name: str
    token: TokenRange
    table_names: list[str] = field(default_factory=list)
    # Table ids, filled by normalize()
    table_ids: list[str] = field(default_factory=list)
    id: str = ""


@dataclass(slots=True)
class RefEndpoint:
    table: str
    column: str | None
    relation: Relation


@dataclass(slots=True)
class Ref:
    """A relationship between two tables."""

    endpoints: list[RefEndpoint]
    token: TokenRange
    name: str | None = None
    # Relationship verb, e.g. Mermaid's "places"
    label: str | None = None
    id: str = ""


@dataclass(slots=True)
class Schema:
    name: str = "public"
    tables: list[Table] = field(default_factory=list)
    table_groups: list[TableGroup] = field(default_factory=list)
    refs: list[Ref] = field(default_factory=list)

    def find_table(self, table_id: str) -> Table | None:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def group_of(self, table_id: str) -> TableGroup | None:
        for group in self.table_groups:
            if table_id in group.table_ids:
                return group
        return None


@dataclass(slots=True)
class Database:
    """Parser output; ``schemas[0]`` is the schema drawn on the diagram."""

    schemas: list[Schema] = field(default_factory=lambda: [Schema()])
    normalized: bool = False

    @property
    def schema(self) -> Schema:
        return self.schemas[0]

    def normalize(self) -> Database:
        """Canonicalize in place: assign ids, lift inline refs, check names.

        Idempotent; a second call returns immediately.
        """
        if self.normalized:
            return self
        schema = self.schema

        # Tables are addressed by name or alias
        by_name: dict[str, Table] = {}
        for table in schema.tables:
            if table.name in by_name:
                raise SchemaParseError.at(f"Table '{table.name}' already exists", table.token)
            table.id = table.name
            by_name[table.name] = table
        for table in schema.tables:
            if table.alias and table.alias not in by_name:
                by_name[table.alias] = table

        def resolve(name: str, token: TokenRange) -> Table:
            table = by_name.get(name)
            if table is None:
                raise SchemaParseError.at(f"Can't find table '{name}'", token)
            return table

        # Inline field refs become top-level refs
        for table in schema.tables:
            for f in table.fields:
                if f.inline_ref is None:
                    continue
                op, other_table, other_column = f.inline_ref
                schema.refs.append(
                    Ref(endpoints=make_endpoints(table.name, f.name, op, other_table, other_column),
                        token=f.token)
                )

        seen: set[tuple] = set()
        used_ids: set[str] = set()
        refs: list[Ref] = []
        for ref in schema.refs:
            for ep in ref.endpoints:
                target = resolve(ep.table, ref.token)
                ep.table = target.id
                if ep.column is not None and target.fields and target.find_field(ep.column) is None:
                    raise SchemaParseError.at(
                        f"Can't find field '{ep.column}' in table '{target.name}'", ref.token
                    )
            key = (
                tuple((ep.table, ep.column, ep.relation) for ep in ref.endpoints),
                ref.name,
                ref.label,
            )
            if key in seen:
                continue
            seen.add(key)
            ref.id = _unique_id(ref.name or _ref_key(ref), used_ids)
            refs.append(ref)
        schema.refs = refs

        group_ids: set[str] = set()
        # A table belongs to at most one group
        owner: dict[str, str] = {}
        for group in schema.table_groups:
            if group.name in group_ids:
                raise SchemaParseError.at(f"Table group '{group.name}' already exists", group.token)
            group.id = group.name
            group_ids.add(group.name)
            group.table_ids = []
            for name in group.table_names:
                table_id = resolve(name, group.token).id
                if table_id in group.table_ids:
                    continue
                other = owner.get(table_id)
                if other is not None:
                    raise SchemaParseError.at(
                        f"Table '{table_id}' already belongs to group '{other}'", group.token
                    )
                owner[table_id] = group.id
                group.table_ids.append(table_id)

        self.normalized = True
        return self


def make_endpoints(
    left_table: str, left_column: str | None, op: str,
    right_table: str, right_column: str | None,
) -> list[RefEndpoint]:
    """Translate a DBML relation operator into per-end multiplicities."""
    relations: dict[str, tuple[Relation, Relation]] = {
        ">": ("*", "1"),
        "<": ("1", "*"),
        "-": ("1", "1"),
        "<>": ("*", "*"),
    }
    left, right = relations[op]
    return [
        RefEndpoint(left_table, left_column, left),
        RefEndpoint(right_table, right_column, right),
    ]


def _ref_key(ref: Ref) -> str:
    parts = []
    for ep in ref.endpoints:
        parts.append(ep.table if ep.column is None else f"{ep.table}.{ep.column}")
    return "-".join(parts)


def _unique_id(base: str, used: set[str]) -> str:
    candidate = base
    n = 2
    while candidate in used:
        candidate = f"{base}#{n}"
        n += 1
    used.add(candidate)
    return candidate
