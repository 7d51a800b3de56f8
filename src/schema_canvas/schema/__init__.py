from __future__ import annotations

from .types import (
    Database,
    Field,
    Ref,
    RefEndpoint,
    Schema,
    SchemaParseError,
    Table,
    TableGroup,
)
from .dbml import parse_dbml
from .mermaid import parse_mermaid_er

__all__ = [
    "Database",
    "Field",
    "Ref",
    "RefEndpoint",
    "Schema",
    "SchemaParseError",
    "Table",
    "TableGroup",
    "parse",
    "parse_dbml",
    "parse_mermaid_er",
]

PARSERS = {
    "dbml": parse_dbml,
    "mermaid": parse_mermaid_er,
}


def parse(text: str, format: str = "dbml") -> Database:
    """Parse schema source text in the given format.

    The result is not normalized; call ``Database.normalize()``.
    """
    parser = PARSERS.get(format)
    if parser is None:
        raise ValueError(f"Unsupported schema format: {format!r}")
    return parser(text)
