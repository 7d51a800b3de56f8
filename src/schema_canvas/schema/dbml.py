from __future__ import annotations

import re

from ..types import TokenRange
from .types import (
    Database,
    Field,
    Ref,
    SchemaParseError,
    Table,
    TableGroup,
    make_endpoints,
)

# ============================================================================
# DBML parser
#
# Line-oriented parser for the subset of DBML a diagram needs:
#
#   Table users as U [headercolor: #fff] {
#     id integer [pk]
#     email varchar(255) [unique, not null, note: 'login']
#     team_id int [ref: > teams.id]
#     indexes { ... }
#   }
#   TableGroup core { users teams }
#   Ref fk_name: posts.user_id > users.id [delete: cascade]
#   Ref { posts.user_id > users.id }
#
# Project, Enum and Note blocks are skipped. Every block must open with
# `{` on its header line. Token ranges are 0-based; a table's range runs
# from its `Table` keyword to its closing brace.
# ============================================================================

_NAME = r'"[^"]+"|`[^`]+`|[\w.]+'

TABLE_RE = re.compile(
    rf"^Table\s+(?P<name>{_NAME})(?:\s+as\s+(?P<alias>{_NAME}))?\s*(?:\[[^\]]*\])?\s*\{{$",
    re.IGNORECASE,
)
GROUP_RE = re.compile(
    rf"^TableGroup\s+(?P<name>{_NAME})\s*(?:\[[^\]]*\])?\s*\{{$",
    re.IGNORECASE,
)
REF_SHORT_RE = re.compile(
    rf"^Ref(?:\s+(?P<name>{_NAME}))?\s*:\s*(?P<body>.+)$",
    re.IGNORECASE,
)
REF_LONG_RE = re.compile(rf"^Ref(?:\s+(?P<name>{_NAME}))?\s*\{{$", re.IGNORECASE)
RELATION_RE = re.compile(
    r"^(?P<left>[^\s<>]+)\s*(?P<op><>|<|>|-)\s*(?P<right>[^\s\[]+)\s*(?:\[[^\]]*\])?$"
)
SKIPPED_BLOCK_RE = re.compile(r"^(Project|Enum|Note|TablePartial)\b.*\{$", re.IGNORECASE)
NOTE_LINE_RE = re.compile(r"^Note\s*:\s*(?P<value>.+)$", re.IGNORECASE)
INDEXES_RE = re.compile(r"^indexes\s*\{$", re.IGNORECASE)
FIELD_RE = re.compile(
    r'^(?P<name>"[^"]+"|`[^`]+`|[^\s\[]+)\s+'
    r'(?P<type>"[^"]+"|[^\s\[(]+(?:\s*\([^)]*\))?(?:\[\])?)'
    r"\s*(?:\[(?P<settings>.*)\])?\s*$"
)
INLINE_REF_RE = re.compile(r"^ref\s*:\s*(?P<op><>|<|>|-)\s*(?P<target>\S+)$", re.IGNORECASE)


def parse_dbml(text: str) -> Database:
    """Parse DBML source text into an un-normalized Database."""
    lines = text.split("\n")
    db = Database()
    schema = db.schema

    row = 0
    while row < len(lines):
        line, col = _clean(lines[row])
        if not line:
            row += 1
            continue

        m = TABLE_RE.match(line)
        if m:
            table, row = _parse_table(lines, row, col, m)
            schema.tables.append(table)
            continue

        m = GROUP_RE.match(line)
        if m:
            group, row = _parse_group(lines, row, col, m)
            schema.table_groups.append(group)
            continue

        m = REF_LONG_RE.match(line)
        if m:
            ref, row = _parse_long_ref(lines, row, col, m)
            schema.refs.append(ref)
            continue

        m = REF_SHORT_RE.match(line)
        if m:
            token = TokenRange.of(row, col, row, col + len(line))
            schema.refs.append(_parse_relation(m.group("body"), _name(m.group("name")), token))
            row += 1
            continue

        if SKIPPED_BLOCK_RE.match(line):
            row = _skip_block(lines, row, col, line)
            continue
        if NOTE_LINE_RE.match(line):
            row += 1
            continue

        word = line.split()[0]
        raise SchemaParseError.at(
            f"Unexpected '{word}'", TokenRange.of(row, col, row, col + len(word))
        )

    return db


# ============================================================================
# Blocks
# ============================================================================


def _parse_table(lines: list[str], start: int, start_col: int, m: re.Match) -> tuple[Table, int]:
    table = Table(
        name=_table_name(m.group("name")),
        alias=_name(m.group("alias")),
        token=TokenRange.of(start, start_col, start, start_col),
    )
    row = start + 1
    while row < len(lines):
        line, col = _clean(lines[row])
        if not line:
            row += 1
            continue
        if line == "}":
            table.token = TokenRange.of(start, start_col, row, col + 1)
            return table, row + 1
        if INDEXES_RE.match(line) or SKIPPED_BLOCK_RE.match(line):
            row = _skip_block(lines, row, col, line)
            continue
        note = NOTE_LINE_RE.match(line)
        if note:
            table.note = _unquote(note.group("value").strip())
            row += 1
            continue

        fm = FIELD_RE.match(line)
        if fm is None:
            raise SchemaParseError.at(
                f"Invalid field definition in table '{table.name}'",
                TokenRange.of(row, col, row, col + len(line)),
            )
        table.fields.append(_parse_field(fm, TokenRange.of(row, col, row, col + len(line))))
        row += 1

    raise _unclosed("table", table.name, lines, start, start_col)


def _parse_group(lines: list[str], start: int, start_col: int, m: re.Match) -> tuple[TableGroup, int]:
    group = TableGroup(
        name=_name(m.group("name")),
        token=TokenRange.of(start, start_col, start, start_col),
    )
    row = start + 1
    while row < len(lines):
        line, col = _clean(lines[row])
        if not line or NOTE_LINE_RE.match(line):
            row += 1
            continue
        if line == "}":
            group.token = TokenRange.of(start, start_col, row, col + 1)
            return group, row + 1
        for member in line.split():
            group.table_names.append(_table_name(member))
        row += 1

    raise _unclosed("table group", group.name, lines, start, start_col)


def _parse_long_ref(lines: list[str], start: int, start_col: int, m: re.Match) -> tuple[Ref, int]:
    name = _name(m.group("name"))
    body: str | None = None
    row = start + 1
    while row < len(lines):
        line, col = _clean(lines[row])
        if not line:
            row += 1
            continue
        if line == "}":
            token = TokenRange.of(start, start_col, row, col + 1)
            if body is None:
                raise SchemaParseError.at("Ref must define a relation", token)
            return _parse_relation(body, name, token), row + 1
        body = line
        row += 1

    raise _unclosed("ref", name or "", lines, start, start_col)


def _skip_block(lines: list[str], start: int, start_col: int, header: str) -> int:
    depth = 0
    for row in range(start, len(lines)):
        line, _ = _clean(lines[row])
        depth += line.count("{") - line.count("}")
        if depth <= 0:
            return row + 1
    word = header.split()[0]
    raise SchemaParseError.at(
        f"Expected '}}' to close '{word}'",
        TokenRange.of(start, start_col, start, start_col + len(header)),
    )


def _unclosed(what: str, name: str, lines: list[str], start: int, start_col: int) -> SchemaParseError:
    header, _ = _clean(lines[start])
    return SchemaParseError.at(
        f"Expected '}}' to close {what} '{name}'",
        TokenRange.of(start, start_col, start, start_col + len(header)),
    )


# ============================================================================
# Fields and relations
# ============================================================================


def _parse_field(m: re.Match, token: TokenRange) -> Field:
    f = Field(name=_name(m.group("name")), type=_unquote(m.group("type")), token=token)

    for setting in _split_settings(m.group("settings") or ""):
        lower = setting.lower()
        if lower in ("pk", "primary key"):
            f.pk = True
        elif lower == "unique":
            f.unique = True
        elif lower == "not null":
            f.not_null = True
        elif lower.startswith("note:"):
            f.note = _unquote(setting[5:].strip())
        elif lower.startswith("ref:"):
            ref = INLINE_REF_RE.match(setting)
            if ref is None:
                raise SchemaParseError.at(f"Invalid ref setting '{setting}'", token)
            table, column = _split_endpoint(ref.group("target"), token)
            f.inline_ref = (ref.group("op"), table, column)

    return f


def _parse_relation(body: str, name: str | None, token: TokenRange) -> Ref:
    m = RELATION_RE.match(body.strip())
    if m is None:
        raise SchemaParseError.at("Invalid relation, expected 'table.column > table.column'", token)
    left_table, left_column = _split_endpoint(m.group("left"), token)
    right_table, right_column = _split_endpoint(m.group("right"), token)
    return Ref(
        endpoints=make_endpoints(left_table, left_column, m.group("op"), right_table, right_column),
        token=token,
        name=name,
    )


def _split_endpoint(text: str, token: TokenRange) -> tuple[str, str]:
    """`schema.table.column` or `table.column` -> (table, column)."""
    parts = [_unquote(p) for p in re.findall(r'"[^"]+"|`[^`]+`|[^.]+', text)]
    if len(parts) < 2:
        raise SchemaParseError.at(f"Expected 'table.column', got '{text}'", token)
    return parts[-2], parts[-1]


def _split_settings(text: str) -> list[str]:
    """Split `pk, note: 'a, b'` on commas outside quotes and parentheses."""
    out: list[str] = []
    buf = ""
    quote: str | None = None
    depth = 0
    for ch in text:
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"`":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            out.append(buf.strip())
            buf = ""
            continue
        buf += ch
    if buf.strip():
        out.append(buf.strip())
    return out


# ============================================================================
# Lexical helpers
# ============================================================================


def _clean(raw: str) -> tuple[str, int]:
    """Strip a `//` comment and surrounding whitespace.

    Returns the remaining text and the column where it starts.
    """
    quote: str | None = None
    cut = len(raw)
    for i, ch in enumerate(raw):
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"`":
            quote = ch
        elif ch == "/" and raw[i + 1:i + 2] == "/":
            cut = i
            break
    text = raw[:cut].rstrip()
    stripped = text.lstrip()
    return stripped, len(text) - len(stripped)


def _unquote(s: str) -> str:
    if len(s) >= 2 and s[0] == s[-1] and s[0] in "'\"`":
        return s[1:-1]
    return s


def _name(s: str | None) -> str | None:
    return _unquote(s) if s is not None else None


def _table_name(s: str) -> str:
    """Drop a leading schema qualifier: `public.users` -> `users`."""
    if s[0] in "\"`":
        return _unquote(s)
    return s.rsplit(".", 1)[-1]
