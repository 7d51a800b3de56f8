from __future__ import annotations

import logging
from typing import Callable, Iterator

from .events import ListenerSet
from .ports import DiagramElement, EditorPort
from .schema.types import Schema
from .types import TokenPosition, TokenRange

logger = logging.getLogger(__name__)

# Tie-break between elements with equally narrow ranges: an inline ref
# shares its field's token, and the field wins.
_KIND_RANK = {"field": 0, "ref": 1, "table": 2, "tableGroup": 3}


def iter_elements(schema: Schema) -> Iterator[tuple[DiagramElement, TokenRange]]:
    """Every element of ``schema`` that can be pointed at, with its token range."""
    for table in schema.tables:
        yield DiagramElement("table", table.id), table.token
        for f in table.fields:
            yield DiagramElement("table", table.id, f.name), f.token
    for group in schema.table_groups:
        yield DiagramElement("tableGroup", group.id), group.token
    for ref in schema.refs:
        yield DiagramElement("ref", ref.id), ref.token


class SelectionBridge:
    """Two-way link between source token ranges and diagram elements.

    Holds exactly one editor selection and one diagram highlight; setting a
    new one replaces the old in a single assignment.
    """

    def __init__(self, schema: Callable[[], Schema | None], editor: EditorPort) -> None:
        self._schema = schema
        self._editor = editor
        self._selection: TokenRange | None = None
        self._highlight: DiagramElement | None = None
        self._listeners: ListenerSet[DiagramElement | None] = ListenerSet()

    @property
    def selection(self) -> TokenRange | None:
        """The range last sent to the editor."""
        return self._selection

    @property
    def highlight(self) -> DiagramElement | None:
        """The element drawn highlighted on the diagram."""
        return self._highlight

    # --- lookups ---

    def element_range(self, element: DiagramElement) -> TokenRange | None:
        schema = self._schema()
        if schema is None:
            return None
        for candidate, token in iter_elements(schema):
            if candidate == element:
                return token
        return None

    def token_range_to_elements(self, token: TokenRange) -> set[DiagramElement]:
        """Elements whose defining range covers ``token``."""
        schema = self._schema()
        if schema is None:
            return set()
        return {element for element, rng in iter_elements(schema) if rng.covers(token)}

    # --- diagram -> editor ---

    def element_double_clicked(self, element: DiagramElement) -> TokenRange | None:
        token = self.element_range(element)
        if token is None:
            logger.debug("No source range for %s", element)
            return None
        self._selection = token
        self._set_highlight(element)
        self._editor.highlight_token_range(token)
        return token

    def select_range(self, token: TokenRange) -> None:
        """Replace the editor selection without touching the diagram highlight."""
        self._selection = token
        self._editor.highlight_token_range(token)

    # --- editor -> diagram ---

    def cursor_moved(self, position: TokenPosition) -> DiagramElement | None:
        """Highlight the innermost element under the editor's cursor."""
        schema = self._schema()
        best: DiagramElement | None = None
        if schema is not None:
            caret = TokenRange(position, position)
            hits = [(rng, el) for el, rng in iter_elements(schema) if rng.covers(caret)]
            if hits:
                hits.sort(key=lambda hit: (hit[0].span(), _rank(hit[1])))
                best = hits[0][1]
        self._set_highlight(best)
        return best

    def clear(self) -> None:
        self._selection = None
        self._set_highlight(None)

    def revalidate(self) -> None:
        """Drop the highlight if its element left the schema."""
        if self._highlight is not None and self.element_range(self._highlight) is None:
            self._set_highlight(None)

    def add_listener(self, callback: Callable[[DiagramElement | None], None]) -> Callable[[], None]:
        """Called with the new highlight whenever it changes."""
        return self._listeners.add(callback)

    def _set_highlight(self, element: DiagramElement | None) -> None:
        if element == self._highlight:
            return
        self._highlight = element
        self._listeners.notify(element)


def _rank(element: DiagramElement) -> int:
    return _KIND_RANK["field" if element.field else element.kind]
