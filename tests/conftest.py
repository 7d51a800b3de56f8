from __future__ import annotations

import pytest

from schema_canvas.scheduling import ManualScheduler
from schema_canvas.types import ParseErrorRecord, TokenRange


class RecordingEditor:
    """Editor stand-in that keeps one selection marker, like a real widget."""

    def __init__(self) -> None:
        self.marker: TokenRange | None = None
        self.highlights: list[TokenRange] = []
        self.errors: list[ParseErrorRecord | None] = []
        self.cleared = 0

    def highlight_token_range(self, token: TokenRange) -> None:
        self.marker = token
        self.highlights.append(token)

    def clear_annotations(self) -> None:
        self.cleared += 1

    def publish_parse_error(self, record: ParseErrorRecord | None) -> None:
        self.errors.append(record)

    @property
    def error(self) -> ParseErrorRecord | None:
        return self.errors[-1] if self.errors else None


@pytest.fixture
def editor() -> RecordingEditor:
    return RecordingEditor()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
