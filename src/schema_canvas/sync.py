from __future__ import annotations

import enum
import logging
from typing import Any, Callable

from .events import ListenerSet
from .ports import EditorPort, ParseFn
from .registry import EntityLayoutRegistry
from .scheduling import ManualScheduler, Scheduler, TimerHandle
from .schema import parse as default_parse
from .schema.types import Database, Schema
from .types import DiagramOptions, ParseErrorRecord, TokenRange, merge_options

logger = logging.getLogger(__name__)

# ============================================================================
# Schema sync pipeline
#
#   IDLE --edit--> PENDING --quiet period--> PARSING --ok--> RECONCILING --> IDLE
#                  ^     |                          \
#                  +edit-+                           +--error--> IDLE (+ error record)
#
# An edit while PENDING re-arms the timer, so a burst of edits parses once,
# with the text of the last edit. A failed parse keeps the last good schema
# and every layout record as they were.
# ============================================================================


class SyncState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    PARSING = "parsing"
    RECONCILING = "reconciling"


class SchemaSyncPipeline:
    def __init__(
        self,
        registry: EntityLayoutRegistry,
        editor: EditorPort,
        parse: ParseFn | None = None,
        scheduler: Scheduler | None = None,
        options: DiagramOptions | None = None,
    ) -> None:
        opts = merge_options(options)
        self._registry = registry
        self._editor = editor
        self._parse = parse or default_parse
        self._scheduler = scheduler or ManualScheduler()
        self._format = opts.format
        self._delay = opts.debounce_seconds
        self._timer: TimerHandle | None = None
        self._listeners: ListenerSet[Database] = ListenerSet()

        self.state = SyncState.IDLE
        self.text = ""
        # Last schema that parsed successfully
        self.database: Database | None = None
        self.error: ParseErrorRecord | None = None

    @property
    def schema(self) -> Schema | None:
        return self.database.schemas[0] if self.database is not None else None

    # --- events ---

    def on_content_changed(self, text: str) -> None:
        """Editor change notification; (re)arms the debounce timer."""
        if text == self.text:
            return
        self.text = text
        self._cancel_timer()
        self._timer = self._scheduler.call_later(self._delay, self._on_timer)
        self.state = SyncState.PENDING

    def flush(self) -> bool:
        """Run a pending parse now. Returns False if nothing was pending or it failed."""
        if self.state is not SyncState.PENDING:
            return False
        self._cancel_timer()
        return self._run()

    def load(self, text: str) -> bool:
        """Replace the text and parse it immediately."""
        self._cancel_timer()
        self.text = text
        return self._run()

    def add_listener(self, callback: Callable[[Database], None]) -> Callable[[], None]:
        """Called with the new database after each successful sync."""
        return self._listeners.add(callback)

    # --- pipeline ---

    def _on_timer(self) -> None:
        self._timer = None
        self._run()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _run(self) -> bool:
        self.state = SyncState.PARSING
        logger.debug("Parsing %d chars of %s", len(self.text), self._format)
        try:
            database = self._parse(self.text, self._format)
            database.normalize()
        except Exception as err:
            # Mid-edit text is invalid most of the time; report, don't raise
            self.error = to_error_record(err)
            self.state = SyncState.IDLE
            logger.debug("Parse failed: %s", self.error.message)
            self._editor.publish_parse_error(self.error)
            return False

        self.state = SyncState.RECONCILING
        self.database = database
        schema = database.schemas[0]
        self._registry.reconcile({
            "table": [t.id for t in schema.tables],
            "tableGroup": [g.id for g in schema.table_groups],
            "ref": [r.id for r in schema.refs],
        })
        if self.error is not None:
            self.error = None
            self._editor.clear_annotations()
        self._editor.publish_parse_error(None)
        self.state = SyncState.IDLE
        logger.debug(
            "Synced schema: %d tables, %d groups, %d refs",
            len(schema.tables),
            len(schema.table_groups),
            len(schema.refs),
        )
        self._listeners.notify(database)
        return True


def to_error_record(err: Exception) -> ParseErrorRecord:
    """Convert a parser failure into a 0-based error record.

    Errors with a 1-based ``location`` ({start: {line, column}, end: ...})
    keep it; anything else is pinned to the start of the text.
    """
    message = getattr(err, "message", None) or str(err) or type(err).__name__
    location = TokenRange.of(0, 0, 0, 0)
    raw = getattr(err, "location", None)
    if raw is not None:
        try:
            start = _lookup(raw, "start")
            end = _lookup(raw, "end")
            location = TokenRange.of(
                int(_lookup(start, "line")) - 1,
                int(_lookup(start, "column")) - 1,
                int(_lookup(end, "line")) - 1,
                int(_lookup(end, "column")) - 1,
            )
        except (KeyError, AttributeError, TypeError, ValueError):
            logger.debug("Ignoring malformed error location %r", raw)
    return ParseErrorRecord(location=location, kind="error", message=str(message))


def _lookup(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj[key]
    return getattr(obj, key)
