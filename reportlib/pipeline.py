"""
Report pipeline driver.

One run: connect -> fetch -> map (+ related sub-fetches) -> filter ->
aggregate -> export -> disconnect. All run state lives in a RunContext that
is threaded through the stages.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ReportError
from .fetcher import fetch_related, record_id
from .filters import Row, bind_filters, should_keep
from .models import ReportDefinition, SummaryStats, summarize
from .utils import ProgressTracker, default_output_path, export_rows, utc_now

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "Idle"
    CONNECTING = "Connecting"
    FETCHING = "Fetching"
    MAPPING = "Mapping"
    AGGREGATING = "Aggregating"
    EXPORTING = "Exporting"
    DISCONNECTING = "Disconnecting"
    DONE = "Done"
    ABORTED = "Aborted"


TERMINAL_STATES = (PipelineState.DONE, PipelineState.ABORTED)


@dataclass
class RunContext:
    """Run-scoped state for one report invocation."""
    report: str
    now: datetime
    options: Dict[str, Any] = field(default_factory=dict)
    state: PipelineState = PipelineState.IDLE
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    source_count: int = 0
    processed: int = 0
    record_errors: int = 0
    sub_fetch_errors: int = 0
    rows: List[Row] = field(default_factory=list)
    summary: Optional[SummaryStats] = None
    output_path: Optional[str] = None
    error: Optional[Exception] = None

    def transition(self, state: PipelineState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"{self.report}: cannot leave terminal state {self.state.value}")
        logger.debug(f"{self.report}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class ReportPipeline:
    """
    Runs one ReportDefinition end to end.

    Args:
        definition: The report to run
        connector: Connection provider (connect/disconnect)
        show_progress: Show a progress bar while mapping records
    """

    def __init__(self, definition: ReportDefinition, connector, show_progress: bool = True):
        self.definition = definition
        self.connector = connector
        self.show_progress = show_progress
        self.context: Optional[RunContext] = None

    def run(
        self,
        options: Optional[Dict[str, Any]] = None,
        output_path: Optional[str] = None,
        output_dir: str = '.',
        now: Optional[datetime] = None,
    ) -> RunContext:
        """
        Execute the report.

        Returns:
            The completed RunContext (state Done)

        Raises:
            ReportError: AuthError, FetchError or ExportError after the session,
                if one was opened, has been disconnected. The context is left
                in state Aborted on ``self.context``, with the error recorded.
                Any other exception aborts the run the same way and propagates
                unchanged.
        """
        definition = self.definition
        resolved = definition.option_defaults()
        resolved.update({k: v for k, v in (options or {}).items() if v is not None})
        ctx = RunContext(report=definition.name, now=now or utc_now(), options=resolved)
        self.context = ctx

        session = None
        try:
            ctx.transition(PipelineState.CONNECTING)
            session = self.connector.connect(definition.service, definition.scopes)

            ctx.transition(PipelineState.FETCHING)
            records = definition.fetch(session, ctx.options)
            ctx.source_count = len(records)

            ctx.transition(PipelineState.MAPPING)
            self._map_records(session, records, ctx)

            ctx.transition(PipelineState.AGGREGATING)
            ctx.summary = summarize(ctx.rows, definition.summary)

            ctx.transition(PipelineState.EXPORTING)
            path = output_path or default_output_path(definition.name, ctx.now, output_dir)
            ctx.output_path = export_rows(ctx.rows, definition.columns, path)
        except ReportError as e:
            logger.error(f"{definition.name} aborted: {e}")
            self._abort(ctx, session, e)
            raise
        except Exception as e:
            logger.exception(f"{definition.name} aborted in {ctx.state.value}: {e}")
            self._abort(ctx, session, e)
            raise
        except BaseException:
            self._abort(ctx, session, None)
            raise

        ctx.transition(PipelineState.DISCONNECTING)
        self._disconnect(session)
        ctx.transition(PipelineState.DONE)
        logger.info(f"{definition.name} complete: {len(ctx.rows)} of {ctx.source_count} records kept")
        return ctx

    def _map_records(self, session, records: List[Any], ctx: RunContext) -> None:
        definition = self.definition
        filters = bind_filters(definition.filters, ctx.options)

        with ProgressTracker(definition.name, total=len(records), show_progress=self.show_progress) as tracker:
            for record in records:
                try:
                    related, failures = fetch_related(session, record, definition.related)
                    ctx.sub_fetch_errors += failures
                    for row in definition.map_record(record, related, ctx.now, ctx.options):
                        if should_keep(row, filters):
                            ctx.rows.append(row)
                except Exception as e:
                    ctx.record_errors += 1
                    logger.warning(f"Failed to process record {record_id(record)}: {e}")
                finally:
                    ctx.processed += 1
                    tracker.advance()

    def _abort(self, ctx: RunContext, session, error: Optional[Exception]) -> None:
        ctx.error = error
        self._disconnect(session)
        ctx.transition(PipelineState.ABORTED)

    def _disconnect(self, session) -> None:
        if session is not None:
            self.connector.disconnect(session)
