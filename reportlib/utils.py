"""
Utility functions for the M365 admin reports.

Logging Level Standards:
------------------------
- ERROR: Stage failures that abort a report run
         "Failed to fetch groups: {e}"
- WARNING: Record-level failures recovered with a sentinel or a skipped record
           "Fetch owners for {id} failed: {e}; using 'Unknown'"
- INFO: Progress messages, record counts
        "Found 42 groups"
- DEBUG: Per-record detail
         "Processed 3/42 groups"
"""
import csv
import hashlib
import json
import logging
import os
import re
import sys
import webbrowser
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .constants import NOT_AVAILABLE, OUTPUT_TIMESTAMP_FORMAT
from .errors import ExportError

logger = logging.getLogger(__name__)

# SDK loggers that are too chatty at INFO
NOISY_LOGGERS = ('azure', 'httpx', 'httpcore', 'msal', 'kiota_http', 'kiota_authentication_azure')


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Per-record progress for the mapping stage.

    Shows a rich progress bar on a TTY and falls back to DEBUG log lines
    otherwise (e.g., when piping output).

    Usage:
        with ProgressTracker("GroupOwnershipReport", total=len(records)) as tracker:
            for record in records:
                ...
                tracker.advance()
    """

    def __init__(self, report: str, total: int, show_progress: bool = True):
        self.report = report
        self.total = total
        self.completed = 0
        self.show_progress = show_progress and sys.stdout.isatty()

        self._console: Optional[Console] = None
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    @property
    def fraction(self) -> float:
        """Running fraction of the source collection processed."""
        if self.total <= 0:
            return 1.0
        return min(self.completed / self.total, 1.0)

    def __enter__(self):
        if self.show_progress:
            self._console = Console()
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=self._console,
                transient=False,
            )
            self._task = self._progress.add_task(self.report, total=self.total or 1)
            self._progress.start()
        else:
            logger.info(f"{self.report}: processing {self.total} records")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._progress is not None:
            self._progress.stop()
        return False

    def advance(self, description: Optional[str] = None):
        """Record one processed source record."""
        self.completed += 1
        if self._progress is not None and self._task is not None:
            if description:
                self._progress.update(self._task, description=f"{self.report} [{description}]")
            self._progress.update(self._task, advance=1)
        else:
            logger.debug(f"{self.report}: processed {self.completed}/{self.total} ({self.fraction:.0%})")


# =============================================================================
# Timestamps and Paths
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def default_output_path(report_name: str, now: datetime, output_dir: str = '.') -> str:
    """<ReportName>_<UTC yyyyMMdd_HHmmss>.csv in the output directory."""
    stamp = now.astimezone(timezone.utc).strftime(OUTPUT_TIMESTAMP_FORMAT)
    return os.path.join(output_dir, f"{report_name}_{stamp}.csv")


# =============================================================================
# Redaction (log files only)
# =============================================================================

def hash_sensitive_id(value: str, prefix: str = "") -> str:
    """
    Hash a sensitive ID using consistent hashing.

    Uses first 8 chars of SHA256 so the same value always maps to the same
    hash and log lines can still be correlated.
    """
    if not value:
        return value
    hash_val = hashlib.sha256(value.encode()).hexdigest()[:8]
    return f"{prefix}{hash_val}" if prefix else hash_val


_LOG_REDACT_PATTERNS = [
    # GUIDs (tenant IDs, object IDs, app IDs)
    (re.compile(r'\b([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\b', re.IGNORECASE),
     lambda m: f"id-{hash_sensitive_id(m.group(1).lower())}"),
    # Mail addresses / UPNs - keep the domain
    (re.compile(r'\b([A-Za-z0-9._%+#-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b'),
     lambda m: f"user-{hash_sensitive_id(m.group(1).lower())}@{m.group(2)}"),
]


def redact_log_message(message: str) -> str:
    """Redact object IDs and mail addresses from a log message."""
    if not message:
        return message
    for pattern, replacer in _LOG_REDACT_PATTERNS:
        message = pattern.sub(replacer, message)
    return message


class RedactingFilter(logging.Filter):
    """
    Logging filter that redacts sensitive data from log messages.

    Uses consistent hashing so the same ID produces the same hash.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_log_message(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_log_message(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """
    Setup logging configuration with console and optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: If provided, also write a redacted log file in this directory

    Returns:
        Logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = utc_now().strftime(OUTPUT_TIMESTAMP_FORMAT)
        log_file = os.path.join(log_dir, f"m365_report_{timestamp}.log")

        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RedactingFilter())
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to: {log_file}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    return logging.getLogger(__name__)


# =============================================================================
# Export
# =============================================================================

def _open_private(filepath: str):
    """Open a file for writing, truncating it, readable by the owner only."""
    fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        return os.fdopen(fd, 'w', encoding='utf-8', newline='')
    except Exception:
        os.close(fd)
        raise


def export_rows(rows: Sequence[Dict[str, Any]], columns: Sequence[str], filepath: str) -> str:
    """
    Write rows to a UTF-8 CSV file in a fixed column order.

    Overwrites any existing file. Cells missing from a row are written as
    N/A; a row with a column outside the report's column set is an error.
    An empty row set still produces the header.

    Raises:
        ExportError: If the file cannot be written
    """
    try:
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with _open_private(filepath) as f:
            writer = csv.DictWriter(f, fieldnames=list(columns), restval=NOT_AVAILABLE, extrasaction='raise')
            writer.writeheader()
            writer.writerows(rows)
    except (OSError, ValueError, csv.Error) as e:
        logger.error(f"Failed to write {filepath}: {e}")
        raise ExportError(filepath, e) from e

    logger.info(f"Wrote {len(rows)} rows to {filepath}")
    return filepath


def write_json(data: Any, filepath: str) -> None:
    """Write data to JSON file with secure permissions."""
    try:
        with _open_private(filepath) as f:
            json.dump(data, f, indent=2, default=str, ensure_ascii=False)
    except OSError as e:
        raise ExportError(filepath, e) from e
    logger.info(f"Wrote {filepath}")


def open_file(filepath: str) -> bool:
    """Open a produced file with the platform's default application."""
    uri = Path(filepath).resolve().as_uri()
    try:
        return webbrowser.open(uri)
    except webbrowser.Error as e:
        logger.warning(f"Could not open {filepath}: {e}")
        return False


# =============================================================================
# Console Summary
# =============================================================================

def print_summary(report_name: str, context, console: Optional[Console] = None) -> None:
    """Print a formatted run summary using rich."""
    console = console or Console()
    stats = context.summary

    table = Table(title=f"{report_name} Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Source Records", f"{context.source_count:,}")
    table.add_row("Rows Exported", f"{stats.total if stats else 0:,}")
    if context.record_errors:
        table.add_row("Record Errors", str(context.record_errors))
    if context.sub_fetch_errors:
        table.add_row("Lookup Failures", str(context.sub_fetch_errors))

    if stats:
        for column, total in stats.sums.items():
            table.add_row(f"Total {column}", f"{total:,.2f}")
            table.add_row(f"Average {column}", f"{stats.averages.get(column, 0.0):,.2f}")
        for name, count in stats.risk_counts.items():
            table.add_row(_label(name), str(count))
        for column, tally in stats.by_category.items():
            breakdown = ", ".join(f"{key}: {count}" for key, count in sorted(tally.items()))
            table.add_row(f"By {column}", breakdown or "-")

    if context.output_path:
        table.add_row("Output", context.output_path)

    console.print(Panel(table))


def _label(name: str) -> str:
    """over_quota_count -> Over Quota"""
    words = name.split('_')
    if words and words[-1] == 'count':
        words = words[:-1]
    return ' '.join(w.capitalize() for w in words)


def summary_to_dict(report_name: str, context) -> Dict[str, Any]:
    """Serializable run summary (for --summary-json)."""
    return {
        'report': report_name,
        'generated_at': context.now.isoformat().replace('+00:00', 'Z'),
        'source_records': context.source_count,
        'record_errors': context.record_errors,
        'lookup_failures': context.sub_fetch_errors,
        'output': context.output_path,
        'options': context.options,
        'summary': context.summary.to_dict() if context.summary else None,
    }


def print_report_list(reports: List[Any], console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="Available Reports")
    table.add_column("Report", style="cyan")
    table.add_column("Description")
    for definition in reports:
        table.add_row(definition.slug, definition.description)
    console.print(table)
