"""
M365 admin reports shared library.
"""
# Import constants module for easy access
from . import constants
from .connection import ConnectionSettings, GraphConnector, Session
from .constants import (
    NEVER_OBSERVED_DAYS,
    NONE,
    NOT_AVAILABLE,
    SERVICE_GRAPH,
    SERVICE_SHAREPOINT,
    UNKNOWN,
)
from .errors import AuthError, ExportError, FetchError, ReportError, SubFetchError
from .fetcher import collect_pages, fetch_collection, fetch_related, fetch_usage_report
from .filters import FilterSpec, apply_filters, should_keep
from .models import (
    RelatedFetch,
    ReportDefinition,
    ReportOption,
    SummarySpec,
    SummaryStats,
    summarize,
)
from .pipeline import PipelineState, ReportPipeline, RunContext
from .prompts import ConsolePrompter, PromptUnavailable, StaticPrompter
from .utils import export_rows, setup_logging, write_json

__all__ = [
    # Constants
    'constants',
    'NEVER_OBSERVED_DAYS',
    'NONE',
    'NOT_AVAILABLE',
    'SERVICE_GRAPH',
    'SERVICE_SHAREPOINT',
    'UNKNOWN',
    # Connection
    'ConnectionSettings',
    'GraphConnector',
    'Session',
    # Errors
    'ReportError',
    'AuthError',
    'FetchError',
    'SubFetchError',
    'ExportError',
    # Fetching
    'collect_pages',
    'fetch_collection',
    'fetch_related',
    'fetch_usage_report',
    # Filters
    'FilterSpec',
    'apply_filters',
    'should_keep',
    # Models
    'RelatedFetch',
    'ReportDefinition',
    'ReportOption',
    'SummarySpec',
    'SummaryStats',
    'summarize',
    # Pipeline
    'PipelineState',
    'ReportPipeline',
    'RunContext',
    # Prompts
    'ConsolePrompter',
    'PromptUnavailable',
    'StaticPrompter',
    # Utils
    'export_rows',
    'setup_logging',
    'write_json',
]
