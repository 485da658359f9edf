"""
Data models for the M365 admin reports.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .filters import FilterSpec, Row


@dataclass(frozen=True)
class ReportOption:
    """
    A named, optional report parameter.

    Exposed as a CLI flag (``--inactive-days``) and as a config key under
    ``reports.<slug>`` (``inactive_days``). Flags use ``type=bool``.
    """
    name: str
    help: str
    type: Callable[[str], Any] = str
    default: Any = None
    choices: Optional[Tuple[str, ...]] = None

    @property
    def is_flag(self) -> bool:
        return self.type is bool

    @property
    def cli_flag(self) -> str:
        return '--' + self.name.replace('_', '-')


@dataclass(frozen=True)
class RelatedFetch:
    """A per-record sub-fetch (owners of a group, members of a team, ...)."""
    name: str  # key in the related dict handed to the mapper
    resource_type: str  # used in log and error messages
    fetch: Callable[[Any, Any], Any]  # (session, record) -> value


@dataclass(frozen=True)
class SummarySpec:
    """Which columns and predicates the aggregator reports on."""
    numeric_columns: Tuple[str, ...] = ()
    category_columns: Tuple[str, ...] = ()
    risk_counters: Tuple[Tuple[str, Callable[[Row], bool]], ...] = ()


@dataclass
class SummaryStats:
    """Aggregated statistics for one run's retained rows."""
    total: int = 0
    sums: Dict[str, float] = field(default_factory=dict)
    averages: Dict[str, float] = field(default_factory=dict)
    by_category: Dict[str, Dict[str, int]] = field(default_factory=dict)
    risk_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


@dataclass(frozen=True)
class ReportDefinition:
    """
    Everything that makes one report different from another.

    The pipeline drives the definition: ``fetch`` returns the full source
    collection, each ``related`` sub-fetch runs per record, ``map_record``
    turns a record (plus its related values) into zero or more rows, and
    ``filters``/``summary`` shape what is kept and reported.
    """
    slug: str  # CLI command, e.g. "group-owners"
    name: str  # export file prefix, e.g. "GroupOwnershipReport"
    description: str
    service: str
    scopes: Tuple[Tuple[str, ...], ...]  # each requirement: acceptable permissions, least privileged first
    columns: Tuple[str, ...]
    fetch: Callable[[Any, Dict[str, Any]], List[Any]]
    map_record: Callable[[Any, Dict[str, Any], Any, Dict[str, Any]], List[Row]]
    related: Tuple[RelatedFetch, ...] = ()
    options: Tuple[ReportOption, ...] = ()
    filters: Tuple[FilterSpec, ...] = ()
    summary: SummarySpec = field(default_factory=SummarySpec)

    def option_defaults(self) -> Dict[str, Any]:
        return {option.name: option.default for option in self.options}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def summarize(rows: Sequence[Row], spec: SummarySpec) -> SummaryStats:
    """
    Aggregate retained rows into summary statistics.

    Non-numeric cells (e.g. "N/A") are left out of sums and averages. An empty
    row set yields zero for every numeric field.
    """
    stats = SummaryStats(total=len(rows))

    for column in spec.numeric_columns:
        values = [row.get(column) for row in rows]
        numbers = [v for v in values if _is_number(v)]
        total = float(sum(numbers))
        stats.sums[column] = round(total, 2)
        stats.averages[column] = round(total / len(numbers), 2) if numbers else 0.0

    for column in spec.category_columns:
        tally: Dict[str, int] = {}
        for row in rows:
            key = str(row.get(column, ""))
            tally[key] = tally.get(key, 0) + 1
        stats.by_category[column] = tally

    for name, predicate in spec.risk_counters:
        stats.risk_counts[name] = sum(1 for row in rows if predicate(row))

    return stats
