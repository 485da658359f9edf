"""
Filter chain applied to mapped output rows.

A FilterSpec is a named predicate bound to a user-supplied value. Specs with
no value (None, False or an empty string) are disabled and always pass, so
every filter is open by default. Enabled specs combine with logical AND.
"""
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence

from .mapping import parse_timestamp

Row = Dict[str, Any]
Predicate = Callable[[Row, Any], bool]


@dataclass(frozen=True)
class FilterSpec:
    """A named optional predicate over an output row."""
    name: str  # option name that supplies the value, e.g. "orphaned_only"
    predicate: Predicate
    cost: int = 1  # lower runs first
    value: Any = None

    @property
    def enabled(self) -> bool:
        return self.value is not None and self.value is not False and self.value != ""

    def bind(self, value: Any) -> 'FilterSpec':
        return replace(self, value=value)

    def matches(self, row: Row) -> bool:
        if not self.enabled:
            return True
        return bool(self.predicate(row, self.value))


def bind_filters(specs: Iterable[FilterSpec], options: Mapping[str, Any]) -> List[FilterSpec]:
    """Bind each spec to the option value of the same name."""
    return [spec.bind(options.get(spec.name)) for spec in specs]


def should_keep(row: Row, specs: Sequence[FilterSpec]) -> bool:
    """True if the row satisfies every enabled spec."""
    enabled = sorted((s for s in specs if s.enabled), key=lambda s: s.cost)
    return all(spec.predicate(row, spec.value) for spec in enabled)


def apply_filters(rows: Iterable[Row], specs: Sequence[FilterSpec]) -> List[Row]:
    return [row for row in rows if should_keep(row, specs)]


# =============================================================================
# Predicate builders
# =============================================================================

def _number(value: Any):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def flag(column: str, expected: Any = True) -> Predicate:
    """Row column equals expected whenever the flag is set."""
    return lambda row, _value: row.get(column) == expected


def at_least(column: str) -> Predicate:
    """Numeric column >= supplied threshold. Non-numeric cells never match."""
    def predicate(row: Row, value: Any) -> bool:
        cell = _number(row.get(column))
        return cell is not None and cell >= value
    return predicate


def at_most(column: str) -> Predicate:
    """Numeric column <= supplied threshold. Non-numeric cells never match."""
    def predicate(row: Row, value: Any) -> bool:
        cell = _number(row.get(column))
        return cell is not None and cell <= value
    return predicate


def within(column: str) -> Predicate:
    """Numeric column between 0 and the supplied threshold (inclusive)."""
    def predicate(row: Row, value: Any) -> bool:
        cell = _number(row.get(column))
        return cell is not None and 0 <= cell <= value
    return predicate


def equals(column: str) -> Predicate:
    """Case-insensitive equality against the supplied value."""
    return lambda row, value: str(row.get(column, "")).lower() == str(value).lower()


def contains(*columns: str) -> Predicate:
    """Case-insensitive substring match in any of the columns."""
    def predicate(row: Row, value: Any) -> bool:
        needle = str(value).lower()
        return any(needle in str(row.get(column, "")).lower() for column in columns)
    return predicate


def on_or_after(column: str) -> Predicate:
    """Date column on or after the supplied ISO date. Missing dates never match."""
    def predicate(row: Row, value: Any) -> bool:
        cell = parse_timestamp(row.get(column))
        bound = parse_timestamp(value)
        return cell is not None and bound is not None and cell >= bound
    return predicate


def on_or_before(column: str) -> Predicate:
    """Date column on or before the supplied ISO date. Missing dates never match."""
    def predicate(row: Row, value: Any) -> bool:
        cell = parse_timestamp(row.get(column))
        bound = parse_timestamp(value)
        return cell is not None and bound is not None and cell <= bound
    return predicate
