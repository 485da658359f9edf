"""
Tests for reportlib/filters.py filter chain.

Covers:
- Disabled specs (no value) always pass
- AND combination of enabled specs
- Order independence and cheapest-first evaluation
- Predicate builders
"""
import itertools
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from reportlib.filters import (
    FilterSpec,
    apply_filters,
    at_least,
    at_most,
    bind_filters,
    contains,
    equals,
    flag,
    on_or_after,
    on_or_before,
    should_keep,
    within,
)

ROWS = [
    {'Name': 'Finance', 'OwnerCount': 0, 'PercentUsed': 95.5, 'Status': 'Orphaned', 'Created': '2024-01-10'},
    {'Name': 'HR Team', 'OwnerCount': 2, 'PercentUsed': 40.0, 'Status': 'Active', 'Created': '2023-05-01'},
    {'Name': 'Legal', 'OwnerCount': 'N/A', 'PercentUsed': 'N/A', 'Status': 'Active', 'Created': 'N/A'},
    {'Name': 'Marketing', 'OwnerCount': 0, 'PercentUsed': 12.0, 'Status': 'Orphaned', 'Created': '2024-03-15'},
]


def _spec(name, predicate, value, cost=1):
    return FilterSpec(name, predicate, cost=cost, value=value)


# =============================================================================
# Enable/Disable Tests
# =============================================================================

class TestOpenByDefault:
    """Absent parameters impose no filtering."""

    @pytest.mark.parametrize("value", [None, False, ""])
    def test_disabled_values(self, value):
        spec = _spec('orphaned_only', flag('OwnerCount', 0), value)
        assert spec.enabled is False
        assert apply_filters(ROWS, [spec]) == ROWS

    def test_zero_threshold_is_enabled(self):
        spec = _spec('expiring_within', within('PercentUsed'), 0)
        assert spec.enabled is True

    def test_no_specs_keeps_everything(self):
        assert all(should_keep(row, []) for row in ROWS)

    def test_bind_filters_uses_option_names(self):
        specs = bind_filters(
            [FilterSpec('orphaned_only', flag('OwnerCount', 0)), FilterSpec('name', contains('Name'))],
            {'orphaned_only': True},
        )
        assert [s.enabled for s in specs] == [True, False]


# =============================================================================
# Combination Tests
# =============================================================================

class TestCombination:
    """AND semantics and order independence."""

    def _specs(self):
        return [
            _spec('orphaned_only', flag('OwnerCount', 0), True),
            _spec('min_percent', at_least('PercentUsed'), 50, cost=2),
            _spec('name', contains('Name'), 'a', cost=3),
        ]

    def test_and(self):
        kept = apply_filters(ROWS, self._specs())
        assert [r['Name'] for r in kept] == ['Finance']

    def test_order_independent(self):
        expected = apply_filters(ROWS, self._specs())
        for order in itertools.permutations(self._specs()):
            assert apply_filters(ROWS, list(order)) == expected

    def test_staged_equals_combined(self):
        """Applying {A,B} then {C} keeps the same rows as {A,B,C}."""
        a, b, c = self._specs()
        staged = apply_filters(apply_filters(ROWS, [a, b]), [c])
        assert staged == apply_filters(ROWS, [c, a, b])

    def test_cheapest_first(self):
        calls = []

        def tracking(name):
            def predicate(row, value):
                calls.append(name)
                return True
            return predicate

        specs = [
            _spec('expensive', tracking('expensive'), True, cost=5),
            _spec('cheap', tracking('cheap'), True, cost=1),
        ]
        should_keep(ROWS[0], specs)
        assert calls == ['cheap', 'expensive']


# =============================================================================
# Predicate Builder Tests
# =============================================================================

class TestPredicates:
    """Tests for predicate builders."""

    def test_at_least_skips_sentinels(self):
        kept = apply_filters(ROWS, [_spec('p', at_least('PercentUsed'), 10)])
        assert 'Legal' not in [r['Name'] for r in kept]

    def test_at_most(self):
        kept = apply_filters(ROWS, [_spec('p', at_most('PercentUsed'), 40)])
        assert [r['Name'] for r in kept] == ['HR Team', 'Marketing']

    def test_within_excludes_negative(self):
        rows = [{'Days': -3}, {'Days': 0}, {'Days': 30}, {'Days': 31}]
        kept = apply_filters(rows, [_spec('w', within('Days'), 30)])
        assert kept == [{'Days': 0}, {'Days': 30}]

    def test_equals_case_insensitive(self):
        kept = apply_filters(ROWS, [_spec('s', equals('Status'), 'orphaned')])
        assert len(kept) == 2

    def test_contains_any_column(self):
        rows = [{'A': 'alpha', 'B': 'x'}, {'A': 'y', 'B': 'ALPHABET'}, {'A': 'z', 'B': 'z'}]
        kept = apply_filters(rows, [_spec('c', contains('A', 'B'), 'Alpha')])
        assert len(kept) == 2

    def test_date_range(self):
        specs = [
            _spec('after', on_or_after('Created'), '2024-01-01'),
            _spec('before', on_or_before('Created'), '2024-01-31'),
        ]
        assert [r['Name'] for r in apply_filters(ROWS, specs)] == ['Finance']
