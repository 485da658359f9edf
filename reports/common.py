"""
Building blocks shared by several report definitions.
"""
from datetime import date
from typing import Any, Dict, List, Union

from reportlib.constants import (
    DEFAULT_USAGE_PERIOD,
    NOT_AVAILABLE,
    STATUS_ACTIVE,
    STATUS_DELETED,
    STATUS_INACTIVE,
    STATUS_NEAR_QUOTA,
    STATUS_OVER_QUOTA,
    TEAM_ROLE_GUEST,
    TEAM_ROLE_OWNER,
    USAGE_PERIODS,
)
from reportlib.fetcher import collect_pages
from reportlib.filters import FilterSpec, contains
from reportlib.mapping import classify, display_name, join_values
from reportlib.models import ReportOption, RelatedFetch

Related = Union[str, List[Any]]


# =============================================================================
# Sub-fetches
# =============================================================================

def group_owners(session, group) -> List[Any]:
    return collect_pages(session, session.client.groups.by_group_id(group.id).owners)


def group_members(session, group) -> List[Any]:
    return collect_pages(session, session.client.groups.by_group_id(group.id).members)


def team_members(session, team) -> List[Any]:
    return collect_pages(session, session.client.teams.by_team_id(team.id).members)


def application_owners(session, app) -> List[Any]:
    return collect_pages(session, session.client.applications.by_application_id(app.id).owners)


GROUP_OWNERS = RelatedFetch('owners', 'group owners', group_owners)
GROUP_MEMBERS = RelatedFetch('members', 'group members', group_members)
TEAM_MEMBERS = RelatedFetch('members', 'team members', team_members)
APPLICATION_OWNERS = RelatedFetch('owners', 'application owners', application_owners)


# =============================================================================
# Related-value helpers
# =============================================================================

def names(values: Related) -> Related:
    """Display names of fetched directory objects; a sentinel passes through."""
    if isinstance(values, str):
        return values
    return [display_name(value) for value in values or []]


def owner_columns(owners: Related) -> Dict[str, Any]:
    """OwnerCount/Owners cells from an owners sub-fetch."""
    owner_names = names(owners)
    return {
        'OwnerCount': NOT_AVAILABLE if isinstance(owner_names, str) else len(owner_names),
        'Owners': join_values(owner_names),
    }


def members_with_role(members: Related, role: str) -> Related:
    """Team members holding a role ('owner' or 'guest')."""
    if isinstance(members, str):
        return members
    return [m for m in members or [] if role in (getattr(m, 'roles', None) or [])]


def team_owners(members: Related) -> Related:
    return members_with_role(members, TEAM_ROLE_OWNER)


def team_guests(members: Related) -> Related:
    return members_with_role(members, TEAM_ROLE_GUEST)


def is_orphaned(row: Dict[str, Any]) -> bool:
    return row.get('OwnerCount') == 0


# =============================================================================
# Usage reports
# =============================================================================

PERIOD_OPTION = ReportOption(
    'period', "Usage report period", default=DEFAULT_USAGE_PERIOD, choices=USAGE_PERIODS
)


def inactive_option(default: int) -> ReportOption:
    return ReportOption(
        'inactive_days', f"Days without activity before a record counts as inactive (default: {default})",
        type=int, default=default,
    )


WARNING_PERCENT_OPTION = ReportOption(
    'warning_percent', "Percent of quota used that counts as near quota (default: 90)", type=int, default=90
)
INACTIVE_ONLY_OPTION = ReportOption('inactive_only', "Only include inactive records", type=bool)
OVER_QUOTA_ONLY_OPTION = ReportOption('over_quota_only', "Only include records over their quota", type=bool)
ORPHANED_ONLY_OPTION = ReportOption('orphaned_only', "Only include records with no owners", type=bool)

INACTIVE_ONLY = FilterSpec('inactive_only', lambda row, _value: row.get('Inactive') is True)
OVER_QUOTA_ONLY = FilterSpec('over_quota_only', lambda row, _value: row.get('Status') == STATUS_OVER_QUOTA)
ORPHANED_ONLY = FilterSpec('orphaned_only', lambda row, _value: is_orphaned(row))


def name_filter(option: str, *columns: str) -> FilterSpec:
    # substring scans are the most expensive predicates
    return FilterSpec(option, contains(*columns), cost=3)


def storage_status(percent: float, warning_percent: int, inactive: bool, deleted: bool = False) -> str:
    """Storage classification, highest severity first."""
    return classify([
        (STATUS_DELETED, deleted),
        (STATUS_OVER_QUOTA, percent >= 100),
        (STATUS_NEAR_QUOTA, percent >= warning_percent),
        (STATUS_INACTIVE, inactive),
    ], STATUS_ACTIVE)


def status_is(label: str):
    return lambda row: row.get('Status') == label


def iso_date(value) -> str:
    """Option type for YYYY-MM-DD dates (YAML may already hand over a date)."""
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value).strip()).isoformat()
