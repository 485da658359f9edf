"""
Teams guest policy report.

Per-team guest permissions (channel create/update/delete), guest and owner
counts, and a coarse risk level:

- High:   guests present and they can delete channels, or the team is public
- Medium: guests present and they can create/update channels, or the team
          has no owners
- Low:    everything else
"""
from msgraph.generated.teams.teams_request_builder import TeamsRequestBuilder

from reportlib.constants import (
    NOT_AVAILABLE,
    REQUIRE_GROUP_MEMBER_READ,
    REQUIRE_TEAM_SETTINGS_READ,
    RISK_HIGH,
    RISK_LEVELS,
    RISK_LOW,
    RISK_MEDIUM,
    SERVICE_GRAPH,
    UNKNOWN,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals
from reportlib.mapping import classify, count_values, enum_text, to_bool
from reportlib.models import ReportDefinition, RelatedFetch, ReportOption, SummarySpec

from .common import TEAM_MEMBERS, is_orphaned, name_filter, owner_columns, team_guests, team_owners

COLUMNS = (
    'TeamName', 'TeamId', 'Visibility', 'IsArchived', 'GuestsCanCreateUpdateChannels',
    'GuestsCanDeleteChannels', 'OwnerCount', 'Owners', 'GuestCount', 'RiskLevel',
)


def fetch_teams(session, options):
    return fetch_collection(
        session, 'teams', session.client.teams, TeamsRequestBuilder,
        select=['id', 'displayName', 'visibility', 'isArchived'],
    )


def team_detail(session, team):
    # guestSettings is only returned when reading a single team
    return session.call(session.client.teams.by_team_id(team.id).get())


def _guest_setting(detail, name: str):
    if isinstance(detail, str) or detail is None:
        return UNKNOWN
    settings = getattr(detail, 'guest_settings', None)
    if settings is None:
        return NOT_AVAILABLE
    return to_bool(getattr(settings, name, False))


def team_risk(guest_count, can_create, can_delete, public: bool, owner_count) -> str:
    has_guests = isinstance(guest_count, int) and guest_count > 0
    return classify([
        (RISK_HIGH, has_guests and (can_delete is True or public)),
        (RISK_MEDIUM, (has_guests and can_create is True) or owner_count == 0),
    ], RISK_LOW)


def map_team_settings(team, related, now, options):
    members = related.get('members', [])
    detail = related.get('team')
    owners = owner_columns(team_owners(members))
    guest_count = count_values(team_guests(members))
    visibility = enum_text(team.visibility)
    can_create = _guest_setting(detail, 'allow_create_update_channels')
    can_delete = _guest_setting(detail, 'allow_delete_channels')

    return [{
        'TeamName': team.display_name or team.id,
        'TeamId': team.id,
        'Visibility': visibility,
        'IsArchived': to_bool(team.is_archived),
        'GuestsCanCreateUpdateChannels': can_create,
        'GuestsCanDeleteChannels': can_delete,
        'OwnerCount': owners['OwnerCount'],
        'Owners': owners['Owners'],
        'GuestCount': guest_count,
        'RiskLevel': team_risk(
            guest_count, can_create, can_delete, visibility.lower() == 'public', owners['OwnerCount']
        ),
    }]


def _has_guests(row, _value) -> bool:
    count = row.get('GuestCount')
    return isinstance(count, int) and count > 0


REPORT = ReportDefinition(
    slug='teams-settings',
    name='TeamsGuestPolicyReport',
    description="Guest permissions, owners and risk level for every team",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_TEAM_SETTINGS_READ, REQUIRE_GROUP_MEMBER_READ),
    columns=COLUMNS,
    fetch=fetch_teams,
    map_record=map_team_settings,
    related=(RelatedFetch('team', 'team settings', team_detail), TEAM_MEMBERS),
    options=(
        ReportOption('risk_level', "Only include teams at this risk level", choices=RISK_LEVELS),
        ReportOption('with_guests_only', "Only include teams that have guests", type=bool),
        ReportOption('team_contains', "Only include teams whose name contains this text"),
    ),
    filters=(
        FilterSpec('risk_level', equals('RiskLevel')),
        FilterSpec('with_guests_only', _has_guests),
        name_filter('team_contains', 'TeamName'),
    ),
    summary=SummarySpec(
        numeric_columns=('GuestCount', 'OwnerCount'),
        category_columns=('RiskLevel', 'Visibility'),
        risk_counters=(
            ('high_risk_count', lambda row: row.get('RiskLevel') == RISK_HIGH),
            ('orphaned_count', is_orphaned),
        ),
    ),
)
