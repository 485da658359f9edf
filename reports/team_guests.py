"""
Team guest report.

One row per guest member of each team. Teams without guests produce no
rows; a team whose membership could not be read produces a single row with
the "Unknown" sentinel in the guest columns so the gap stays visible.
"""
from msgraph.generated.teams.teams_request_builder import TeamsRequestBuilder

from reportlib.constants import (
    NOT_AVAILABLE,
    REQUIRE_GROUP_MEMBER_READ,
    REQUIRE_TEAM_SETTINGS_READ,
    SERVICE_GRAPH,
    UNKNOWN,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals
from reportlib.mapping import display_name, enum_text, mail_domain
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import TEAM_MEMBERS, name_filter, team_guests

COLUMNS = ('TeamName', 'TeamId', 'Visibility', 'GuestName', 'GuestEmail', 'GuestDomain', 'GuestUserId')

TEAM_SELECT = ['id', 'displayName', 'description', 'visibility', 'isArchived']


def fetch_teams(session, options):
    return fetch_collection(session, 'teams', session.client.teams, TeamsRequestBuilder, select=TEAM_SELECT)


def map_team_guests(team, related, now, options):
    base = {
        'TeamName': team.display_name or team.id,
        'TeamId': team.id,
        'Visibility': enum_text(team.visibility),
    }
    guests = team_guests(related.get('members', []))
    if isinstance(guests, str):
        return [dict(base, GuestName=guests, GuestEmail=guests, GuestDomain=guests, GuestUserId=guests)]

    rows = []
    for guest in guests:
        email = getattr(guest, 'email', None)
        rows.append(dict(
            base,
            GuestName=display_name(guest),
            GuestEmail=email or NOT_AVAILABLE,
            GuestDomain=mail_domain(email),
            GuestUserId=getattr(guest, 'user_id', None) or NOT_AVAILABLE,
        ))
    return rows


REPORT = ReportDefinition(
    slug='team-guests',
    name='TeamGuestReport',
    description="Guest members of every team, one row per guest",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_TEAM_SETTINGS_READ, REQUIRE_GROUP_MEMBER_READ),
    columns=COLUMNS,
    fetch=fetch_teams,
    map_record=map_team_guests,
    related=(TEAM_MEMBERS,),
    options=(
        ReportOption('domain', "Only include guests from this mail domain"),
        ReportOption('team_contains', "Only include teams whose name contains this text"),
    ),
    filters=(
        FilterSpec('domain', equals('GuestDomain')),
        name_filter('team_contains', 'TeamName'),
    ),
    summary=SummarySpec(
        category_columns=('GuestDomain', 'TeamName'),
        risk_counters=(
            ('unknown_membership_count', lambda row: row.get('GuestName') == UNKNOWN),
        ),
    ),
)
