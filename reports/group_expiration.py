"""
Microsoft 365 group expiration report.

Shows when each Microsoft 365 group expires under the tenant's group
lifecycle policy, and who owns it (the owners receive renewal mail).
"""
from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder

from reportlib.constants import (
    GROUP_TYPE_UNIFIED,
    NOT_AVAILABLE,
    REQUIRE_GROUP_MEMBER_READ,
    SERVICE_GRAPH,
    STATUS_EXPIRED,
    STATUS_EXPIRING_SOON,
    STATUS_NO_EXPIRATION,
    STATUS_VALID,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals, within
from reportlib.mapping import classify, days_until, enum_text, format_date
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import GROUP_OWNERS, ORPHANED_ONLY, ORPHANED_ONLY_OPTION, is_orphaned, owner_columns, status_is

COLUMNS = (
    'DisplayName', 'GroupId', 'Mail', 'Visibility', 'CreatedDate', 'RenewedDate',
    'ExpirationDate', 'DaysUntilExpiration', 'OwnerCount', 'Owners', 'Status',
)

STATUSES = (STATUS_EXPIRED, STATUS_EXPIRING_SOON, STATUS_VALID, STATUS_NO_EXPIRATION)


def fetch_unified_groups(session, options):
    return fetch_collection(
        session, 'Microsoft 365 groups', session.client.groups, GroupsRequestBuilder,
        filter=f"groupTypes/any(c:c eq '{GROUP_TYPE_UNIFIED}')",
        select=['id', 'displayName', 'mail', 'visibility', 'createdDateTime',
                'expirationDateTime', 'renewedDateTime'],
        top=999,
    )


def expiration_status(days, expiring_days: int) -> str:
    if days is None:
        return STATUS_NO_EXPIRATION
    return classify([
        (STATUS_EXPIRED, days < 0),
        (STATUS_EXPIRING_SOON, days <= expiring_days),
    ], STATUS_VALID)


def map_group_expiration(group, related, now, options):
    days = days_until(group.expiration_date_time, now)
    owners = owner_columns(related.get('owners', []))
    return [{
        'DisplayName': group.display_name or group.id,
        'GroupId': group.id,
        'Mail': group.mail or NOT_AVAILABLE,
        'Visibility': enum_text(group.visibility),
        'CreatedDate': format_date(group.created_date_time),
        'RenewedDate': format_date(group.renewed_date_time),
        'ExpirationDate': format_date(group.expiration_date_time),
        'DaysUntilExpiration': NOT_AVAILABLE if days is None else days,
        'OwnerCount': owners['OwnerCount'],
        'Owners': owners['Owners'],
        'Status': expiration_status(days, options['expiring_days']),
    }]


REPORT = ReportDefinition(
    slug='group-expiration',
    name='GroupExpirationReport',
    description="Microsoft 365 group expiration and renewal dates under the lifecycle policy",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_GROUP_MEMBER_READ,),
    columns=COLUMNS,
    fetch=fetch_unified_groups,
    map_record=map_group_expiration,
    related=(GROUP_OWNERS,),
    options=(
        ReportOption('expiring_days', "Days ahead that count as expiring soon (default: 30)", type=int, default=30),
        ReportOption('expiring_within', "Only include groups expiring within this many days", type=int),
        ReportOption('status', "Only include groups with this expiration status", choices=STATUSES),
        ORPHANED_ONLY_OPTION,
    ),
    filters=(
        FilterSpec('expiring_within', within('DaysUntilExpiration')),
        FilterSpec('status', equals('Status')),
        ORPHANED_ONLY,
    ),
    summary=SummarySpec(
        category_columns=('Status',),
        risk_counters=(
            ('expired_count', status_is(STATUS_EXPIRED)),
            ('expiring_soon_count', status_is(STATUS_EXPIRING_SOON)),
            ('orphaned_count', is_orphaned),
        ),
    ),
)
