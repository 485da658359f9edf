"""
Group ownership report.

Lists every directory group with its owners and member count, and flags
orphaned groups (no owners) and empty groups (no members).
"""
from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder

from reportlib.constants import (
    GROUP_KIND_DISTRIBUTION,
    GROUP_KIND_M365,
    GROUP_KIND_MAIL_SECURITY,
    GROUP_KIND_OTHER,
    GROUP_KIND_SECURITY,
    GROUP_KINDS,
    GROUP_TYPE_UNIFIED,
    NOT_AVAILABLE,
    REQUIRE_GROUP_MEMBER_READ,
    SERVICE_GRAPH,
    STATUS_ACTIVE,
    STATUS_EMPTY,
    STATUS_ORPHANED,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals, flag
from reportlib.mapping import classify, count_values, days_since, enum_text, format_date
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import (
    GROUP_MEMBERS,
    GROUP_OWNERS,
    ORPHANED_ONLY,
    ORPHANED_ONLY_OPTION,
    is_orphaned,
    name_filter,
    owner_columns,
)

COLUMNS = (
    'DisplayName', 'GroupId', 'Mail', 'GroupType', 'Visibility', 'CreatedDate',
    'AgeDays', 'OwnerCount', 'Owners', 'MemberCount', 'Status',
)

GROUP_SELECT = [
    'id', 'displayName', 'mail', 'groupTypes', 'mailEnabled', 'securityEnabled',
    'visibility', 'createdDateTime',
]


def group_kind(group) -> str:
    """Microsoft365 / Security / MailEnabledSecurity / Distribution."""
    if GROUP_TYPE_UNIFIED in (group.group_types or []):
        return GROUP_KIND_M365
    if group.security_enabled and group.mail_enabled:
        return GROUP_KIND_MAIL_SECURITY
    if group.security_enabled:
        return GROUP_KIND_SECURITY
    if group.mail_enabled:
        return GROUP_KIND_DISTRIBUTION
    return GROUP_KIND_OTHER


def fetch_groups(session, options):
    return fetch_collection(
        session, 'groups', session.client.groups, GroupsRequestBuilder,
        select=GROUP_SELECT, top=999,
    )


def map_group(group, related, now, options):
    owners = owner_columns(related.get('owners', []))
    member_count = count_values(related.get('members', []))
    status = classify([
        (STATUS_ORPHANED, owners['OwnerCount'] == 0),
        (STATUS_EMPTY, member_count == 0),
    ], STATUS_ACTIVE)

    return [{
        'DisplayName': group.display_name or group.id,
        'GroupId': group.id,
        'Mail': group.mail or NOT_AVAILABLE,
        'GroupType': group_kind(group),
        'Visibility': enum_text(group.visibility),
        'CreatedDate': format_date(group.created_date_time),
        'AgeDays': days_since(group.created_date_time, now),
        'OwnerCount': owners['OwnerCount'],
        'Owners': owners['Owners'],
        'MemberCount': member_count,
        'Status': status,
    }]


REPORT = ReportDefinition(
    slug='group-owners',
    name='GroupOwnershipReport',
    description="Groups with their owners and member counts; flags orphaned and empty groups",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_GROUP_MEMBER_READ,),
    columns=COLUMNS,
    fetch=fetch_groups,
    map_record=map_group,
    related=(GROUP_OWNERS, GROUP_MEMBERS),
    options=(
        ORPHANED_ONLY_OPTION,
        ReportOption('empty_only', "Only include groups with no members", type=bool),
        ReportOption('group_type', "Only include one kind of group", choices=GROUP_KINDS),
        ReportOption('name_contains', "Only include groups whose name or mail contains this text"),
    ),
    filters=(
        ORPHANED_ONLY,
        FilterSpec('empty_only', flag('MemberCount', 0)),
        FilterSpec('group_type', equals('GroupType')),
        name_filter('name_contains', 'DisplayName', 'Mail'),
    ),
    summary=SummarySpec(
        numeric_columns=('OwnerCount', 'MemberCount'),
        category_columns=('GroupType', 'Status'),
        risk_counters=(
            ('orphaned_count', is_orphaned),
            ('empty_count', lambda row: row.get('MemberCount') == 0),
        ),
    ),
)
