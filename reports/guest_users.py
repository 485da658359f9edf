"""
Guest user report.

Every guest account with invitation state, account age and last sign-in
(interactive or non-interactive, whichever is later). Reading sign-in
activity needs AuditLog.Read.All.
"""
from msgraph.generated.users.users_request_builder import UsersRequestBuilder

from reportlib.constants import (
    NOT_AVAILABLE,
    REQUIRE_AUDIT_LOG_READ,
    REQUIRE_USER_READ,
    SERVICE_GRAPH,
    STATUS_ACTIVE,
    STATUS_DISABLED,
    STATUS_INACTIVE,
    STATUS_PENDING,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals, on_or_after, on_or_before
from reportlib.mapping import classify, days_since, format_date, is_inactive, mail_domain, parse_timestamp
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import INACTIVE_ONLY, INACTIVE_ONLY_OPTION, inactive_option, iso_date, name_filter, status_is

COLUMNS = (
    'DisplayName', 'Mail', 'UserPrincipalName', 'Domain', 'CreatedDate', 'AccountAgeDays',
    'InvitationState', 'AccountEnabled', 'LastSignInDate', 'DaysSinceSignIn', 'Inactive', 'Status',
)

USER_SELECT = [
    'id', 'displayName', 'mail', 'userPrincipalName', 'createdDateTime', 'accountEnabled',
    'externalUserState', 'signInActivity',
]

PENDING_ACCEPTANCE = 'PendingAcceptance'


def fetch_guests(session, options):
    return fetch_collection(
        session, 'guest users', session.client.users, UsersRequestBuilder,
        filter="userType eq 'Guest'", select=USER_SELECT,
    )


def last_sign_in(user):
    """Latest of the interactive and non-interactive sign-in timestamps."""
    activity = getattr(user, 'sign_in_activity', None)
    if activity is None:
        return None
    stamps = [
        parse_timestamp(getattr(activity, 'last_sign_in_date_time', None)),
        parse_timestamp(getattr(activity, 'last_non_interactive_sign_in_date_time', None)),
    ]
    stamps = [s for s in stamps if s is not None]
    return max(stamps) if stamps else None


def map_guest(user, related, now, options):
    signed_in = last_sign_in(user)
    days = days_since(signed_in, now)
    inactive = is_inactive(days, options['inactive_days'])
    invitation = user.external_user_state or NOT_AVAILABLE
    enabled = user.account_enabled is not False
    address = user.mail or user.user_principal_name

    return [{
        'DisplayName': user.display_name or NOT_AVAILABLE,
        'Mail': user.mail or NOT_AVAILABLE,
        'UserPrincipalName': user.user_principal_name or NOT_AVAILABLE,
        'Domain': mail_domain(address),
        'CreatedDate': format_date(user.created_date_time),
        'AccountAgeDays': days_since(user.created_date_time, now),
        'InvitationState': invitation,
        'AccountEnabled': enabled,
        'LastSignInDate': format_date(signed_in),
        'DaysSinceSignIn': days,
        'Inactive': inactive,
        'Status': classify([
            (STATUS_DISABLED, not enabled),
            (STATUS_PENDING, invitation == PENDING_ACCEPTANCE),
            (STATUS_INACTIVE, inactive),
        ], STATUS_ACTIVE),
    }]


REPORT = ReportDefinition(
    slug='guest-users',
    name='GuestUserReport',
    description="Guest accounts with invitation state and last sign-in",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_USER_READ, REQUIRE_AUDIT_LOG_READ),
    columns=COLUMNS,
    fetch=fetch_guests,
    map_record=map_guest,
    options=(
        inactive_option(90),
        INACTIVE_ONLY_OPTION,
        ReportOption('pending_only', "Only include guests who have not accepted their invitation", type=bool),
        ReportOption('created_after', "Only include guests created on or after this date (YYYY-MM-DD)", type=iso_date),
        ReportOption('created_before', "Only include guests created on or before this date (YYYY-MM-DD)", type=iso_date),
        ReportOption('domain', "Only include guests from this mail domain"),
        ReportOption('name_contains', "Only include guests whose name or mail contains this text"),
    ),
    filters=(
        INACTIVE_ONLY,
        FilterSpec('pending_only', lambda row, _value: row.get('InvitationState') == PENDING_ACCEPTANCE),
        FilterSpec('domain', equals('Domain')),
        FilterSpec('created_after', on_or_after('CreatedDate'), cost=2),
        FilterSpec('created_before', on_or_before('CreatedDate'), cost=2),
        name_filter('name_contains', 'DisplayName', 'Mail'),
    ),
    summary=SummarySpec(
        numeric_columns=('AccountAgeDays',),
        category_columns=('Status', 'Domain'),
        risk_counters=(
            ('inactive_count', lambda row: row.get('Inactive') is True),
            ('pending_count', status_is(STATUS_PENDING)),
            ('disabled_count', status_is(STATUS_DISABLED)),
        ),
    ),
)
