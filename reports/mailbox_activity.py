"""
Mailbox activity report.

Built on the Exchange mailbox usage detail report: last activity, item count
and storage against the prohibit-send quota for every mailbox.
"""
from reportlib.constants import REQUIRE_REPORTS_READ, SERVICE_GRAPH, STATUS_NEAR_QUOTA, STATUS_OVER_QUOTA
from reportlib.fetcher import fetch_usage_report
from reportlib.filters import FilterSpec, at_least, flag
from reportlib.mapping import (
    bytes_to_mb,
    days_since,
    format_date,
    is_inactive,
    percent_used,
    to_bool,
    to_int,
)
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import (
    INACTIVE_ONLY,
    INACTIVE_ONLY_OPTION,
    OVER_QUOTA_ONLY,
    OVER_QUOTA_ONLY_OPTION,
    PERIOD_OPTION,
    WARNING_PERCENT_OPTION,
    inactive_option,
    name_filter,
    status_is,
    storage_status,
)

COLUMNS = (
    'UserPrincipalName', 'DisplayName', 'CreatedDate', 'LastActivityDate',
    'DaysSinceActivity', 'Inactive', 'ItemCount', 'StorageUsedMB',
    'ProhibitSendQuotaMB', 'PercentUsed', 'HasArchive', 'IsDeleted', 'Status',
)


def fetch_mailbox_usage(session, options):
    builder = session.client.reports.get_mailbox_usage_detail_with_period(options['period'])
    return fetch_usage_report(session, 'mailboxes', builder)


def map_mailbox(record, related, now, options):
    days = days_since(record.get('Last Activity Date'), now)
    inactive = is_inactive(days, options['inactive_days'])
    used = record.get('Storage Used (Byte)')
    quota = record.get('Prohibit Send Quota (Byte)')
    percent = percent_used(used, quota)
    deleted = to_bool(record.get('Is Deleted'))

    return [{
        'UserPrincipalName': record.get('User Principal Name', ''),
        'DisplayName': record.get('Display Name', ''),
        'CreatedDate': format_date(record.get('Created Date')),
        'LastActivityDate': format_date(record.get('Last Activity Date')),
        'DaysSinceActivity': days,
        'Inactive': inactive,
        'ItemCount': to_int(record.get('Item Count')),
        'StorageUsedMB': bytes_to_mb(used),
        'ProhibitSendQuotaMB': bytes_to_mb(quota),
        'PercentUsed': percent,
        'HasArchive': to_bool(record.get('Has Archive')),
        'IsDeleted': deleted,
        'Status': storage_status(percent, options['warning_percent'], inactive, deleted),
    }]


REPORT = ReportDefinition(
    slug='mailbox-activity',
    name='MailboxActivityReport',
    description="Mailbox last activity, item counts and storage against quota",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_REPORTS_READ,),
    columns=COLUMNS,
    fetch=fetch_mailbox_usage,
    map_record=map_mailbox,
    options=(
        PERIOD_OPTION,
        inactive_option(90),
        WARNING_PERCENT_OPTION,
        INACTIVE_ONLY_OPTION,
        OVER_QUOTA_ONLY_OPTION,
        ReportOption('exclude_deleted', "Leave out soft-deleted mailboxes", type=bool),
        ReportOption('min_storage_mb', "Only include mailboxes using at least this many MB", type=int),
        ReportOption('user_contains', "Only include mailboxes whose UPN or name contains this text"),
    ),
    filters=(
        FilterSpec('exclude_deleted', flag('IsDeleted', False)),
        INACTIVE_ONLY,
        OVER_QUOTA_ONLY,
        FilterSpec('min_storage_mb', at_least('StorageUsedMB'), cost=2),
        name_filter('user_contains', 'UserPrincipalName', 'DisplayName'),
    ),
    summary=SummarySpec(
        numeric_columns=('StorageUsedMB', 'ItemCount'),
        category_columns=('Status',),
        risk_counters=(
            ('inactive_count', lambda row: row.get('Inactive') is True),
            ('over_quota_count', status_is(STATUS_OVER_QUOTA)),
            ('near_quota_count', status_is(STATUS_NEAR_QUOTA)),
        ),
    ),
)
