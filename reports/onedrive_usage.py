"""
OneDrive usage report.
"""
from reportlib.constants import REQUIRE_REPORTS_READ, SERVICE_GRAPH, STATUS_NEAR_QUOTA, STATUS_OVER_QUOTA
from reportlib.fetcher import fetch_usage_report
from reportlib.filters import FilterSpec, at_least, flag
from reportlib.mapping import bytes_to_mb, days_since, format_date, is_inactive, percent_used, to_bool, to_int
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
    'OwnerDisplayName', 'OwnerPrincipalName', 'SiteUrl', 'LastActivityDate',
    'DaysSinceActivity', 'Inactive', 'FileCount', 'ActiveFileCount',
    'StorageUsedMB', 'StorageAllocatedMB', 'PercentUsed', 'IsDeleted', 'Status',
)


def fetch_onedrive_usage(session, options):
    builder = session.client.reports.get_one_drive_usage_account_detail_with_period(options['period'])
    return fetch_usage_report(session, 'OneDrive accounts', builder)


def map_onedrive(record, related, now, options):
    days = days_since(record.get('Last Activity Date'), now)
    inactive = is_inactive(days, options['inactive_days'])
    used = record.get('Storage Used (Byte)')
    allocated = record.get('Storage Allocated (Byte)')
    percent = percent_used(used, allocated)
    deleted = to_bool(record.get('Is Deleted'))

    return [{
        'OwnerDisplayName': record.get('Owner Display Name', ''),
        'OwnerPrincipalName': record.get('Owner Principal Name', ''),
        'SiteUrl': record.get('Site URL', ''),
        'LastActivityDate': format_date(record.get('Last Activity Date')),
        'DaysSinceActivity': days,
        'Inactive': inactive,
        'FileCount': to_int(record.get('File Count')),
        'ActiveFileCount': to_int(record.get('Active File Count')),
        'StorageUsedMB': bytes_to_mb(used),
        'StorageAllocatedMB': bytes_to_mb(allocated),
        'PercentUsed': percent,
        'IsDeleted': deleted,
        'Status': storage_status(percent, options['warning_percent'], inactive, deleted),
    }]


REPORT = ReportDefinition(
    slug='onedrive-usage',
    name='OneDriveUsageReport',
    description="OneDrive storage and activity per account",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_REPORTS_READ,),
    columns=COLUMNS,
    fetch=fetch_onedrive_usage,
    map_record=map_onedrive,
    options=(
        PERIOD_OPTION,
        inactive_option(90),
        WARNING_PERCENT_OPTION,
        INACTIVE_ONLY_OPTION,
        OVER_QUOTA_ONLY_OPTION,
        ReportOption('exclude_deleted', "Leave out OneDrives of deleted users", type=bool),
        ReportOption('min_storage_mb', "Only include accounts using at least this many MB", type=int),
        ReportOption('user_contains', "Only include accounts whose owner name or UPN contains this text"),
    ),
    filters=(
        FilterSpec('exclude_deleted', flag('IsDeleted', False)),
        INACTIVE_ONLY,
        OVER_QUOTA_ONLY,
        FilterSpec('min_storage_mb', at_least('StorageUsedMB'), cost=2),
        name_filter('user_contains', 'OwnerPrincipalName', 'OwnerDisplayName'),
    ),
    summary=SummarySpec(
        numeric_columns=('StorageUsedMB', 'FileCount'),
        category_columns=('Status',),
        risk_counters=(
            ('inactive_count', lambda row: row.get('Inactive') is True),
            ('over_quota_count', status_is(STATUS_OVER_QUOTA)),
            ('near_quota_count', status_is(STATUS_NEAR_QUOTA)),
        ),
    ),
)
