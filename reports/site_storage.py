"""
SharePoint site storage report.

Storage used against each site's quota, classified Over Quota / Near Quota /
Inactive / Active (highest severity first). Runs against the sharepoint
service so the tenant's admin URL is known; sites outside the tenant's
SharePoint host are left out.
"""
import logging
from urllib.parse import urlparse

from reportlib.constants import (
    REQUIRE_REPORTS_READ,
    SERVICE_SHAREPOINT,
    STATUS_NEAR_QUOTA,
    STATUS_OVER_QUOTA,
)
from reportlib.fetcher import fetch_usage_report
from reportlib.filters import FilterSpec, at_least
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

logger = logging.getLogger(__name__)

COLUMNS = (
    'SiteUrl', 'OwnerDisplayName', 'OwnerPrincipalName', 'Template',
    'LastActivityDate', 'DaysSinceActivity', 'Inactive', 'FileCount',
    'ActiveFileCount', 'PageViewCount', 'StorageUsageCurrentMB',
    'StorageQuotaMB', 'PercentUsed', 'Status',
)


def _on_tenant_host(record, host: str) -> bool:
    url = record.get('Site URL') or ''
    if not url:
        # concealed by the tenant's report privacy setting
        return True
    return (urlparse(url).hostname or '').lower() == host


def fetch_site_usage(session, options):
    builder = session.client.reports.get_share_point_site_usage_detail_with_period(options['period'])
    rows = fetch_usage_report(session, 'sites', builder)

    host = session.tenant_host
    if isinstance(host, str):
        kept = [row for row in rows if _on_tenant_host(row, host)]
        if len(kept) != len(rows):
            logger.info(f"Skipped {len(rows) - len(kept)} sites outside {host}")
        rows = kept
    return rows


def map_site(record, related, now, options):
    days = days_since(record.get('Last Activity Date'), now)
    inactive = is_inactive(days, options['inactive_days'])
    used = record.get('Storage Used (Byte)')
    quota = record.get('Storage Allocated (Byte)')
    percent = percent_used(used, quota)

    return [{
        'SiteUrl': record.get('Site URL', ''),
        'OwnerDisplayName': record.get('Owner Display Name', ''),
        'OwnerPrincipalName': record.get('Owner Principal Name', ''),
        'Template': record.get('Root Web Template', ''),
        'LastActivityDate': format_date(record.get('Last Activity Date')),
        'DaysSinceActivity': days,
        'Inactive': inactive,
        'FileCount': to_int(record.get('File Count')),
        'ActiveFileCount': to_int(record.get('Active File Count')),
        'PageViewCount': to_int(record.get('Page View Count')),
        'StorageUsageCurrentMB': bytes_to_mb(used),
        'StorageQuotaMB': bytes_to_mb(quota),
        'PercentUsed': percent,
        'Status': storage_status(
            percent, options['warning_percent'], inactive, to_bool(record.get('Is Deleted'))
        ),
    }]


REPORT = ReportDefinition(
    slug='site-storage',
    name='SiteStorageReport',
    description="SharePoint site storage against quota, with inactive sites",
    service=SERVICE_SHAREPOINT,
    scopes=(REQUIRE_REPORTS_READ,),
    columns=COLUMNS,
    fetch=fetch_site_usage,
    map_record=map_site,
    options=(
        PERIOD_OPTION,
        inactive_option(180),
        WARNING_PERCENT_OPTION,
        INACTIVE_ONLY_OPTION,
        OVER_QUOTA_ONLY_OPTION,
        ReportOption('min_percent', "Only include sites using at least this percent of quota", type=int),
        ReportOption('url_contains', "Only include sites whose URL contains this text"),
    ),
    filters=(
        INACTIVE_ONLY,
        OVER_QUOTA_ONLY,
        FilterSpec('min_percent', at_least('PercentUsed'), cost=2),
        name_filter('url_contains', 'SiteUrl'),
    ),
    summary=SummarySpec(
        numeric_columns=('StorageUsageCurrentMB', 'StorageQuotaMB', 'PercentUsed'),
        category_columns=('Status', 'Template'),
        risk_counters=(
            ('over_quota_count', status_is(STATUS_OVER_QUOTA)),
            ('near_quota_count', status_is(STATUS_NEAR_QUOTA)),
            ('inactive_count', lambda row: row.get('Inactive') is True),
        ),
    ),
)
