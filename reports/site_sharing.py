"""
SharePoint site external user report.

One row per external user per site, read from each site's hidden user
information list. People from outside the tenant are recognised by their
login name (guest accounts carry ``#ext#``, invited and anonymous link users
an ``urn:spo`` claim). Sites without external users produce no rows; a site
whose user list could not be read produces a single "Unknown" row.
"""
from typing import Any, List

from msgraph.generated.sites.item.lists.item.items.items_request_builder import ItemsRequestBuilder
from msgraph.generated.sites.sites_request_builder import SitesRequestBuilder

from reportlib.constants import (
    EXTERNAL_LOGIN_MARKERS,
    NOT_AVAILABLE,
    REQUIRE_SITES_READ,
    SERVICE_GRAPH,
    UNKNOWN,
)
from reportlib.fetcher import build_request_configuration, collect_pages, fetch_collection
from reportlib.filters import FilterSpec, equals, flag
from reportlib.mapping import format_date, mail_domain, to_bool
from reportlib.models import ReportDefinition, ReportOption, RelatedFetch, SummarySpec

from .common import name_filter

COLUMNS = (
    'SiteName', 'SiteUrl', 'SiteId', 'UserName', 'Email', 'Domain',
    'LoginName', 'SiteAdmin', 'AddedDate',
)

SITE_SELECT = ['id', 'displayName', 'name', 'webUrl']

USER_INFORMATION_LIST = 'User Information List'


def fetch_sites(session, options):
    return fetch_collection(
        session, 'sites', session.client.sites, SitesRequestBuilder, search='*', select=SITE_SELECT
    )


def site_users(session, site) -> List[Any]:
    builder = session.client.sites.by_site_id(site.id).lists.by_list_id(USER_INFORMATION_LIST).items
    return collect_pages(session, builder, build_request_configuration(ItemsRequestBuilder, expand=['fields']))


SITE_USERS = RelatedFetch('users', 'site users', site_users)


def user_field(item, name: str) -> Any:
    fields = getattr(item, 'fields', None)
    return (getattr(fields, 'additional_data', None) or {}).get(name)


def is_external_login(login_name: Any) -> bool:
    if not isinstance(login_name, str):
        return False
    login = login_name.lower()
    return any(marker in login for marker in EXTERNAL_LOGIN_MARKERS)


def external_users(users):
    if isinstance(users, str):
        return users
    return [user for user in users or [] if is_external_login(user_field(user, 'Name'))]


def map_site_external_users(site, related, now, options):
    base = {
        'SiteName': site.display_name or site.name or site.id,
        'SiteUrl': site.web_url or NOT_AVAILABLE,
        'SiteId': site.id,
    }
    users = external_users(related.get('users', []))
    if isinstance(users, str):
        return [dict(base, UserName=users, Email=users, Domain=users, LoginName=users,
                     SiteAdmin=users, AddedDate=users)]

    rows = []
    for user in users:
        email = user_field(user, 'EMail')
        rows.append(dict(
            base,
            UserName=user_field(user, 'Title') or email or NOT_AVAILABLE,
            Email=email or NOT_AVAILABLE,
            Domain=mail_domain(email),
            LoginName=user_field(user, 'Name'),
            SiteAdmin=to_bool(user_field(user, 'IsSiteAdmin')),
            AddedDate=format_date(user_field(user, 'Created') or getattr(user, 'created_date_time', None)),
        ))
    return rows


REPORT = ReportDefinition(
    slug='site-sharing',
    name='SiteExternalUserReport',
    description="External users with access to each SharePoint site, one row per user",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_SITES_READ,),
    columns=COLUMNS,
    fetch=fetch_sites,
    map_record=map_site_external_users,
    related=(SITE_USERS,),
    options=(
        ReportOption('domain', "Only include external users from this mail domain"),
        ReportOption('admins_only', "Only include external users who are site admins", type=bool),
        ReportOption('site_contains', "Only include sites whose name or URL contains this text"),
    ),
    filters=(
        FilterSpec('admins_only', flag('SiteAdmin')),
        FilterSpec('domain', equals('Domain')),
        name_filter('site_contains', 'SiteName', 'SiteUrl'),
    ),
    summary=SummarySpec(
        category_columns=('Domain', 'SiteUrl'),
        risk_counters=(
            ('external_admin_count', lambda row: row.get('SiteAdmin') is True),
            ('unknown_membership_count', lambda row: row.get('UserName') == UNKNOWN),
        ),
    ),
)
