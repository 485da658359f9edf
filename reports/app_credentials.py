"""
App registration credential report.

One row per client secret or certificate of every app registration, with
days until expiry. Apps with no credentials get a single "No Credentials"
row so they still show up with their owners.
"""
from msgraph.generated.applications.applications_request_builder import ApplicationsRequestBuilder

from reportlib.constants import (
    CREDENTIAL_CERTIFICATE,
    CREDENTIAL_SECRET,
    NONE,
    NOT_AVAILABLE,
    REQUIRE_APPLICATION_READ,
    SERVICE_GRAPH,
    STATUS_EXPIRED,
    STATUS_EXPIRING_SOON,
    STATUS_NO_CREDENTIALS,
    STATUS_VALID,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals, within
from reportlib.mapping import classify, days_until, format_date
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import (
    APPLICATION_OWNERS,
    ORPHANED_ONLY,
    ORPHANED_ONLY_OPTION,
    is_orphaned,
    name_filter,
    owner_columns,
    status_is,
)

COLUMNS = (
    'AppName', 'AppId', 'CredentialType', 'CredentialName', 'KeyId', 'StartDate',
    'EndDate', 'DaysUntilExpiry', 'Status', 'OwnerCount', 'Owners',
)

STATUSES = (STATUS_EXPIRED, STATUS_EXPIRING_SOON, STATUS_VALID, STATUS_NO_CREDENTIALS)


def fetch_applications(session, options):
    return fetch_collection(
        session, 'applications', session.client.applications, ApplicationsRequestBuilder,
        select=['id', 'appId', 'displayName', 'passwordCredentials', 'keyCredentials'],
        top=999,
    )


def credential_status(days, expiring_days: int) -> str:
    if days is None:
        return STATUS_VALID
    return classify([
        (STATUS_EXPIRED, days < 0),
        (STATUS_EXPIRING_SOON, days <= expiring_days),
    ], STATUS_VALID)


def _credentials(app):
    for credential in app.password_credentials or []:
        yield CREDENTIAL_SECRET, credential
    for credential in app.key_credentials or []:
        yield CREDENTIAL_CERTIFICATE, credential


def map_application(app, related, now, options):
    base = {
        'AppName': app.display_name or NOT_AVAILABLE,
        'AppId': app.app_id or NOT_AVAILABLE,
    }
    base.update(owner_columns(related.get('owners', [])))

    rows = []
    for kind, credential in _credentials(app):
        days = days_until(credential.end_date_time, now)
        rows.append(dict(
            base,
            CredentialType=kind,
            CredentialName=credential.display_name or NOT_AVAILABLE,
            KeyId=str(credential.key_id) if credential.key_id else NOT_AVAILABLE,
            StartDate=format_date(credential.start_date_time),
            EndDate=format_date(credential.end_date_time),
            DaysUntilExpiry=NOT_AVAILABLE if days is None else days,
            Status=credential_status(days, options['expiring_days']),
        ))

    if not rows:
        rows.append(dict(
            base,
            CredentialType=NONE,
            CredentialName=NOT_AVAILABLE,
            KeyId=NOT_AVAILABLE,
            StartDate=NOT_AVAILABLE,
            EndDate=NOT_AVAILABLE,
            DaysUntilExpiry=NOT_AVAILABLE,
            Status=STATUS_NO_CREDENTIALS,
        ))
    return rows


REPORT = ReportDefinition(
    slug='app-credentials',
    name='AppCredentialReport',
    description="Client secrets and certificates of app registrations with expiry status",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_APPLICATION_READ,),
    columns=COLUMNS,
    fetch=fetch_applications,
    map_record=map_application,
    related=(APPLICATION_OWNERS,),
    options=(
        ReportOption('expiring_days', "Days ahead that count as expiring soon (default: 30)", type=int, default=30),
        ReportOption('expiring_within', "Only include credentials expiring within this many days", type=int),
        ReportOption('expired_only', "Only include expired credentials", type=bool),
        ReportOption('status', "Only include credentials with this status", choices=STATUSES),
        ORPHANED_ONLY_OPTION,
        ReportOption('app_contains', "Only include apps whose name contains this text"),
    ),
    filters=(
        FilterSpec('expired_only', lambda row, _value: row.get('Status') == STATUS_EXPIRED),
        FilterSpec('status', equals('Status')),
        FilterSpec('expiring_within', within('DaysUntilExpiry')),
        ORPHANED_ONLY,
        name_filter('app_contains', 'AppName'),
    ),
    summary=SummarySpec(
        category_columns=('Status', 'CredentialType'),
        risk_counters=(
            ('expired_count', status_is(STATUS_EXPIRED)),
            ('expiring_soon_count', status_is(STATUS_EXPIRING_SOON)),
            ('orphaned_count', is_orphaned),
        ),
    ),
)
