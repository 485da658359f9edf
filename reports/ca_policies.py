"""
Conditional Access policy report.

Risk levels:
- High:   a policy that blocks or requires MFA but is not enforced
          (disabled or report-only)
- Medium: an enforced policy with user or group exclusions, or one that
          targets legacy authentication clients without blocking them
- Low:    everything else
"""
from msgraph.generated.identity.conditional_access.policies.policies_request_builder import (
    PoliciesRequestBuilder,
)

from reportlib.constants import (
    NOT_AVAILABLE,
    REQUIRE_POLICY_READ,
    RISK_HIGH,
    RISK_LEVELS,
    RISK_LOW,
    RISK_MEDIUM,
    SERVICE_GRAPH,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals, flag
from reportlib.mapping import classify, enum_text, format_date, join_values
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import name_filter

COLUMNS = (
    'PolicyName', 'PolicyId', 'State', 'CreatedDate', 'ModifiedDate', 'IncludeUsers',
    'ExcludeUsers', 'IncludeGroups', 'ExcludeGroups', 'IncludeApplications',
    'ClientAppTypes', 'GrantControls', 'GrantOperator', 'RequiresMfa',
    'BlocksAccess', 'RiskLevel',
)

STATE_ENABLED = 'enabled'
STATE_DISABLED = 'disabled'
STATE_REPORT_ONLY = 'enabledForReportingButNotEnforced'
STATES = (STATE_ENABLED, STATE_DISABLED, STATE_REPORT_ONLY)

LEGACY_CLIENT_APP_TYPES = ('exchangeActiveSync', 'other')


def fetch_policies(session, options):
    return fetch_collection(
        session, 'conditional access policies',
        session.client.identity.conditional_access.policies, PoliciesRequestBuilder,
    )


def _texts(values):
    return [enum_text(v) for v in values or []]


def policy_risk(state: str, protective: bool, has_exclusions: bool, legacy_unblocked: bool) -> str:
    return classify([
        (RISK_HIGH, protective and state != STATE_ENABLED),
        (RISK_MEDIUM, state == STATE_ENABLED and (has_exclusions or legacy_unblocked)),
    ], RISK_LOW)


def map_policy(policy, related, now, options):
    conditions = policy.conditions
    users = getattr(conditions, 'users', None)
    applications = getattr(conditions, 'applications', None)
    grant = policy.grant_controls

    state = enum_text(policy.state)
    controls = _texts(getattr(grant, 'built_in_controls', None))
    client_apps = _texts(getattr(conditions, 'client_app_types', None))
    exclude_users = list(getattr(users, 'exclude_users', None) or [])
    exclude_groups = list(getattr(users, 'exclude_groups', None) or [])

    requires_mfa = 'mfa' in controls
    blocks = 'block' in controls
    legacy_unblocked = any(app in LEGACY_CLIENT_APP_TYPES for app in client_apps) and not blocks

    return [{
        'PolicyName': policy.display_name or policy.id,
        'PolicyId': policy.id,
        'State': state,
        'CreatedDate': format_date(policy.created_date_time),
        'ModifiedDate': format_date(policy.modified_date_time),
        'IncludeUsers': join_values(getattr(users, 'include_users', None)),
        'ExcludeUsers': join_values(exclude_users),
        'IncludeGroups': join_values(getattr(users, 'include_groups', None)),
        'ExcludeGroups': join_values(exclude_groups),
        'IncludeApplications': join_values(getattr(applications, 'include_applications', None)),
        'ClientAppTypes': join_values(client_apps),
        'GrantControls': join_values(controls),
        'GrantOperator': getattr(grant, 'operator', None) or NOT_AVAILABLE,
        'RequiresMfa': requires_mfa,
        'BlocksAccess': blocks,
        'RiskLevel': policy_risk(
            state, requires_mfa or blocks, bool(exclude_users or exclude_groups), legacy_unblocked
        ),
    }]


REPORT = ReportDefinition(
    slug='ca-policies',
    name='ConditionalAccessReport',
    description="Conditional Access policies with targets, grant controls and a risk level",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_POLICY_READ,),
    columns=COLUMNS,
    fetch=fetch_policies,
    map_record=map_policy,
    options=(
        ReportOption('state', "Only include policies in this state", choices=STATES),
        ReportOption('risk_level', "Only include policies at this risk level", choices=RISK_LEVELS),
        ReportOption('mfa_only', "Only include policies that require MFA", type=bool),
        ReportOption('name_contains', "Only include policies whose name contains this text"),
    ),
    filters=(
        FilterSpec('state', equals('State')),
        FilterSpec('risk_level', equals('RiskLevel')),
        FilterSpec('mfa_only', flag('RequiresMfa')),
        name_filter('name_contains', 'PolicyName'),
    ),
    summary=SummarySpec(
        category_columns=('State', 'RiskLevel'),
        risk_counters=(
            ('high_risk_count', lambda row: row.get('RiskLevel') == RISK_HIGH),
            ('disabled_count', lambda row: row.get('State') == STATE_DISABLED),
            ('report_only_count', lambda row: row.get('State') == STATE_REPORT_ONLY),
        ),
    ),
)
