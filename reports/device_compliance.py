"""
Intune device compliance report.

Risk levels:
- High:   non-compliant, or jailbroken/rooted
- Medium: compliance not established (unknown, error, conflict, grace
          period), not encrypted, or not synced within stale_days
- Low:    compliant, encrypted and recently synced
"""
from msgraph.generated.device_management.managed_devices.managed_devices_request_builder import (
    ManagedDevicesRequestBuilder,
)

from reportlib.constants import (
    NOT_AVAILABLE,
    REQUIRE_DEVICES_READ,
    RISK_HIGH,
    RISK_LEVELS,
    RISK_LOW,
    RISK_MEDIUM,
    SERVICE_GRAPH,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, equals
from reportlib.mapping import classify, days_since, enum_text, format_date, is_inactive, to_bool
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import name_filter

COLUMNS = (
    'DeviceName', 'UserPrincipalName', 'OperatingSystem', 'OSVersion', 'Model',
    'Ownership', 'ComplianceState', 'IsEncrypted', 'JailBroken', 'LastSyncDate',
    'DaysSinceSync', 'Stale', 'EnrolledDate', 'RiskLevel',
)

DEVICE_SELECT = [
    'id', 'deviceName', 'userPrincipalName', 'operatingSystem', 'osVersion', 'model',
    'managedDeviceOwnerType', 'complianceState', 'isEncrypted', 'jailBroken',
    'lastSyncDateTime', 'enrolledDateTime',
]

COMPLIANT = 'compliant'
NONCOMPLIANT = 'noncompliant'
UNSETTLED_STATES = ('unknown', 'error', 'conflict', 'inGracePeriod')


def fetch_devices(session, options):
    return fetch_collection(
        session, 'managed devices', session.client.device_management.managed_devices,
        ManagedDevicesRequestBuilder, select=DEVICE_SELECT,
    )


def device_risk(state: str, jailbroken: bool, encrypted: bool, stale: bool) -> str:
    return classify([
        (RISK_HIGH, state == NONCOMPLIANT or jailbroken),
        (RISK_MEDIUM, state in UNSETTLED_STATES or not encrypted or stale),
    ], RISK_LOW)


def map_device(device, related, now, options):
    state = enum_text(device.compliance_state, default='unknown')
    jailbroken = to_bool(device.jail_broken)
    encrypted = to_bool(device.is_encrypted)
    days = days_since(device.last_sync_date_time, now)
    stale = is_inactive(days, options['stale_days'])

    return [{
        'DeviceName': device.device_name or NOT_AVAILABLE,
        'UserPrincipalName': device.user_principal_name or NOT_AVAILABLE,
        'OperatingSystem': device.operating_system or NOT_AVAILABLE,
        'OSVersion': device.os_version or NOT_AVAILABLE,
        'Model': device.model or NOT_AVAILABLE,
        'Ownership': enum_text(device.managed_device_owner_type),
        'ComplianceState': state,
        'IsEncrypted': encrypted,
        'JailBroken': jailbroken,
        'LastSyncDate': format_date(device.last_sync_date_time),
        'DaysSinceSync': days,
        'Stale': stale,
        'EnrolledDate': format_date(device.enrolled_date_time),
        'RiskLevel': device_risk(state, jailbroken, encrypted, stale),
    }]


REPORT = ReportDefinition(
    slug='device-compliance',
    name='DeviceComplianceReport',
    description="Intune managed device compliance, encryption and sync state with a risk level",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_DEVICES_READ,),
    columns=COLUMNS,
    fetch=fetch_devices,
    map_record=map_device,
    options=(
        ReportOption('stale_days', "Days since last sync before a device counts as stale (default: 30)",
                     type=int, default=30),
        ReportOption('noncompliant_only', "Only include devices that are not compliant", type=bool),
        ReportOption('os', "Only include devices running this operating system (e.g. Windows, iOS)"),
        ReportOption('risk_level', "Only include devices at this risk level", choices=RISK_LEVELS),
        ReportOption('user_contains', "Only include devices whose user or name contains this text"),
    ),
    filters=(
        FilterSpec('noncompliant_only', lambda row, _value: row.get('ComplianceState') != COMPLIANT),
        FilterSpec('os', equals('OperatingSystem')),
        FilterSpec('risk_level', equals('RiskLevel')),
        name_filter('user_contains', 'UserPrincipalName', 'DeviceName'),
    ),
    summary=SummarySpec(
        category_columns=('ComplianceState', 'OperatingSystem', 'RiskLevel'),
        risk_counters=(
            ('high_risk_count', lambda row: row.get('RiskLevel') == RISK_HIGH),
            ('noncompliant_count', lambda row: row.get('ComplianceState') == NONCOMPLIANT),
            ('stale_count', lambda row: row.get('Stale') is True),
            ('unencrypted_count', lambda row: row.get('IsEncrypted') is False),
        ),
    ),
)
