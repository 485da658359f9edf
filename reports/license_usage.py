"""
License usage report.

Consumed versus enabled units for each subscribed SKU.
"""
from reportlib.constants import (
    NOT_AVAILABLE,
    REQUIRE_ORGANIZATION_READ,
    SERVICE_GRAPH,
    STATUS_AVAILABLE,
    STATUS_NEAR_CAPACITY,
    STATUS_OVER_ALLOCATED,
)
from reportlib.fetcher import fetch_collection
from reportlib.filters import FilterSpec, at_least
from reportlib.mapping import classify, percent_used, to_int
from reportlib.models import ReportDefinition, ReportOption, SummarySpec

from .common import name_filter, status_is

COLUMNS = (
    'SkuPartNumber', 'SkuId', 'CapabilityStatus', 'AppliesTo', 'EnabledUnits',
    'ConsumedUnits', 'AvailableUnits', 'SuspendedUnits', 'WarningUnits',
    'PercentUsed', 'Status',
)


def fetch_skus(session, options):
    return fetch_collection(session, 'subscribed SKUs', session.client.subscribed_skus)


def map_sku(sku, related, now, options):
    units = sku.prepaid_units
    enabled = to_int(getattr(units, 'enabled', 0))
    consumed = to_int(sku.consumed_units)
    percent = percent_used(consumed, enabled)

    return [{
        'SkuPartNumber': sku.sku_part_number or str(sku.sku_id),
        'SkuId': str(sku.sku_id),
        'CapabilityStatus': sku.capability_status or NOT_AVAILABLE,
        'AppliesTo': sku.applies_to or NOT_AVAILABLE,
        'EnabledUnits': enabled,
        'ConsumedUnits': consumed,
        'AvailableUnits': max(enabled - consumed, 0),
        'SuspendedUnits': to_int(getattr(units, 'suspended', 0)),
        'WarningUnits': to_int(getattr(units, 'warning', 0)),
        'PercentUsed': percent,
        'Status': classify([
            (STATUS_OVER_ALLOCATED, consumed > enabled),
            (STATUS_NEAR_CAPACITY, percent >= options['warning_percent']),
        ], STATUS_AVAILABLE),
    }]


REPORT = ReportDefinition(
    slug='license-usage',
    name='LicenseUsageReport',
    description="Consumed versus purchased units for every subscribed license SKU",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_ORGANIZATION_READ,),
    columns=COLUMNS,
    fetch=fetch_skus,
    map_record=map_sku,
    options=(
        ReportOption('warning_percent', "Percent consumed that counts as near capacity (default: 90)",
                     type=int, default=90),
        ReportOption('min_percent', "Only include SKUs at least this percent consumed", type=int),
        ReportOption('sku_contains', "Only include SKUs whose part number contains this text"),
    ),
    filters=(
        FilterSpec('min_percent', at_least('PercentUsed')),
        name_filter('sku_contains', 'SkuPartNumber'),
    ),
    summary=SummarySpec(
        numeric_columns=('EnabledUnits', 'ConsumedUnits', 'AvailableUnits'),
        category_columns=('Status', 'CapabilityStatus'),
        risk_counters=(
            ('over_allocated_count', status_is(STATUS_OVER_ALLOCATED)),
            ('near_capacity_count', status_is(STATUS_NEAR_CAPACITY)),
        ),
    ),
)
