"""
Report definitions, keyed by CLI name.
"""
from . import (
    app_credentials,
    ca_policies,
    device_compliance,
    group_expiration,
    group_owners,
    guest_users,
    license_usage,
    mailbox_activity,
    message_trace,
    onedrive_usage,
    site_sharing,
    site_storage,
    team_guests,
    teams_settings,
)

REPORTS = {
    module.REPORT.slug: module.REPORT
    for module in (
        group_owners,
        group_expiration,
        mailbox_activity,
        message_trace,
        site_storage,
        site_sharing,
        onedrive_usage,
        team_guests,
        teams_settings,
        guest_users,
        device_compliance,
        app_credentials,
        license_usage,
        ca_policies,
    )
}


def get_report(slug: str):
    """Look up a report definition by its CLI name."""
    return REPORTS[slug]


__all__ = ['REPORTS', 'get_report']
