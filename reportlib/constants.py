"""
Constants for the M365 admin reports.

This module defines all magic strings and numbers used across the reports
to prevent typos, ensure consistency, and make maintenance easier.
"""

# =============================================================================
# Byte/Size Conversion Constants
# =============================================================================

BYTES_PER_MB = 1024 ** 2

# =============================================================================
# Sentinel Values
# =============================================================================

# Days value used when a timestamp was never observed (no sign-in, no activity)
NEVER_OBSERVED_DAYS = 999

NOT_AVAILABLE = "N/A"
UNKNOWN = "Unknown"  # Related record could not be fetched
NONE = "None"        # Related collection fetched but empty

LIST_SEPARATOR = "; "

# =============================================================================
# Services and Authentication
# =============================================================================

SERVICE_GRAPH = "graph"
SERVICE_SHAREPOINT = "sharepoint"

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_BETA_URL = "https://graph.microsoft.com/beta"

# Environment variables for app-only credentials
ENV_TENANT_ID = "MS365_TENANT_ID"
ENV_CLIENT_ID = "MS365_CLIENT_ID"
ENV_CLIENT_SECRET = "MS365_CLIENT_SECRET"
ENV_ADMIN_URL = "MS365_SHAREPOINT_ADMIN_URL"

# Tenant SharePoint admin center, e.g. https://contoso-admin.sharepoint.com
SHAREPOINT_ADMIN_URL_PATTERN = r'^https://([A-Za-z0-9][A-Za-z0-9-]*)-admin\.sharepoint\.com/?$'

# Graph error codes that indicate auth/permission issues
GRAPH_AUTH_ERROR_CODES = {
    'Authorization_RequestDenied', 'InvalidAuthenticationToken',
    'Forbidden', 'accessDenied', 'Unauthorized', 'S2SUnauthorized',
}
GRAPH_AUTH_STATUS_CODES = {401, 403}

# =============================================================================
# Graph Permissions (application)
# =============================================================================

PERM_GROUP_READ = "Group.Read.All"
PERM_GROUP_MEMBER_READ = "GroupMember.Read.All"
PERM_USER_READ = "User.Read.All"
PERM_AUDIT_LOG_READ = "AuditLog.Read.All"
PERM_REPORTS_READ = "Reports.Read.All"
PERM_SITES_READ = "Sites.Read.All"
PERM_TEAM_SETTINGS_READ = "TeamSettings.Read.All"
PERM_DEVICES_READ = "DeviceManagementManagedDevices.Read.All"
PERM_APPLICATION_READ = "Application.Read.All"
PERM_ORGANIZATION_READ = "Organization.Read.All"
PERM_POLICY_READ = "Policy.Read.All"
PERM_DIRECTORY_READ = "Directory.Read.All"
PERM_MESSAGE_TRACE_READ = "ExchangeMessageTrace.Read.All"

# A requirement is satisfied by any one of its permissions. The least
# privileged permission comes first and is the one shown to the user.
REQUIRE_GROUP_READ = (PERM_GROUP_READ, PERM_DIRECTORY_READ, "Group.ReadWrite.All", "Directory.ReadWrite.All")
REQUIRE_GROUP_MEMBER_READ = (PERM_GROUP_MEMBER_READ,) + REQUIRE_GROUP_READ
REQUIRE_USER_READ = (PERM_USER_READ, PERM_DIRECTORY_READ, "User.ReadWrite.All", "Directory.ReadWrite.All")
REQUIRE_AUDIT_LOG_READ = (PERM_AUDIT_LOG_READ,)
REQUIRE_REPORTS_READ = (PERM_REPORTS_READ,)
REQUIRE_SITES_READ = (PERM_SITES_READ, "Sites.ReadWrite.All", "Sites.FullControl.All")
REQUIRE_TEAM_SETTINGS_READ = (PERM_TEAM_SETTINGS_READ, "TeamSettings.ReadWrite.All") + REQUIRE_GROUP_READ
REQUIRE_DEVICES_READ = (PERM_DEVICES_READ, "DeviceManagementManagedDevices.ReadWrite.All")
REQUIRE_APPLICATION_READ = (PERM_APPLICATION_READ, PERM_DIRECTORY_READ, "Application.ReadWrite.All")
REQUIRE_ORGANIZATION_READ = (PERM_ORGANIZATION_READ, PERM_DIRECTORY_READ, "Organization.ReadWrite.All")
REQUIRE_POLICY_READ = (PERM_POLICY_READ,)
REQUIRE_MESSAGE_TRACE_READ = (PERM_MESSAGE_TRACE_READ,)

# =============================================================================
# Usage Reports
# =============================================================================

USAGE_PERIODS = ("D7", "D30", "D90", "D180")
DEFAULT_USAGE_PERIOD = "D180"

# =============================================================================
# Classification Labels
# =============================================================================

STATUS_ACTIVE = "Active"
STATUS_INACTIVE = "Inactive"
STATUS_OVER_QUOTA = "Over Quota"
STATUS_NEAR_QUOTA = "Near Quota"
STATUS_ORPHANED = "Orphaned"
STATUS_EMPTY = "Empty"
STATUS_DELETED = "Deleted"
STATUS_DISABLED = "Disabled"
STATUS_EXPIRED = "Expired"
STATUS_EXPIRING_SOON = "Expiring Soon"
STATUS_VALID = "Valid"
STATUS_PENDING = "Pending Acceptance"
STATUS_NO_EXPIRATION = "No Expiration"
STATUS_NO_CREDENTIALS = "No Credentials"
STATUS_OVER_ALLOCATED = "Over Allocated"
STATUS_NEAR_CAPACITY = "Near Capacity"
STATUS_AVAILABLE = "Available"

RISK_HIGH = "High"
RISK_MEDIUM = "Medium"
RISK_LOW = "Low"
RISK_LEVELS = (RISK_HIGH, RISK_MEDIUM, RISK_LOW)

# =============================================================================
# Output
# =============================================================================

OUTPUT_TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S'
DATE_FORMAT = '%Y-%m-%d'

# =============================================================================
# Directory Objects
# =============================================================================

GROUP_TYPE_UNIFIED = "Unified"  # Microsoft 365 group marker in groupTypes

GROUP_KIND_M365 = "Microsoft365"
GROUP_KIND_SECURITY = "Security"
GROUP_KIND_MAIL_SECURITY = "MailEnabledSecurity"
GROUP_KIND_DISTRIBUTION = "Distribution"
GROUP_KIND_OTHER = "Other"
GROUP_KINDS = (
    GROUP_KIND_M365, GROUP_KIND_SECURITY, GROUP_KIND_MAIL_SECURITY,
    GROUP_KIND_DISTRIBUTION, GROUP_KIND_OTHER,
)

TEAM_ROLE_OWNER = "owner"
TEAM_ROLE_GUEST = "guest"

CREDENTIAL_SECRET = "Secret"
CREDENTIAL_CERTIFICATE = "Certificate"

# Login name markers of people outside the tenant in a site's user list
EXTERNAL_LOGIN_MARKERS = ('#ext#', 'urn:spo:guest', 'urn:spo:anon')

# =============================================================================
# Message Trace
# =============================================================================

MESSAGE_TRACE_MAX_DAYS = 10  # widest window one trace query accepts
MESSAGE_TRACE_DEFAULT_DAYS = 2

TRACE_STATUS_DELIVERED = "Delivered"
TRACE_STATUS_FAILED = "Failed"
TRACE_STATUS_QUARANTINED = "Quarantined"
TRACE_STATUS_SPAM = "FilteredAsSpam"
TRACE_PROBLEM_STATUSES = (TRACE_STATUS_FAILED, TRACE_STATUS_QUARANTINED, TRACE_STATUS_SPAM)
