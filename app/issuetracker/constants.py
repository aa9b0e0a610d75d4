"""
Central constants for the issue tracker: role names, enum values, and the issue status table.
"""
from __future__ import annotations

# Roles
ROLE_ADMIN = "ADMIN"
ROLE_ACCOUNT_MANAGER = "ACCOUNT_MANAGER"
ROLE_DEVELOPER = "DEVELOPER"
ROLE_CLIENT = "CLIENT"
ROLE_USER = "USER"
ROLES = (ROLE_ADMIN, ROLE_ACCOUNT_MANAGER, ROLE_DEVELOPER, ROLE_CLIENT, ROLE_USER)

# Issues
ISSUE_STATUSES = (
    "NEW",
    "ASSIGNED",
    "IN_PROGRESS",
    "PENDING",
    "NEEDS_REVIEW",
    "FIXED",
    "CLOSED",
    "WONT_FIX",
)

# Statuses that still count towards due-date tracking
ACTIVE_ISSUE_STATUSES = ("NEW", "ASSIGNED", "IN_PROGRESS", "PENDING", "NEEDS_REVIEW")

ISSUE_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

ENVIRONMENTS = ("PRODUCTION", "STAGING", "DEVELOPMENT", "TEST", "LOCAL")

HOW_DISCOVERED = (
    "AUTOMATED_TESTING",
    "CLIENT_REFERRED",
    "MANUAL_TESTING",
    "MONITORING_TOOL",
    "OTHER",
    "QA_TEAM",
    "REFERRAL",
    "SELF_DISCOVERED",
    "SOCIAL_MEDIA",
    "WEB_SEARCH",
)

ALLOWED_STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "NEW": ("ASSIGNED", "IN_PROGRESS", "CLOSED", "WONT_FIX"),
    "ASSIGNED": ("IN_PROGRESS", "PENDING", "CLOSED", "WONT_FIX"),
    "IN_PROGRESS": ("PENDING", "NEEDS_REVIEW", "FIXED", "CLOSED", "WONT_FIX"),
    "PENDING": ("IN_PROGRESS", "NEEDS_REVIEW", "FIXED", "CLOSED", "WONT_FIX"),
    "NEEDS_REVIEW": ("IN_PROGRESS", "FIXED", "CLOSED", "WONT_FIX"),
    "FIXED": ("NEEDS_REVIEW", "CLOSED", "IN_PROGRESS"),  # reopen if the fix didn't hold
    "CLOSED": ("IN_PROGRESS",),
    "WONT_FIX": ("IN_PROGRESS",),
}

# Clients
CLIENT_STATUSES = ("ACTIVE", "INACTIVE", "LEAD", "FORMER")
DOMAIN_STATUSES = ("ACTIVE", "EXPIRED", "CANCELLED")

# Notifications
NOTIFICATION_ISSUE_ASSIGNED = "ISSUE_ASSIGNED"
NOTIFICATION_COMMENT_ADDED = "COMMENT_ADDED"
NOTIFICATION_STATUS_CHANGED = "STATUS_CHANGED"
NOTIFICATION_ISSUE_DUE_SOON = "ISSUE_DUE_SOON"
NOTIFICATION_TYPES = (
    NOTIFICATION_ISSUE_ASSIGNED,
    NOTIFICATION_COMMENT_ADDED,
    NOTIFICATION_STATUS_CHANGED,
    NOTIFICATION_ISSUE_DUE_SOON,
)

DEFAULT_DUE_BUSINESS_DAYS = 10
