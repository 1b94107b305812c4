"""Logging field schema.

Standard fields (added to all logs):
- timestamp, level, module, message
- request_id: Request ID (set by RequestIdMiddleware)
- event: Event type (see LogEvent)

High cardinality fields (OK in logs):
- ws_id: Workspace ID
- user_id: User ID
- session_id: Truncated session ID
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Lifecycle events
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"
    DB_CONNECTED = "db_connected"

    # API events
    REQUEST_COMPLETE = "request_complete"
    REQUEST_FAILED = "request_failed"

    # OAuth events
    OAUTH_INITIATED = "oauth_initiated"
    OAUTH_SESSION_LOST = "oauth_session_lost"
    OAUTH_STATE_MISMATCH = "oauth_state_mismatch"
    OAUTH_EXCHANGE_FAILED = "oauth_exchange_failed"
    ORG_MEMBERSHIP_DENIED = "org_membership_denied"
    AUTH_REJECTED = "auth_rejected"
    LOGIN_SUCCESS = "login_success"
    LOGOUT = "logout"
    SESSION_PERSIST_FAILED = "session_persist_failed"

    # Workspace events
    WORKSPACE_CREATED = "workspace_created"
    WORKSPACE_DELETED = "workspace_deleted"
    STATE_CHANGED = "state_changed"
    OWNERSHIP_CHANGED = "ownership_changed"
    CAS_CONFLICT = "cas_conflict"
    OPERATION_FAILED = "operation_failed"
