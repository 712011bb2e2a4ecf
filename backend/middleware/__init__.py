"""
Middleware package for Blood Bank Management System.
"""
from .access_log import (
    AccessLogger,
    AccessLogMiddleware,
    LogChannel,
    collect_tokens,
    generate_request_id,
    memory_usage_mb,
    run_log_rotation,
    seconds_until_midnight,
    setup_logging,
)
from .role_auth import (
    require_roles,
    require_admin,
    require_staff,
    ensure_admin_or_owner,
    is_staff,
)

__all__ = [
    'AccessLogger',
    'AccessLogMiddleware',
    'LogChannel',
    'collect_tokens',
    'generate_request_id',
    'memory_usage_mb',
    'run_log_rotation',
    'seconds_until_midnight',
    'setup_logging',
    'require_roles',
    'require_admin',
    'require_staff',
    'ensure_admin_or_owner',
    'is_staff',
]
