from .decorators import require_role, current_user, current_actor

from .audit import log_audit, audit_after_commit

from .parsing import (
    clinic_now,
    parse_bool,
    parse_date,
    parse_datetime,
    parse_decimal,
    parse_int,
    parse_time,
    require_text,
)

__all__ = [
    # Decorators
    "require_role",
    "current_user",
    "current_actor",
    # Audit
    "log_audit",
    "audit_after_commit",
    # Parsing
    "clinic_now",
    "parse_bool",
    "parse_date",
    "parse_datetime",
    "parse_decimal",
    "parse_int",
    "parse_time",
    "require_text",
]
