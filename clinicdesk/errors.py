"""
Domain error taxonomy.

Every error carries an HTTP status code and an optional payload so the
Flask error handler can render it without knowing the concrete class.
"""
from typing import Any, Dict, Iterable, Optional


class ClinicError(Exception):
    """Base class for all domain errors"""
    status_code = 400

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {'success': False, 'error': self.message}
        body.update(self.payload)
        return body


class ValidationError(ClinicError):
    """Malformed input. Never retried."""
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        payload = {}
        if field:
            payload['field'] = field
        if errors:
            payload['errors'] = errors
        super().__init__(message, payload)
        self.field = field
        self.errors = errors or {}


class PermissionDeniedError(ClinicError):
    status_code = 403


class NotFoundError(ClinicError):
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f'{entity} {entity_id} not found', {'entity': entity})
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(ClinicError):
    """Status change not allowed by the appointment state machine"""
    status_code = 409

    def __init__(self, current: str, attempted: str, allowed: Iterable[str] = ()):
        allowed = sorted(allowed)
        if allowed:
            hint = f'valid next states: {", ".join(allowed)}'
        else:
            hint = f'{current} is a terminal state'
        super().__init__(
            f'Cannot change status from {current} to {attempted} ({hint})',
            {'current_status': current, 'attempted_status': attempted, 'allowed': allowed},
        )
        self.current = current
        self.attempted = attempted
        self.allowed = allowed


class InvalidStateError(ClinicError):
    """Operation requires the entity to be in a different state"""
    status_code = 409

    def __init__(self, message: str, current: Optional[str] = None, expected: Optional[str] = None):
        payload = {}
        if current is not None:
            payload['current_status'] = current
        if expected is not None:
            payload['expected_status'] = expected
        super().__init__(message, payload)
        self.current = current
        self.expected = expected


class CapacityExceededError(ClinicError):
    """Booking against a full or unavailable schedule"""
    status_code = 409


class ConcurrencyConflictError(ClinicError):
    """Transaction-level conflict. The only retryable error."""
    status_code = 409


class RemediationFailedError(ClinicError):
    """Bulk repair rolled back; reports how many records it would have touched"""
    status_code = 500

    def __init__(self, message: str, affected: int):
        super().__init__(message, {'affected': affected})
        self.affected = affected
