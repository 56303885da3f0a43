from functools import wraps
from flask import jsonify
from flask_jwt_extended import get_jwt_identity
from clinicdesk.extensions import db
from clinicdesk.models import User


def _load_current_user():
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return user


def current_user():
    """Active user behind the JWT of this request, or None"""
    return _load_current_user()


def current_actor():
    """ActorContext for the authenticated user of this request"""
    from clinicdesk.services.context import ActorContext

    user = current_user()
    return ActorContext.from_user(user) if user else None


def require_role(*roles):
    """
    Decorator to require specific roles
    Usage: @require_role('clinical_staff', 'admin')
    With no roles, any active user is accepted.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            """
            Require that the current JWT-authenticated user has one of the given roles.
            Must be used together with @jwt_required() on the route.
            """
            user = current_user()
            if not user:
                return jsonify({
                    'success': False,
                    'error': 'Authentication required'
                }), 401

            if roles and user.role not in roles:
                return jsonify({
                    'success': False,
                    'error': f'Permission denied. Required roles: {", ".join(roles)}'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
