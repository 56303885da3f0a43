from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    jwt_required,
    get_jwt_identity,
)
from clinicdesk.models import User
from clinicdesk.extensions import db
from clinicdesk.utils.decorators import require_role, current_user
from datetime import datetime

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _token_response(user, status=200):
    # Use user id as identity (must be a string for JWT "sub" claim)
    identity = str(user.id)
    additional_claims = {
        "role": user.role,
        "name": user.name,
    }

    access_token = create_access_token(
        identity=identity,
        additional_claims=additional_claims,
        fresh=True,
    )
    refresh_token = create_refresh_token(identity=identity)

    expires = current_app.config.get('JWT_ACCESS_TOKEN_EXPIRES')
    return jsonify({
        'success': True,
        'data': user.to_dict(),
        'access_token': access_token,
        'refresh_token': refresh_token,
        'token_type': 'bearer',
        'expires_in': int(expires.total_seconds()) if expires else None,
    }), status


@auth_bp.route('/login', methods=['POST'])
def login():
    """Login endpoint - authenticates a user and returns JWT tokens"""
    data = request.get_json(silent=True)

    if not data:
        return jsonify({
            'success': False,
            'error': 'Request body must be JSON'
        }), 400

    email = (data.get('email') or '').strip().lower()
    password = data.get('password')

    if not email or not password:
        return jsonify({
            'success': False,
            'error': 'Email and password required'
        }), 400

    user = User.query.filter_by(email=email).first()

    if not user or not user.check_password(password):
        return jsonify({
            'success': False,
            'error': 'Invalid email or password'
        }), 401

    if not user.is_active:
        return jsonify({
            'success': False,
            'error': 'Account is deactivated'
        }), 403

    # Update login tracking
    user.last_login = datetime.utcnow()
    user.login_count = (user.login_count or 0) + 1
    db.session.commit()

    current_app.logger.info("User %s logged in", user.id)
    return _token_response(user)


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    """Exchange a refresh token for a new access token"""
    user = db.session.get(User, int(get_jwt_identity()))
    if not user or not user.is_active:
        return jsonify({'success': False, 'error': 'Authentication required'}), 401
    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role, "name": user.name},
    )
    return jsonify({'success': True, 'access_token': access_token, 'token_type': 'bearer'}), 200


@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    """Logout endpoint - in pure JWT the client just deletes its tokens"""
    return jsonify({
        'success': True,
        'message': 'Logged out successfully (delete tokens on client)'
    }), 200


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
@require_role()
def me():
    """Get the logged-in user"""
    return jsonify({
        'success': True,
        'data': current_user().to_dict()
    }), 200
