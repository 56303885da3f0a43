from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from clinicdesk.services import notification_service
from clinicdesk.utils.decorators import require_role, current_actor
from clinicdesk.routes._helpers import new_uow

notification_bp = Blueprint('notification', __name__, url_prefix='/api/notifications')


@notification_bp.route('', methods=['GET'])
@jwt_required()
@require_role()
def list_notifications():
    """Query params: unread (true to list unread only), limit"""
    ctx = current_actor()
    unread_only = request.args.get('unread', 'false').lower() == 'true'
    notifications = notification_service.list_notifications(
        ctx.user_id,
        unread_only=unread_only,
        limit=request.args.get('limit', 50, type=int),
    )
    return jsonify({
        'success': True,
        'data': [n.to_dict() for n in notifications],
        'unread_count': notification_service.unread_count(ctx.user_id)
    }), 200


@notification_bp.route('/unread-count', methods=['GET'])
@jwt_required()
@require_role()
def unread_count():
    return jsonify({
        'success': True,
        'data': {'unread': notification_service.unread_count(current_actor().user_id)}
    }), 200


@notification_bp.route('/<int:notification_id>/read', methods=['POST'])
@jwt_required()
@require_role()
def mark_as_read(notification_id):
    notification = notification_service.mark_as_read(current_actor(), new_uow(), notification_id)
    return jsonify({'success': True, 'data': notification.to_dict()}), 200


@notification_bp.route('/read-all', methods=['POST'])
@jwt_required()
@require_role()
def mark_all_as_read():
    updated = notification_service.mark_all_as_read(current_actor(), new_uow())
    return jsonify({'success': True, 'message': f'{updated} notification(s) marked as read'}), 200
