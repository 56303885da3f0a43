"""
Small helpers shared by the API blueprints
"""
from flask import current_app, jsonify, request

from clinicdesk.errors import ValidationError
from clinicdesk.services.unit_of_work import UnitOfWork


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be JSON')
    return data


def pagination_args():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', current_app.config.get('DEFAULT_PAGE_SIZE', 15), type=int)
    if page < 1:
        page = 1
    if limit < 1 or limit > 100:
        limit = current_app.config.get('DEFAULT_PAGE_SIZE', 15)
    return page, limit


def paginated(pagination, items):
    return jsonify({
        'success': True,
        'data': items,
        'pagination': {
            'page': pagination.page,
            'limit': pagination.per_page,
            'total': pagination.total,
            'pages': pagination.pages,
        }
    }), 200


def new_uow():
    return UnitOfWork()
