from flask import Blueprint, request, jsonify
from flask_login import current_user, login_required

from ..models import db

bp = Blueprint('users', __name__)


@bp.route('/users/me', methods=['GET'])
@login_required
def get_me():
    return jsonify(current_user.to_dict(private=True))


@bp.route('/users/me', methods=['PUT'])
@login_required
def update_me():
    data = request.get_json(silent=True) or {}
    if 'name' in data and data['name']:
        current_user.name = data['name']
    if 'bio' in data:
        current_user.bio = data['bio']
    if 'avatarUrl' in data:
        current_user.avatar_url = data['avatarUrl']
    db.session.commit()
    return jsonify(current_user.to_dict(private=True))
