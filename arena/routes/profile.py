from flask import Blueprint, current_app, request, jsonify
from flask_login import current_user, login_required

bp = Blueprint('profile', __name__)


@bp.route('/profile/overview', methods=['GET'])
@login_required
def overview():
    return jsonify(current_app.profiles.overview(current_user))


@bp.route('/profile/stats', methods=['GET'])
@login_required
def stats():
    return jsonify(current_app.profiles.stats(current_user))


@bp.route('/profile/tournaments', methods=['GET'])
@login_required
def tournaments():
    return jsonify(current_app.profiles.tournaments(current_user))


@bp.route('/profile/achievements', methods=['GET'])
@login_required
def achievements():
    return jsonify(current_app.profiles.achievements(current_user))


@bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    return jsonify(current_app.profiles.update_profile(current_user, data))


@bp.route('/profile/notifications', methods=['PUT'])
@login_required
def update_notification_preferences():
    data = request.get_json(silent=True) or {}
    return jsonify(current_app.profiles.update_preferences(current_user, data))


@bp.route('/profile/password', methods=['PUT'])
@login_required
def change_password():
    data = request.get_json(silent=True) or {}
    current_app.profiles.change_password(current_user, data.get('currentPassword'), data.get('newPassword'))
    return jsonify({'message': 'Password changed successfully'})


@bp.route('/profile/<username>', methods=['GET'])
def public_profile(username: str):
    return jsonify(current_app.profiles.public_profile(username))
