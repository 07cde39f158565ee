from flask import Blueprint, current_app, request, jsonify
from flask_login import current_user, login_required

from ..models import TowerRole

bp = Blueprint('towers', __name__)


# ==================== Lifecycle & membership ====================

@bp.route('/towers', methods=['POST'])
@login_required
def create_tower():
    data = request.get_json(silent=True) or {}
    tower = current_app.towers.create_tower(current_user, data.get('name'))
    return jsonify(tower.to_dict()), 201


@bp.route('/towers/join', methods=['POST'])
@login_required
def join_tower():
    data = request.get_json(silent=True) or {}
    member = current_app.towers.join(current_user, data.get('code'))
    return jsonify(member.to_dict()), 201


@bp.route('/towers/<int:tower_id>/members/<int:member_id>/approve', methods=['POST'])
@login_required
def approve_member(tower_id: int, member_id: int):
    member = current_app.towers.approve_member(current_user, tower_id, member_id)
    return jsonify(member.to_dict())


@bp.route('/towers/<int:tower_id>/members/<int:member_id>', methods=['DELETE'])
@login_required
def remove_member(tower_id: int, member_id: int):
    current_app.towers.remove_member(current_user, tower_id, member_id)
    return jsonify({'ok': True})


@bp.route('/towers/<int:tower_id>/coleaders/<int:user_id>', methods=['POST'])
@login_required
def add_co_leader(tower_id: int, user_id: int):
    current_app.towers.add_co_leader(current_user, tower_id, user_id)
    return jsonify({'ok': True})


@bp.route('/towers/<int:tower_id>/members/<int:member_id>/promote', methods=['POST'])
@login_required
def promote_member(tower_id: int, member_id: int):
    member = current_app.towers.set_member_role(current_user, tower_id, member_id, TowerRole.ELITE_MEMBER)
    return jsonify(member.to_dict())


@bp.route('/towers/<int:tower_id>/members/<int:member_id>/demote', methods=['POST'])
@login_required
def demote_member(tower_id: int, member_id: int):
    member = current_app.towers.set_member_role(current_user, tower_id, member_id, TowerRole.MEMBER)
    return jsonify(member.to_dict())


@bp.route('/towers/<int:tower_id>/assign-coleader/<int:user_id>', methods=['POST'])
@login_required
def assign_co_leader(tower_id: int, user_id: int):
    tower = current_app.towers.assign_co_leader(current_user, tower_id, user_id)
    return jsonify(tower.to_dict())


@bp.route('/towers/<int:tower_id>/coleader', methods=['DELETE'])
@login_required
def remove_co_leader(tower_id: int):
    tower = current_app.towers.remove_co_leader(current_user, tower_id)
    return jsonify(tower.to_dict())


@bp.route('/towers/<int:tower_id>/settings', methods=['PUT'])
@login_required
def update_settings(tower_id: int):
    data = request.get_json(silent=True) or {}
    tower = current_app.towers.update_settings(current_user, tower_id, data)
    return jsonify(tower.to_dict())


@bp.route('/towers/<int:tower_id>', methods=['DELETE'])
@login_required
def delete_tower(tower_id: int):
    current_app.towers.delete_tower(current_user, tower_id)
    return jsonify({'message': 'Tower deleted successfully'})


# ==================== Tower pages ====================

@bp.route('/towers/<int:tower_id>/overview', methods=['GET'])
def tower_overview(tower_id: int):
    return jsonify(current_app.towers.overview(tower_id))


@bp.route('/towers/<int:tower_id>/members', methods=['GET'])
def tower_members(tower_id: int):
    return jsonify(current_app.towers.members(tower_id))


@bp.route('/towers/<int:tower_id>/teams-status', methods=['GET'])
def tower_teams_status(tower_id: int):
    return jsonify(current_app.towers.teams_status(tower_id))


@bp.route('/towers/<int:tower_id>/tournaments', methods=['GET'])
def tower_tournaments(tower_id: int):
    return jsonify(current_app.towers.tournaments(tower_id))


@bp.route('/towers/<int:tower_id>/leaderboard', methods=['GET'])
def tower_leaderboard(tower_id: int):
    tower = current_app.towers.get_tower(tower_id)
    return jsonify(current_app.leaderboards.tower_members(tower))


# ==================== Announcements ====================

@bp.route('/towers/<int:tower_id>/announcements', methods=['GET'])
def list_announcements(tower_id: int):
    announcements = current_app.towers.list_announcements(tower_id)
    return jsonify([a.to_dict() for a in announcements])


@bp.route('/towers/<int:tower_id>/announcements', methods=['POST'])
@login_required
def create_announcement(tower_id: int):
    data = request.get_json(silent=True) or {}
    announcement = current_app.towers.create_announcement(
        current_user, tower_id, data.get('title'), data.get('message')
    )
    return jsonify(announcement.to_dict()), 201
