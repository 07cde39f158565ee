from flask import Blueprint, current_app, request, jsonify
from flask_login import current_user, login_required

bp = Blueprint('teams', __name__)


@bp.route('/towers/<int:tower_id>/teams', methods=['POST'])
@login_required
def create_team(tower_id: int):
    data = request.get_json(silent=True) or {}
    team = current_app.teams.create_team(current_user, tower_id, data.get('name'), data.get('captainId'))
    return jsonify(team.to_dict()), 201


@bp.route('/teams/<int:team_id>/members', methods=['POST'])
@login_required
def add_team_member(team_id: int):
    data = request.get_json(silent=True) or {}
    member = current_app.teams.add_member(current_user, team_id, data.get('userId'))
    return jsonify(member.to_dict()), 201
