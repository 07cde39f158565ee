from flask import Blueprint, current_app, request, jsonify
from flask_login import current_user, login_required

bp = Blueprint('tournaments', __name__)


def registration_to_dict(registration) -> dict:
    team = registration.team
    data = registration.to_dict()
    data['team'] = dict(
        team.to_dict(),
        tower=team.tower.to_summary() if team.tower else None,
        members=[m.user.to_summary() for m in team.members],
    )
    return data


# ==================== Tournament CRUD ====================

@bp.route('/tournaments', methods=['GET'])
def list_tournaments():
    """List tournaments with optional filtering."""
    status = request.args.get('status')
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)

    tournaments = current_app.registry.list_tournaments(status=status, limit=limit, offset=offset)
    return jsonify([t.to_dict() for t in tournaments])


@bp.route('/tournaments', methods=['POST'])
@login_required
def create_tournament():
    data = request.get_json(silent=True) or {}
    tournament = current_app.registry.create_tournament(current_user, data)
    return jsonify(tournament.to_dict()), 201


@bp.route('/tournaments/<int:tournament_id>', methods=['GET'])
def get_tournament(tournament_id: int):
    return jsonify(current_app.registry.get_tournament(tournament_id).to_dict())


# ==================== Lifecycle ====================

@bp.route('/tournaments/<int:tournament_id>/start', methods=['POST'])
@login_required
def start_tournament(tournament_id: int):
    tournament = current_app.registry.start_tournament(current_user, tournament_id)
    return jsonify({'message': 'Tournament started', 'tournament': tournament.to_dict()})


@bp.route('/tournaments/<int:tournament_id>/complete', methods=['POST'])
@login_required
def complete_tournament(tournament_id: int):
    tournament = current_app.registry.complete_tournament(current_user, tournament_id)
    return jsonify({'message': 'Tournament completed', 'tournament': tournament.to_dict()})


@bp.route('/tournaments/<int:tournament_id>/room', methods=['PUT'])
@login_required
def set_room(tournament_id: int):
    data = request.get_json(silent=True) or {}
    tournament = current_app.registry.set_room(
        current_user, tournament_id, data.get('roomId'), data.get('roomPassword')
    )
    return jsonify(dict(tournament.to_dict(), roomPassword=tournament.room_password))


# ==================== Registrations ====================

@bp.route('/tournaments/<int:tournament_id>/registrations', methods=['POST'])
@login_required
def register_team(tournament_id: int):
    data = request.get_json(silent=True) or {}
    registration = current_app.registry.register_team(current_user, tournament_id, data.get('teamId'))
    return jsonify(registration.to_dict()), 201


@bp.route('/tournaments/<int:tournament_id>/registrations/<int:registration_id>/approve', methods=['POST'])
@login_required
def approve_registration(tournament_id: int, registration_id: int):
    registration = current_app.registry.review_registration(current_user, tournament_id, registration_id, True)
    return jsonify(registration.to_dict())


@bp.route('/tournaments/<int:tournament_id>/registrations/<int:registration_id>/reject', methods=['POST'])
@login_required
def reject_registration(tournament_id: int, registration_id: int):
    registration = current_app.registry.review_registration(current_user, tournament_id, registration_id, False)
    return jsonify(registration.to_dict())


@bp.route('/tournaments/<int:tournament_id>/registrations', methods=['GET'])
def list_registrations(tournament_id: int):
    registrations = current_app.registry.list_registrations(tournament_id)
    return jsonify([registration_to_dict(r) for r in registrations])


# ==================== Matches ====================

@bp.route('/tournaments/<int:tournament_id>/matches', methods=['POST'])
@login_required
def create_match(tournament_id: int):
    data = request.get_json(silent=True) or {}
    match = current_app.registry.create_match(
        current_user, tournament_id, data.get('teamAId'), data.get('teamBId'), data.get('roomId')
    )
    return jsonify(match.to_dict()), 201


@bp.route('/tournaments/<int:tournament_id>/matches', methods=['GET'])
def list_matches(tournament_id: int):
    return jsonify([m.to_dict() for m in current_app.registry.list_matches(tournament_id)])


@bp.route('/matches/<int:match_id>/room', methods=['PUT'])
@login_required
def set_match_room(match_id: int):
    data = request.get_json(silent=True) or {}
    match = current_app.registry.set_match_room(current_user, match_id, data.get('roomId'))
    return jsonify(match.to_dict())


@bp.route('/matches/<int:match_id>/proofs', methods=['POST'])
@login_required
def add_proof(match_id: int):
    data = request.get_json(silent=True) or {}
    proof = current_app.registry.add_proof(current_user, match_id, data.get('url'))
    return jsonify(proof.to_dict()), 201


@bp.route('/matches/<int:match_id>/result', methods=['POST'])
@login_required
def record_result(match_id: int):
    data = request.get_json(silent=True) or {}
    match = current_app.registry.record_result(current_user, match_id, data.get('winnerTeamId'))
    return jsonify(match.to_dict())
