from flask import Blueprint, current_app, request, jsonify

from ..exceptions import InvalidArgumentError

bp = Blueprint('leaderboard', __name__)


def int_arg(name: str, default: int = None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgumentError(f'{name} must be an integer', field=name)


def page_args() -> dict:
    return {
        'limit': int_arg('limit'),
        'offset': int_arg('offset'),
        'period': request.args.get('period'),
    }


@bp.route('/leaderboard/players', methods=['GET'])
def players():
    return jsonify(current_app.leaderboards.players(sort_by=request.args.get('sortBy'), **page_args()))


@bp.route('/leaderboard/towers', methods=['GET'])
def towers():
    return jsonify(current_app.leaderboards.towers(**page_args()))


@bp.route('/leaderboard/teams', methods=['GET'])
def teams():
    return jsonify(current_app.leaderboards.teams(**page_args()))


@bp.route('/leaderboard/tournament-winners', methods=['GET'])
def tournament_winners():
    limit = int_arg('limit', 20)
    return jsonify(current_app.leaderboards.tournament_winners(limit))


@bp.route('/leaderboard/players/<int:user_id>/details', methods=['GET'])
def player_details(user_id: int):
    return jsonify(current_app.leaderboards.player_details(user_id))


@bp.route('/leaderboard/compare', methods=['GET'])
def compare_players():
    return jsonify(current_app.leaderboards.compare_players(request.args.get('userIds')))


@bp.route('/leaderboard/players/<int:user_id>/rank-history', methods=['GET'])
def rank_history(user_id: int):
    return jsonify(current_app.leaderboards.rank_history(user_id, request.args.get('period')))
