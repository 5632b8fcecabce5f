from flask import Blueprint, current_app, jsonify, request

from shared.state_machine import TransitionError
from tableturn.exceptions import (
    MatchNotFound,
    PlayerAlreadyQueued,
    PlayerNotFound,
    QueueEntryNotFound,
    TableNotFound,
    TableOccupied,
    UnsupportedTeamSize,
)

bp = Blueprint('api', __name__, url_prefix='/api/v1')


# --- Error handling ---

@bp.errorhandler(TableNotFound)
@bp.errorhandler(MatchNotFound)
@bp.errorhandler(PlayerNotFound)
@bp.errorhandler(QueueEntryNotFound)
def handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@bp.errorhandler(TableOccupied)
@bp.errorhandler(PlayerAlreadyQueued)
@bp.errorhandler(TransitionError)
def handle_conflict(e):
    return jsonify({'error': str(e)}), 409


@bp.errorhandler(ValueError)
@bp.errorhandler(UnsupportedTeamSize)
def handle_bad_request(e):
    return jsonify({'error': str(e)}), 400


def lifecycle():
    return current_app.lifecycle


def queue_manager():
    return current_app.queue_manager


# --- Tables ---

@bp.route('/tables/<table_id>', methods=['GET'])
def get_table(table_id):
    """Table with its active match and queue."""
    return jsonify(lifecycle().fetch_table_with_details(table_id))


@bp.route('/tables/<table_id>/matches', methods=['POST'])
def start_match(table_id):
    data = request.json or {}
    teams = data.get('teams')
    if teams is not None and not isinstance(teams, list):
        return jsonify({'error': 'teams must be a list'}), 400

    race_to = data.get('race_to')
    if race_to is not None and (
        not isinstance(race_to, int) or isinstance(race_to, bool) or race_to < 1
    ):
        return jsonify({'error': 'race_to must be a positive integer'}), 400

    match = lifecycle().start_match(table_id, teams or [], race_to)
    return jsonify(lifecycle().fetch_match(match.id).to_dict()), 201


# --- Matches ---

@bp.route('/matches/<match_id>', methods=['GET'])
def get_match(match_id):
    return jsonify(lifecycle().fetch_match(match_id).to_dict())


@bp.route('/matches/<match_id>/score', methods=['PUT'])
def update_score(match_id):
    data = request.json or {}
    score = data.get('score')
    if not isinstance(score, list):
        return jsonify({'error': 'score must be a list of two numbers'}), 400

    match = lifecycle().update_score(match_id, score)
    return jsonify(match.to_dict())


@bp.route('/matches/<match_id>/end', methods=['POST'])
def end_match(match_id):
    """End a match and rotate the table's queue."""
    data = request.json or {}
    if 'winner_team_index' not in data:
        return jsonify({'error': 'winner_team_index is required'}), 400

    table_id = data.get('table_id') or lifecycle().get_match(match_id).table_id
    result = lifecycle().end_match(match_id, table_id, data['winner_team_index'])
    return jsonify(result.to_dict())


@bp.route('/matches/<match_id>/archive', methods=['POST'])
def archive_match(match_id):
    archive = lifecycle().archive_match(match_id)
    if archive is None:
        return jsonify({'archived': False, 'message': 'Match already archived'})
    return jsonify({'archived': True, 'archive': archive.to_dict()})


@bp.route('/matches/<match_id>/complete', methods=['POST'])
def complete_match(match_id):
    """Complete a match with direct ratings; no rotation, no archive."""
    data = request.json or {}
    if 'winner_index' not in data:
        return jsonify({'error': 'winner_index is required'}), 400

    lifecycle().complete_match_with_ratings(
        match_id,
        data['winner_index'],
        data.get('rating_change')
    )
    return jsonify({'success': True})


# --- Players ---

@bp.route('/players/<player_id>/active-matches', methods=['GET'])
def active_matches(player_id):
    timeout = request.args.get('timeout', type=float)
    result = lifecycle().fetch_active_matches_by_user(player_id, timeout=timeout)
    return jsonify(result.to_dict())


@bp.route('/players/<player_id>/notifications', methods=['GET'])
def notifications(player_id):
    unread = current_app.notifier.unread_for(player_id)
    return jsonify({
        'notifications': [n.to_dict() for n in unread],
        'count': len(unread)
    })


# --- Queue ---

@bp.route('/tables/<table_id>/queue', methods=['GET'])
def get_queue(table_id):
    entries = queue_manager().get_queue(table_id)
    return jsonify({
        'queue': [e.to_dict() for e in entries],
        'count': len(entries)
    })


@bp.route('/tables/<table_id>/queue', methods=['POST'])
def join_queue(table_id):
    data = request.json or {}
    player_id = data.get('player_id')
    if not player_id:
        return jsonify({'error': 'player_id is required'}), 400

    entry = queue_manager().add_to_queue(table_id, player_id)
    return jsonify(entry.to_dict()), 201


@bp.route('/tables/<table_id>/queue/players/<player_id>', methods=['DELETE'])
def leave_queue(table_id, player_id):
    removed = queue_manager().remove_player_from_queue(table_id, player_id)
    if not removed:
        return jsonify({'error': 'Player is not in this queue'}), 404
    return jsonify({'removed': True})


@bp.route('/queue/<entry_id>', methods=['DELETE'])
def remove_entry(entry_id):
    return jsonify({'removed': queue_manager().remove_from_queue(entry_id)})


@bp.route('/queue/<entry_id>/skip', methods=['POST'])
def toggle_skip(entry_id):
    entry = queue_manager().toggle_skip(entry_id)
    return jsonify(entry.to_dict())
