"""
Flask web application for the tournament bracket desk.

Serves the bracket of a scope (an event or one of its sub-events) as JSON
and takes operator actions: drawing pools, recording group, knockout,
third-place and final results, and maintaining placement tables.
"""
import os
import random
import logging
from flask import Flask, request, jsonify
from bracket.results import BracketManager, ValidationError, RecordNotFound
from store import StoreError, create_store

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = os.environ.get('SECRET_KEY') or os.urandom(24)
app.config['DATA_DIR'] = DATA_DIR
app.config['BRACKET_STORE_KIND'] = os.environ.get('BRACKET_STORE', 'yaml')
app.config['BRACKET_STORE_URL'] = os.environ.get('BRACKET_STORE_URL')
app.config['BRACKET_STORE_KEY'] = os.environ.get('BRACKET_STORE_KEY')


def get_store():
    """Return the configured row store, building it on first use."""
    store = app.config.get('BRACKET_STORE')
    if store is None:
        store = create_store(
            app.config['BRACKET_STORE_KIND'],
            data_dir=app.config['DATA_DIR'],
            url=app.config['BRACKET_STORE_URL'],
            api_key=app.config['BRACKET_STORE_KEY'],
        )
        app.config['BRACKET_STORE'] = store
    return store


def get_manager(scope_id, rng=None) -> BracketManager:
    return BracketManager(get_store(), scope_id, rng=rng)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _with_player(row: dict, players_by_id: dict) -> dict:
    """Attach the player's name and association to a placement row."""
    player = players_by_id.get(row.get('player_id'))
    return {
        **row,
        'player_name': player.name if player else 'Unknown',
        'player_association': player.association if player else 'Unknown',
    }


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(RecordNotFound)
def handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@app.errorhandler(StoreError)
def handle_store_error(e):
    app.logger.error(f'Store operation failed on {request.path}: {e}')
    return jsonify({'error': 'The data store request failed. Please try again.'}), 500


@app.route('/api/scopes/<scope_id>/bracket')
def api_bracket(scope_id):
    """Full bracket snapshot with placement tables."""
    manager = get_manager(scope_id)
    state = manager.snapshot()
    players_by_id = {p.id: p for p in state.participants}
    data = state.to_dict()
    data['title'] = manager.scope_title()
    data['summary_results'] = [_with_player(r.to_dict(), players_by_id)
                               for r in manager.list_summary_results()]
    data['clubbed_results'] = [_with_player(r.to_dict(), players_by_id)
                               for r in manager.list_clubbed_results()]
    return jsonify(data)


@app.route('/api/scopes/<scope_id>/participants', methods=['GET', 'POST'])
def api_participants(scope_id):
    """List or register participants of a scope."""
    manager = get_manager(scope_id)
    if request.method == 'POST':
        data = _json_body()
        player = manager.add_participant(data.get('name'), data.get('association'), data.get('weight'))
        app.logger.info(f'Added participant {player.name} to scope {scope_id}')
        return jsonify({'success': True, 'participant': player.to_dict()}), 201
    return jsonify({'participants': [p.to_dict() for p in manager.load_participants()]})


@app.route('/api/scopes/<scope_id>/pools/regenerate', methods=['POST'])
def api_regenerate_pools(scope_id):
    """Draw new pools. Optional 'seed' makes the draw reproducible."""
    seed = _json_body().get('seed')
    rng = random.Random(seed) if seed is not None else None
    pools = get_manager(scope_id, rng=rng).regenerate_pools()
    return jsonify({'success': True, 'pools': [p.to_dict() for p in pools]})


@app.route('/api/scopes/<scope_id>/results/group', methods=['POST'])
def api_group_result(scope_id):
    """Record the winner of a two-player group."""
    data = _json_body()
    result = get_manager(scope_id).record_group_winner(data.get('pool'), data.get('group'), data.get('winner_id'))
    return jsonify({'success': True, 'match_stage': result.match_stage, 'winner_id': result.winner_id})


@app.route('/api/scopes/<scope_id>/results/knockout', methods=['POST'])
def api_knockout_result(scope_id):
    """Record the winner of a knockout match."""
    data = _json_body()
    result = get_manager(scope_id).record_knockout_winner(data.get('pool'), data.get('match_id'),
                                                          data.get('winner_id'))
    return jsonify({'success': True, 'match_stage': result.match_stage, 'winner_id': result.winner_id})


@app.route('/api/scopes/<scope_id>/results/third-place', methods=['POST'])
def api_third_place_result(scope_id):
    """Record the operator's 3rd-place pick for a pool."""
    data = _json_body()
    result = get_manager(scope_id).record_third_place(data.get('pool'), data.get('player_id'))
    return jsonify({'success': True, 'match_stage': result.match_stage, 'winner_id': result.winner_id})


@app.route('/api/scopes/<scope_id>/results/final', methods=['POST'])
def api_final_result(scope_id):
    """Record the champion and cascade placements."""
    written = get_manager(scope_id).record_final_winner(_json_body().get('winner_id'))
    return jsonify({'success': True, 'placements_written': written})


@app.route('/api/scopes/<scope_id>/summary-results', methods=['GET', 'POST'])
def api_summary_results(scope_id):
    manager = get_manager(scope_id)
    if request.method == 'POST':
        result = manager.add_summary_result(_json_body())
        return jsonify({'success': True, 'id': result.id}), 201
    players_by_id = {p.id: p for p in manager.load_participants()}
    rows = [_with_player(r.to_dict(), players_by_id) for r in manager.list_summary_results()]
    return jsonify({'summary_results': rows})


@app.route('/api/scopes/<scope_id>/summary-results/<row_id>', methods=['PUT', 'DELETE'])
def api_summary_result(scope_id, row_id):
    manager = get_manager(scope_id)
    if request.method == 'DELETE':
        manager.delete_summary_result(row_id)
    else:
        manager.update_summary_result(row_id, _json_body())
    return jsonify({'success': True})


@app.route('/api/scopes/<scope_id>/clubbed-results', methods=['GET', 'POST'])
def api_clubbed_results(scope_id):
    manager = get_manager(scope_id)
    if request.method == 'POST':
        result = manager.add_clubbed_result(_json_body())
        return jsonify({'success': True, 'id': result.id}), 201
    players_by_id = {p.id: p for p in manager.load_participants()}
    rows = [_with_player(r.to_dict(), players_by_id) for r in manager.list_clubbed_results()]
    return jsonify({'clubbed_results': rows})


@app.route('/api/scopes/<scope_id>/clubbed-results/<row_id>', methods=['PUT', 'DELETE'])
def api_clubbed_result(scope_id, row_id):
    manager = get_manager(scope_id)
    if request.method == 'DELETE':
        manager.delete_clubbed_result(row_id)
    else:
        manager.update_clubbed_result(row_id, _json_body())
    return jsonify({'success': True})


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    app.run(debug=True, port=5000)
