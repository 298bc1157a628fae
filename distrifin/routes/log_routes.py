from flask import jsonify, request
from . import main
from ..crud import log_crud
from ..utils.access_control import Page, page_required


@main.route('/logs/list', methods=['GET'])
@page_required(Page.AUDIT)
def get_logs():
    action = request.args.get('action')
    limit = request.args.get('limit', type=int)
    try:
        return jsonify(log_crud.get_all_logs(action, limit)), 200
    except log_crud.LogError as e:
        return jsonify({'error': 'Failed to fetch logs', 'message': str(e)}), 500


@main.route('/logs/actions', methods=['GET'])
@page_required(Page.AUDIT)
def get_log_actions():
    return jsonify(log_crud.get_action_types()), 200
