from flask import jsonify, request
from flask_jwt_extended import get_current_user
from . import main
from ..crud import collection_crud
from ..services import reconciliation_service
from ..services.reconciliation_service import (
    ReconciliationError, ReconciliationPayloadError, StatementEntry, StatementParseError
)
from ..utils.access_control import Page, page_required
from ..utils.csv_utils import read_upload_text
import logging

logger = logging.getLogger(__name__)


@main.route('/reconciliation/pending', methods=['GET'])
@page_required(Page.RECONCILIATION)
def get_pending_cheques():
    cheques = collection_crud.get_pending_cheques()
    return jsonify([collection_crud.serialize_collection(c) for c in cheques]), 200


@main.route('/reconciliation/match', methods=['POST'])
@page_required(Page.RECONCILIATION)
def match_statement():
    """
    Propose matches for pending cheques.
    Accepts a statement file upload ('file') or JSON {'entries': [...]}.
    Nothing is written; the operator confirms through /reconciliation/confirm.
    """
    try:
        if 'file' in request.files:
            entries = reconciliation_service.parse_bank_statement(read_upload_text(request.files['file']))
        else:
            payload = request.get_json(silent=True) or {}
            if not isinstance(payload, dict):
                return jsonify({'error': 'Request body must be a JSON object'}), 400
            raw_entries = payload.get('entries') or []
            if not isinstance(raw_entries, list):
                return jsonify({'error': 'entries must be a list'}), 400
            if not raw_entries:
                return jsonify({'error': 'No statement entries provided'}), 400
            entries = [StatementEntry.from_dict(item, i) for i, item in enumerate(raw_entries)]
    except (StatementParseError, ValueError) as e:
        return jsonify({'error': str(e)}), 400

    plan = reconciliation_service.match_statement(collection_crud.get_pending_cheques(), entries)
    return jsonify(plan.to_dict()), 200


@main.route('/reconciliation/confirm', methods=['POST'])
@page_required(Page.RECONCILIATION)
def confirm_reconciliation():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        matches = reconciliation_service.matches_from_payload(data.get('matches'))
        result = reconciliation_service.confirm_reconciliation(matches, current_user, ip_address, user_agent)
    except ReconciliationPayloadError as e:
        return jsonify({'error': str(e)}), 400
    except ReconciliationError as e:
        return jsonify({'error': str(e)}), 409
    return jsonify(result.to_dict()), 200
