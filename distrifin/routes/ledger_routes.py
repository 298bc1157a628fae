from dataclasses import asdict
from flask import jsonify, request
from flask_jwt_extended import get_current_user
from . import main
from ..crud import ledger_crud
from ..models import Collection, LedgerEntry
from ..utils.access_control import Page, page_required
from ..utils.invariants import check_ledger_invariants


@main.route('/ledger/list', methods=['GET'])
@page_required(Page.LEDGER)
def get_ledger_entries():
    try:
        return jsonify(ledger_crud.get_all_ledger_entries(request.args.get('reference_id'))), 200
    except ledger_crud.LedgerError as e:
        return jsonify({'error': str(e)}), 500


@main.route('/ledger/bulk-delete', methods=['POST'])
@page_required(Page.LEDGER)
def bulk_delete_ledger_entries():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    entry_ids = (request.get_json(silent=True) or {}).get('entry_ids') or []
    try:
        deleted = ledger_crud.bulk_delete_ledger_entries(entry_ids, current_user, ip_address, user_agent)
        return jsonify({'message': f'Deleted {deleted} ledger entries', 'deleted': deleted}), 200
    except ledger_crud.LedgerError as e:
        return jsonify({'error': str(e)}), 400


@main.route('/ledger/health', methods=['GET'])
@page_required(Page.LEDGER)
def ledger_health():
    violations = check_ledger_invariants(Collection.query.all(), LedgerEntry.query.all())
    return jsonify({
        'ok': not violations,
        'violations': [asdict(v) for v in violations]
    }), 200
