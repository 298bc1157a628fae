from flask import jsonify, request
from . import main
from ..crud import report_crud
from ..models import Collection, Customer
from ..utils.access_control import Page, page_required


@main.route('/cheques/list', methods=['GET'])
@page_required(Page.CHEQUES)
def get_cheques():
    ready_only = request.args.get('filter', 'ALL').upper() == 'DEPOSIT_READY'
    try:
        sort_state = report_crud.SortState.from_args(
            request.args.get('sort_key'), request.args.get('sort_order'),
            'realize_date', report_crud.DESC
        )
        rows = report_crud.cheque_register(Collection.query.all(), Customer.query.all(), ready_only, sort_state)
    except report_crud.ReportError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(rows), 200
