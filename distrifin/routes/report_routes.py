from flask import jsonify, request, send_file
from . import main
from ..crud import report_crud
from ..models import Collection, Customer, Route
from ..utils.access_control import Page, page_required
from ..utils.date_utils import today_iso

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _sort_state(default_key, default_order):
    return report_crud.SortState.from_args(
        request.args.get('sort_key'), request.args.get('sort_order'), default_key, default_order
    )


def _respond(title, rows, columns):
    if request.args.get('format', 'json').lower() == 'xlsx':
        output = report_crud.export_report_xlsx(title, rows, columns)
        filename = f"{title.lower().replace(' ', '_')}_{today_iso()}.xlsx"
        return send_file(output, as_attachment=True, download_name=filename, mimetype=XLSX_MIMETYPE)
    return jsonify(rows), 200


@main.route('/reports/daily', methods=['GET'])
@page_required(Page.REPORTS)
def daily_collections_report():
    try:
        rows = report_crud.daily_collections(
            Collection.query.all(), Customer.query.all(), _sort_state('collection_date', report_crud.DESC)
        )
    except report_crud.ReportError as e:
        return jsonify({'error': str(e)}), 400
    return _respond('Daily Collections', rows, report_crud.DAILY_COLUMNS)


@main.route('/reports/cheques', methods=['GET'])
@page_required(Page.REPORTS)
def cheques_report():
    status = request.args.get('status', 'Pending')
    try:
        rows = report_crud.cheques_by_status(
            Collection.query.all(), Customer.query.all(), status, _sort_state('realize_date', report_crud.ASC)
        )
    except report_crud.ReportError as e:
        return jsonify({'error': str(e)}), 400
    return _respond(f'{status} Cheques', rows, report_crud.CHEQUE_COLUMNS)


@main.route('/reports/routes', methods=['GET'])
@page_required(Page.REPORTS)
def route_summary_report():
    try:
        rows = report_crud.route_summary(
            Route.query.all(), Customer.query.filter_by(is_active=True).all(), Collection.query.all(),
            _sort_state('route_name', report_crud.ASC)
        )
    except report_crud.ReportError as e:
        return jsonify({'error': str(e)}), 400
    return _respond('Route Summary', rows, report_crud.ROUTE_COLUMNS)
