from flask import jsonify
from flask_jwt_extended import get_current_user
from . import main
from ..crud import report_crud
from ..models import Collection
from ..utils.access_control import Page, page_required, can_record_collection
from ..utils.date_utils import today_iso


@main.route('/dashboard/summary', methods=['GET'])
@page_required(Page.DASHBOARD)
def get_dashboard_summary():
    summary = report_crud.dashboard_summary(Collection.query.all(), today=today_iso())
    summary['can_record_collection'] = can_record_collection(get_current_user())
    return jsonify(summary), 200
