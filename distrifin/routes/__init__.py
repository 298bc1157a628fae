from flask import Blueprint

main = Blueprint('main', __name__)

from . import customer_routes
from . import route_routes
from . import collection_routes
from . import cheque_routes
from . import reconciliation_routes
from . import report_routes
from . import dashboard_routes
from . import ledger_routes
from . import log_routes
from . import user_routes
from . import settings_routes
from .event_routes import events_bp

main.register_blueprint(events_bp)
