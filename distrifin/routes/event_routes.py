"""
Server-sent events for live list refresh.

Clients subscribe to one or more collections and receive a message for each
committed add, modify or remove. Payloads carry ids only; clients re-fetch.
"""

import json
import logging
import queue

from flask import Blueprint, Response, jsonify, request
from flask_jwt_extended import get_current_user, jwt_required

from ..store import COLLECTION_NAMES, subscribe
from ..utils.access_control import Page, can_view

logger = logging.getLogger(__name__)

events_bp = Blueprint('events', __name__)

KEEPALIVE_SECONDS = 15

# Collections a user may follow, keyed by the page that shows them
COLLECTION_PAGES = {
    'customers': Page.CUSTOMERS,
    'routes': Page.CUSTOMERS,
    'collections': Page.COLLECTIONS,
    'ledger': Page.LEDGER,
    'users': Page.USERS,
    'audit_logs': Page.AUDIT,
    'settings': None,
}


def format_event(collection_name, change_type, record_id):
    payload = json.dumps({'collection': collection_name, 'type': change_type, 'id': record_id})
    return f"event: {collection_name}\ndata: {payload}\n\n"


def _visible_collections(user, requested):
    visible = []
    for name in requested:
        page = COLLECTION_PAGES.get(name)
        if name not in COLLECTION_NAMES.values():
            continue
        if page is None or can_view(user, page) or (name == 'collections' and can_view(user, Page.CHEQUES)):
            visible.append(name)
    return visible


@events_bp.route('/events/stream', methods=['GET'])
@jwt_required(locations=['headers', 'query_string'])
def stream_events():
    user = get_current_user()
    requested = [n.strip() for n in request.args.get('collections', 'collections').split(',') if n.strip()]
    names = _visible_collections(user, requested)
    if not names:
        return jsonify({'error': 'No accessible collections requested'}), 403

    events = queue.Queue()

    def on_change(collection_name, change_type, record_id):
        events.put(format_event(collection_name, change_type, record_id))

    unsubscribers = [subscribe(name, on_change) for name in names]
    logger.info(f"User {user.id} streaming {', '.join(names)}")

    def generate():
        try:
            yield f": subscribed {','.join(names)}\n\n"
            while True:
                try:
                    yield events.get(timeout=KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keepalive\n\n"
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
            logger.info(f"User {user.id} stream closed")

    return Response(generate(), mimetype='text/event-stream',
                    headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})
