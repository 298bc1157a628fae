import enum
import logging
from functools import wraps

from flask import jsonify
from flask_jwt_extended import get_current_user, verify_jwt_in_request

from distrifin.models import UserRole

logger = logging.getLogger(__name__)


class Page(str, enum.Enum):
    DASHBOARD = 'DASHBOARD'
    COLLECTIONS = 'COLLECTIONS'
    CUSTOMERS = 'CUSTOMERS'
    CHEQUES = 'CHEQUES'
    RECONCILIATION = 'RECONCILIATION'
    REPORTS = 'REPORTS'
    SETTINGS = 'SETTINGS'
    LEDGER = 'LEDGER'
    AUDIT = 'AUDIT'
    USERS = 'USERS'


ROLE_PAGES = {
    UserRole.ADMIN.value: frozenset(Page),
    UserRole.ACCOUNTS.value: frozenset({Page.CHEQUES, Page.RECONCILIATION, Page.LEDGER, Page.REPORTS}),
    UserRole.COLLECTOR.value: frozenset({Page.DASHBOARD, Page.COLLECTIONS, Page.CUSTOMERS}),
}

COLLECTION_RECORDING_ROLES = {UserRole.ADMIN.value, UserRole.COLLECTOR.value}


def _explicit_pages(permissions):
    pages = set()
    for raw in permissions or ():
        try:
            pages.add(Page(str(raw).upper()))
        except ValueError:
            logger.debug(f"Ignoring unknown page permission: {raw}")
    return pages


def allowed_pages(user):
    """
    Pages a user may see.

    Admins see everything. Other roles get their role default unless the
    user carries a non-empty explicit permission list, which then replaces
    the default outright.
    """
    if user is None:
        return frozenset()
    role = str(user.role or '').upper()
    if role == UserRole.ADMIN.value:
        return ROLE_PAGES[role]
    if user.permissions:
        return frozenset(_explicit_pages(user.permissions))
    return ROLE_PAGES.get(role, frozenset())


def can_view(user, page):
    try:
        page = Page(page)
    except ValueError:
        return False
    return page in allowed_pages(user)


def can_record_collection(user):
    return user is not None and str(user.role or '').upper() in COLLECTION_RECORDING_ROLES


def page_required(page):
    """Route decorator: valid JWT, an active user, and visibility of the given page"""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            user = get_current_user()
            if user is None or not user.is_active:
                return jsonify({'error': 'User not found or inactive'}), 401
            if not can_view(user, page):
                return jsonify({'error': 'Access denied', 'page': Page(page).value}), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
