"""
Data store façade.

Wraps the SQLAlchemy session in the vocabulary the dashboard was built on:
per-collection add/update/delete, an all-or-nothing write batch, and live
subscriptions that fire after a successful commit.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager

from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from distrifin import db

logger = logging.getLogger(__name__)

# Table name -> collection name exposed to subscribers
COLLECTION_NAMES = {
    'customers': 'customers',
    'routes': 'routes',
    'collections': 'collections',
    'ledger_entries': 'ledger',
    'users': 'users',
    'audit_logs': 'audit_logs',
    'global_settings': 'settings',
}

ADDED = 'added'
MODIFIED = 'modified'
REMOVED = 'removed'

_PENDING_KEY = 'distrifin_pending_changes'

_subscribers = defaultdict(list)
_subscribers_lock = threading.Lock()


class DataStoreError(Exception):
    """Raised when the underlying store rejects a write"""
    pass


def collection_name_for(record):
    table_name = getattr(record, '__tablename__', None)
    return COLLECTION_NAMES.get(table_name)


def _record_id(record):
    # Deleted rows may be expired; the identity key still holds the id
    identity = inspect(record).identity
    return str(identity[0]) if identity else str(record.id)


def subscribe(collection_name, callback):
    """
    Register a callback for committed changes to one collection.

    The callback receives (collection_name, change_type, record_id).
    Returns a function that removes the subscription.
    """
    if collection_name not in COLLECTION_NAMES.values():
        raise ValueError(f"Unknown collection: {collection_name}")

    with _subscribers_lock:
        _subscribers[collection_name].append(callback)

    def unsubscribe():
        with _subscribers_lock:
            if callback in _subscribers[collection_name]:
                _subscribers[collection_name].remove(callback)

    return unsubscribe


def _notify(collection_name, change_type, record_id):
    with _subscribers_lock:
        callbacks = list(_subscribers.get(collection_name, ()))
    for callback in callbacks:
        try:
            callback(collection_name, change_type, record_id)
        except Exception as e:
            logger.error(f"Subscriber for {collection_name} failed: {str(e)}")


def _collect_changes(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, [])
    for change_type, records in ((ADDED, session.new), (MODIFIED, session.dirty), (REMOVED, session.deleted)):
        for record in records:
            name = collection_name_for(record)
            if name is None:
                continue
            if change_type == MODIFIED and not session.is_modified(record):
                continue
            pending.append((name, change_type, _record_id(record)))


def _dispatch_changes(session):
    pending = session.info.pop(_PENDING_KEY, [])
    for name, change_type, record_id in pending:
        _notify(name, change_type, record_id)


def _discard_changes(session):
    session.info.pop(_PENDING_KEY, None)


def register_store_listeners():
    from distrifin.utils.invariants import register_immutability_listeners

    if not event.contains(Session, 'after_flush', _collect_changes):
        event.listen(Session, 'after_flush', _collect_changes)
        event.listen(Session, 'after_commit', _dispatch_changes)
        event.listen(Session, 'after_rollback', _discard_changes)
    register_immutability_listeners()


class WriteBatch:
    """Changes queued inside DataStore.batch(); committed together or not at all"""

    def __init__(self, session):
        self.session = session
        self.size = 0

    def add(self, record):
        self.session.add(record)
        self.size += 1
        return record

    def update(self, record, **fields):
        for key, value in fields.items():
            setattr(record, key, value)
        self.size += 1
        return record

    def delete(self, record):
        self.session.delete(record)
        self.size += 1


class DataStore:
    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, model, record_id):
        return self.session.get(model, record_id)

    def _commit(self, description):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Error {description}: {str(e)}")
            raise DataStoreError(str(e)) from e
        except Exception:
            self.session.rollback()
            raise

    def add(self, record):
        self.session.add(record)
        self._commit(f"adding record to {collection_name_for(record)}")
        return record

    def update(self, record, **fields):
        for key, value in fields.items():
            setattr(record, key, value)
        self._commit(f"updating {collection_name_for(record)} record {_record_id(record)}")
        return record

    def delete(self, record):
        # Read the id first; a deleted expired instance can no longer refresh
        record_id = _record_id(record)
        self.session.delete(record)
        self._commit(f"deleting {collection_name_for(record)} record {record_id}")

    @contextmanager
    def batch(self):
        write_batch = WriteBatch(self.session)
        try:
            yield write_batch
        except Exception:
            self.session.rollback()
            raise
        self._commit(f"committing batch of {write_batch.size} writes")

    def subscribe(self, collection_name, callback):
        return subscribe(collection_name, callback)
