"""
Ledger and audit invariants.

Two halves:
- ORM guards that stop the append-only records from being rewritten and
  stop collection fields other than status from changing after creation.
- A checker that walks collections and ledger entries and reports every
  broken rule, for tests and for the ledger health endpoint.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import object_session

from distrifin.models import (
    AuditLog, Collection, CollectionStatus, LedgerEntry, LedgerEntryType, PaymentType
)

logger = logging.getLogger(__name__)

_LEDGER_DELETE_KEY = 'distrifin_allow_ledger_delete'

# Allowed post-creation status moves; everything else is terminal
STATUS_TRANSITIONS = {
    CollectionStatus.PENDING.value: {CollectionStatus.REALIZED.value, CollectionStatus.RETURNED.value},
}

COLLECTION_MUTABLE_FIELDS = {'status', 'updated_at'}


class ImmutableRecordError(Exception):
    """Raised when an append-only record is updated or deleted"""
    pass


class InvalidStatusTransitionError(Exception):
    """Raised when a collection status moves outside Pending -> Realized/Returned"""
    pass


@contextmanager
def ledger_delete_allowed(session):
    """Open the operator bulk-delete window for ledger entries on this session"""
    session.info[_LEDGER_DELETE_KEY] = True
    try:
        yield
    finally:
        session.info.pop(_LEDGER_DELETE_KEY, None)


def _target_id(target):
    identity = inspect(target).identity
    return identity[0] if identity else target.id


def _reject_ledger_update(mapper, connection, target):
    raise ImmutableRecordError(f"Ledger entry {_target_id(target)} is append-only")


def _reject_ledger_delete(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.info.get(_LEDGER_DELETE_KEY):
        return
    raise ImmutableRecordError(f"Ledger entry {_target_id(target)} can only be removed by an operator bulk delete")


def _reject_audit_update(mapper, connection, target):
    raise ImmutableRecordError(f"Audit log {_target_id(target)} is append-only")


def _reject_audit_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Audit log {_target_id(target)} is append-only")


def _check_collection_update(mapper, connection, target):
    state = inspect(target)
    record_id = _target_id(target)
    changed = {attr.key for attr in state.attrs if attr.history.has_changes()}
    frozen = changed - COLLECTION_MUTABLE_FIELDS
    if frozen:
        raise ImmutableRecordError(
            f"Collection {record_id} fields {sorted(frozen)} cannot change after creation"
        )

    history = state.attrs.status.history
    if not history.has_changes():
        return
    if history.deleted:
        old_status = history.deleted[0]
    else:
        # Attribute was expired when set; read the stored value
        table = Collection.__table__
        old_status = connection.execute(select(table.c.status).where(table.c.id == record_id)).scalar()
    new_status = target.status
    if new_status not in STATUS_TRANSITIONS.get(old_status, set()):
        raise InvalidStatusTransitionError(
            f"Collection {record_id} cannot move from {old_status} to {new_status}"
        )


_GUARDS = (
    (LedgerEntry, 'before_update', _reject_ledger_update),
    (LedgerEntry, 'before_delete', _reject_ledger_delete),
    (AuditLog, 'before_update', _reject_audit_update),
    (AuditLog, 'before_delete', _reject_audit_delete),
    (Collection, 'before_update', _check_collection_update),
)


def register_immutability_listeners():
    for model, event_name, guard in _GUARDS:
        if not event.contains(model, event_name, guard):
            event.listen(model, event_name, guard)


def unregister_immutability_listeners():
    for model, event_name, guard in _GUARDS:
        if event.contains(model, event_name, guard):
            event.remove(model, event_name, guard)


@dataclass(frozen=True)
class InvariantViolation:
    rule: str
    record_id: str
    message: str


def _debit_account_for(payment_type):
    from distrifin.crud.ledger_crud import DEBIT_ACCOUNT_BY_PAYMENT_TYPE
    return DEBIT_ACCOUNT_BY_PAYMENT_TYPE.get(payment_type)


def check_ledger_invariants(collections, ledger_entries):
    """
    Check collections against their ledger postings.

    Rules:
    - every collection has exactly one COLLECTION posting of the same amount,
      debiting the payment-type account and crediting the customer
    - a collection has at most one REALIZED/RETURNED posting, and only when
      its status says so
    - Cash/QR collections are Received; Card/Cheque ones are never Received
    - every posting references a known collection and has a positive amount
    """
    from distrifin.crud.ledger_crud import customer_account

    violations = []
    by_reference = {}
    collection_ids = {str(c.id) for c in collections}

    for entry in ledger_entries:
        by_reference.setdefault(str(entry.reference_id), []).append(entry)
        if Decimal(str(entry.amount)) <= 0:
            violations.append(InvariantViolation('positive_amount', str(entry.id), "Ledger amount must be positive"))
        if str(entry.reference_id) not in collection_ids:
            violations.append(InvariantViolation(
                'known_reference', str(entry.id), f"References unknown collection {entry.reference_id}"
            ))

    for collection in collections:
        cid = str(collection.id)
        entries = by_reference.get(cid, [])
        originals = [e for e in entries if e.entry_type == LedgerEntryType.COLLECTION.value]
        status_posts = [e for e in entries if e.entry_type != LedgerEntryType.COLLECTION.value]

        if len(originals) != 1:
            violations.append(InvariantViolation(
                'single_collection_posting', cid, f"Expected 1 collection posting, found {len(originals)}"
            ))
        else:
            original = originals[0]
            if Decimal(str(original.amount)) != Decimal(str(collection.amount)):
                violations.append(InvariantViolation('amount_matches', cid, "Posting amount differs from collection"))
            if original.debit_account != _debit_account_for(collection.payment_type):
                violations.append(InvariantViolation('debit_account', cid, f"Unexpected debit {original.debit_account}"))
            if original.credit_account != customer_account(collection.customer_id):
                violations.append(InvariantViolation('credit_account', cid, f"Unexpected credit {original.credit_account}"))

        if len(status_posts) > 1:
            violations.append(InvariantViolation(
                'single_status_posting', cid, f"Expected at most 1 status posting, found {len(status_posts)}"
            ))
        for post in status_posts:
            if post.entry_type != collection.status.upper():
                violations.append(InvariantViolation(
                    'status_posting_matches', cid, f"{post.entry_type} posting on a {collection.status} collection"
                ))

        if collection.payment_type in (PaymentType.CASH.value, PaymentType.QR.value):
            if collection.status != CollectionStatus.RECEIVED.value:
                violations.append(InvariantViolation('initial_status', cid, f"{collection.payment_type} must be Received"))
        elif collection.status == CollectionStatus.RECEIVED.value:
            violations.append(InvariantViolation('initial_status', cid, f"{collection.payment_type} cannot be Received"))

    return violations


def check_audit_invariants(audit_logs):
    """Audit logs, in insertion order, must carry an action and non-decreasing timestamps"""
    violations = []
    previous = None
    for log in audit_logs:
        if not log.action:
            violations.append(InvariantViolation('action_tag', str(log.id), "Audit log without action"))
        if previous is not None and log.timestamp < previous:
            violations.append(InvariantViolation('monotonic_timestamp', str(log.id), "Timestamp goes backwards"))
        previous = log.timestamp
    return violations
