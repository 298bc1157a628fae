"""
Cheque reconciliation.

Pending cheque collections are matched against a bank statement extract on
(cheque number, amount), exactly. The operator reviews the proposed matches
and confirms; confirmation moves cleared cheques to Realized and dishonoured
ones to Returned in a single atomic batch, then posts the mirroring ledger
entries.
"""

import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import pandas as pd
from flask import current_app, has_app_context

from distrifin.crud import ledger_crud
from distrifin.models import Collection, CollectionStatus, PaymentType
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.csv_utils import guess_delimiter, normalize_header, split_lines
from distrifin.utils.date_utils import parse_statement_date
from distrifin.utils.invariants import ImmutableRecordError, InvalidStatusTransitionError
from distrifin.utils.logging_utils import log_action

logger = logging.getLogger(__name__)

CLEARED = 'CLEARED'
RETURNED = 'RETURNED'

BANK_STATUS_ALIASES = {
    'cleared': CLEARED,
    'clear': CLEARED,
    'realized': CLEARED,
    'realised': CLEARED,
    'paid': CLEARED,
    'honoured': CLEARED,
    'honored': CLEARED,
    'returned': RETURNED,
    'return': RETURNED,
    'bounced': RETURNED,
    'dishonoured': RETURNED,
    'dishonored': RETURNED,
    'unpaid': RETURNED,
}

TARGET_STATUS = {
    CLEARED: CollectionStatus.REALIZED.value,
    RETURNED: CollectionStatus.RETURNED.value,
}

STATEMENT_COLUMNS = {
    'id': ['id', 'entry id', 'reference', 'ref'],
    'date': ['date', 'value date', 'transaction date', 'posting date'],
    'cheque_number': ['cheque number', 'cheque no', 'cheque', 'check number', 'check no', 'chq no', 'instrument number'],
    'amount': ['amount', 'cheque amount', 'value', 'credit'],
    'status': ['status', 'bank status', 'cheque status'],
}


class ReconciliationError(Exception):
    """Raised when a reconciliation cannot be confirmed; nothing was changed"""
    pass


class ReconciliationPayloadError(ReconciliationError):
    """Raised when a confirmation payload is malformed"""
    pass


class StatementParseError(Exception):
    """Raised when an uploaded bank statement cannot be read"""
    pass


@dataclass(frozen=True)
class StatementEntry:
    id: str
    cheque_number: str
    amount: Decimal
    status: str
    date: Optional[str] = None

    @classmethod
    def from_dict(cls, data, index=0):
        if not isinstance(data, dict):
            raise StatementParseError(f"Entry {index + 1} is not an object")
        status = normalize_bank_status(data.get('status'))
        if status is None:
            raise StatementParseError(f"Unknown bank status: {data.get('status')}")
        try:
            amount = Decimal(str(data.get('amount')).replace(',', '').strip())
        except InvalidOperation:
            raise StatementParseError(f"Invalid amount: {data.get('amount')}")
        return cls(
            id=str(data.get('id') or f"ST-{index + 1}"),
            cheque_number=str(data.get('cheque_number') or '').strip(),
            amount=amount,
            status=status,
            date=data.get('date')
        )

    def to_dict(self):
        return {
            'id': self.id,
            'date': self.date,
            'cheque_number': self.cheque_number,
            'amount': float(self.amount),
            'status': self.status,
        }


@dataclass(frozen=True)
class ReconciliationMatch:
    collection: Collection
    entry: StatementEntry

    @property
    def target_status(self):
        return TARGET_STATUS[self.entry.status]

    @property
    def action(self):
        return 'MOVE TO REALIZED' if self.entry.status == CLEARED else 'MARK AS RETURNED'


@dataclass
class ReconciliationPlan:
    matches: List[ReconciliationMatch] = field(default_factory=list)
    unmatched: List[Collection] = field(default_factory=list)
    # collection id -> every statement entry id that qualified for it
    ambiguous_collections: Dict[str, List[str]] = field(default_factory=dict)
    # statement entry id -> every collection id that claimed it
    contested_entries: Dict[str, List[str]] = field(default_factory=dict)
    unmatched_entries: List[StatementEntry] = field(default_factory=list)

    @property
    def has_ties(self):
        return bool(self.ambiguous_collections or self.contested_entries)

    def matched_ids(self):
        return {str(m.collection.id) for m in self.matches}

    def to_dict(self):
        return {
            'matches': [{
                'collection_id': str(m.collection.id),
                'customer_id': m.collection.customer_id,
                'cheque_number': m.collection.cheque_number,
                'bank': m.collection.bank,
                'amount': float(m.collection.amount),
                'entry': m.entry.to_dict(),
                'action': m.action,
            } for m in self.matches],
            'unmatched': [{
                'collection_id': str(c.id),
                'cheque_number': c.cheque_number,
                'amount': float(c.amount),
                'realize_date': c.realize_date,
            } for c in self.unmatched],
            'unmatched_entries': [e.to_dict() for e in self.unmatched_entries],
            'ambiguous_collections': self.ambiguous_collections,
            'contested_entries': self.contested_entries,
            'match_count': len(self.matches),
            'unmatched_count': len(self.unmatched),
        }


@dataclass
class ReconciliationResult:
    realized_ids: List[str] = field(default_factory=list)
    returned_ids: List[str] = field(default_factory=list)
    ledger_failures: List[str] = field(default_factory=list)

    @property
    def total(self):
        return len(self.realized_ids) + len(self.returned_ids)

    def to_dict(self):
        return {
            'realized_ids': self.realized_ids,
            'returned_ids': self.returned_ids,
            'ledger_failures': self.ledger_failures,
            'total': self.total,
            'message': f"Successfully verified and reconciled {self.total} cheques.",
        }


def normalize_bank_status(raw):
    return BANK_STATUS_ALIASES.get(normalize_header(str(raw or '')))


def is_pending_cheque(collection):
    return (collection.payment_type == PaymentType.CHEQUE.value
            and collection.status == CollectionStatus.PENDING.value)


def parse_bank_statement(text):
    """
    Read a bank statement CSV into StatementEntry records.

    Raises:
        StatementParseError: If required columns are missing or a row is malformed
    """
    lines = split_lines(text)
    if len(lines) < 2:
        raise StatementParseError("Statement file is empty.")

    try:
        df = pd.read_csv(
            io.StringIO('\n'.join(lines)),
            sep=guess_delimiter(lines[0]),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True
        )
    except (pd.errors.ParserError, ValueError) as e:
        logger.error(f"Error reading bank statement: {str(e)}")
        raise StatementParseError("Failed to parse bank statement file.")

    normalized = {normalize_header(col): col for col in df.columns}
    columns = {}
    for key, candidates in STATEMENT_COLUMNS.items():
        columns[key] = next((normalized[c] for c in candidates if c in normalized), None)
    missing = [key for key in ('cheque_number', 'amount', 'status') if columns[key] is None]
    if missing:
        raise StatementParseError(f"Statement is missing columns: {', '.join(missing)}")

    entries = []
    for index, row in df.iterrows():
        cheque_number = str(row[columns['cheque_number']]).strip()
        if not cheque_number:
            continue
        try:
            entry = StatementEntry.from_dict({
                'id': row[columns['id']] if columns['id'] else None,
                'cheque_number': cheque_number,
                'amount': row[columns['amount']],
                'status': row[columns['status']],
                'date': parse_statement_date(row[columns['date']]) if columns['date'] else None,
            }, index)
        except StatementParseError as e:
            raise StatementParseError(f"Row {index + 2}: {str(e)}")
        entries.append(entry)

    if not entries:
        raise StatementParseError("No cheque entries found in statement.")
    return entries


def entry_matches(collection, entry):
    """Exact join on cheque number and amount"""
    return (entry.cheque_number == collection.cheque_number
            and entry.amount == Decimal(str(collection.amount)))


def match_statement(collections, statement_entries):
    """
    Propose matches between pending cheques and statement entries.

    A collection matches an entry when the cheque number and the amount are
    exactly equal. The first qualifying entry wins; extra candidates are
    reported in the plan rather than resolved.
    """
    plan = ReconciliationPlan()
    claimed = {}

    for collection in collections:
        if not is_pending_cheque(collection):
            continue
        candidates = [entry for entry in statement_entries if entry_matches(collection, entry)]
        if not candidates:
            plan.unmatched.append(collection)
            continue
        if len(candidates) > 1:
            plan.ambiguous_collections[str(collection.id)] = [e.id for e in candidates]
        chosen = candidates[0]
        claimed.setdefault(chosen.id, []).append(str(collection.id))
        plan.matches.append(ReconciliationMatch(collection=collection, entry=chosen))

    plan.contested_entries = {entry_id: ids for entry_id, ids in claimed.items() if len(ids) > 1}
    plan.unmatched_entries = [e for e in statement_entries if e.id not in claimed]

    if plan.has_ties:
        logger.warning(
            f"Reconciliation ties: {len(plan.ambiguous_collections)} collections with several entries, "
            f"{len(plan.contested_entries)} entries claimed twice"
        )
    return plan


def matches_from_payload(items):
    """
    Rebuild operator-confirmed matches from [{collection_id, entry: {...}}].

    Each submitted entry must still match its collection exactly on cheque
    number and amount; the client cannot pair a cheque with any other entry.

    Raises:
        ReconciliationPayloadError: If the payload is not a list of objects
        ReconciliationError: If a collection is unknown or its entry does not match
    """
    if not items:
        raise ReconciliationError("No matches to confirm")
    if not isinstance(items, list):
        raise ReconciliationPayloadError("matches must be a list")

    entries_by_collection = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ReconciliationPayloadError(f"Match {index + 1} is not an object")
        collection_id = str(item.get('collection_id') or '').strip()
        if not collection_id:
            raise ReconciliationPayloadError("Match without collection_id")
        try:
            entries_by_collection[collection_id] = StatementEntry.from_dict(item.get('entry') or {}, index)
        except StatementParseError as e:
            raise ReconciliationPayloadError(str(e))

    collections = Collection.query.filter(Collection.id.in_(list(entries_by_collection))).all()
    found = {str(c.id): c for c in collections}
    missing = [cid for cid in entries_by_collection if cid not in found]
    if missing:
        raise ReconciliationError(f"Collections not found: {', '.join(missing)}")

    mismatched = [cid for cid, entry in entries_by_collection.items() if not entry_matches(found[cid], entry)]
    if mismatched:
        raise ReconciliationError(
            f"Statement entries do not match cheque number and amount for: {', '.join(mismatched)}"
        )

    return [ReconciliationMatch(collection=found[cid], entry=entry) for cid, entry in entries_by_collection.items()]


def _split_by_status(matches):
    cleared, returned = [], []
    for match in matches:
        bucket = cleared if match.entry.status == CLEARED else returned
        if match.collection not in bucket:
            bucket.append(match.collection)
    overlap = {str(c.id) for c in cleared} & {str(c.id) for c in returned}
    if overlap:
        raise ReconciliationError(f"Collections matched as both cleared and returned: {', '.join(sorted(overlap))}")
    return cleared, returned


def confirm_reconciliation(matches, current_user, ip_address=None, user_agent=None, atomic_ledger=None):
    """
    Apply confirmed matches.

    Status changes for all matched collections are committed as one batch:
    either every cheque moves or none does. Ledger postings follow as
    separate writes unless atomic_ledger is set, in which case they join
    the batch.

    Raises:
        ReconciliationError: If nothing was confirmed, an entry does not
            match its cheque exactly, a collection is no longer a pending
            cheque, or the batch commit fails
    """
    if atomic_ledger is None:
        atomic_ledger = bool(current_app.config.get('RECONCILIATION_ATOMIC_LEDGER', False)) if has_app_context() else False

    unmatched = [str(m.collection.id) for m in matches if not entry_matches(m.collection, m.entry)]
    if unmatched:
        raise ReconciliationError(
            f"Statement entries do not match cheque number and amount for: {', '.join(unmatched)}"
        )

    cleared, returned = _split_by_status(matches)
    if not cleared and not returned:
        raise ReconciliationError("No matches to confirm")

    moves = [(c, CollectionStatus.REALIZED.value) for c in cleared] + \
            [(c, CollectionStatus.RETURNED.value) for c in returned]
    collector_name = current_user.name if current_user else None
    store = DataStore()

    try:
        with store.batch() as batch:
            for collection, _ in moves:
                store.session.refresh(collection)
                if not is_pending_cheque(collection):
                    raise ReconciliationError(
                        f"Collection {collection.id} is {collection.status}, not a pending cheque"
                    )
            for collection, new_status in moves:
                batch.update(collection, status=new_status)
                if atomic_ledger:
                    batch.add(ledger_crud.build_status_entry(collection, new_status, collector_name))
    except (DataStoreError, ImmutableRecordError, InvalidStatusTransitionError) as e:
        logger.error(f"Reconciliation batch failed: {str(e)}")
        raise ReconciliationError("Reconciliation failed; no cheques were updated")

    result = ReconciliationResult(
        realized_ids=[str(c.id) for c in cleared],
        returned_ids=[str(c.id) for c in returned]
    )

    if not atomic_ledger:
        for collection, new_status in moves:
            try:
                store.add(ledger_crud.build_status_entry(collection, new_status, collector_name))
            except DataStoreError as e:
                logger.error(f"Ledger posting failed for reconciled collection {collection.id}: {str(e)}")
                result.ledger_failures.append(str(collection.id))

    for ids, status in ((result.realized_ids, CollectionStatus.REALIZED.value),
                        (result.returned_ids, CollectionStatus.RETURNED.value)):
        if not ids:
            continue
        try:
            log_action(current_user, 'RECONCILE', f"Reconciled {len(ids)} cheques as {status}",
                       ip_address, user_agent, store)
        except DataStoreError as e:
            logger.error(f"Audit log failed for reconciliation: {str(e)}")

    logger.info(f"Reconciled {len(result.realized_ids)} realized and {len(result.returned_ids)} returned cheques")
    return result
