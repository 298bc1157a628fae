from distrifin.models import LedgerEntry, LedgerEntryType, PaymentType, CollectionStatus
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.date_utils import today_iso
from distrifin.utils.invariants import ledger_delete_allowed
from distrifin.utils.logging_utils import log_action
from sqlalchemy import desc
import logging

logger = logging.getLogger(__name__)

CASH_IN_HAND = 'CashInHand'
CHEQUES_IN_HAND = 'ChequesInHand'
BANK_PENDING = 'BankPending'
BANK_QR = 'Bank:QR'
BANK_MAIN = 'Bank:Main'

DEBIT_ACCOUNT_BY_PAYMENT_TYPE = {
    PaymentType.CASH.value: CASH_IN_HAND,
    PaymentType.CHEQUE.value: CHEQUES_IN_HAND,
    PaymentType.CARD.value: BANK_PENDING,
    PaymentType.QR.value: BANK_QR,
}


class LedgerError(Exception):
    """Custom exception for ledger operations"""
    pass


def customer_account(customer_id):
    return f"Customer:{customer_id}"


def build_collection_entry(collection, customer, collector_name, entry_date=None):
    """Double-entry posting for a newly recorded collection (not yet persisted)"""
    return LedgerEntry(
        entry_type=LedgerEntryType.COLLECTION.value,
        date=entry_date or collection.collection_date,
        description=f"Collection from {customer.business_name} ({collection.payment_type})",
        reference_id=str(collection.id),
        collector=collector_name,
        debit_account=DEBIT_ACCOUNT_BY_PAYMENT_TYPE[collection.payment_type],
        credit_account=customer_account(collection.customer_id),
        amount=collection.amount
    )


def build_status_entry(collection, new_status, collector_name, entry_date=None):
    """
    Posting that mirrors a reconciliation status change.

    Realized moves the cheque from ChequesInHand to the main bank account;
    Returned reverses the original posting back onto the customer.
    """
    if new_status == CollectionStatus.REALIZED.value:
        entry_type = LedgerEntryType.REALIZED.value
        debit, credit = BANK_MAIN, CHEQUES_IN_HAND
        description = f"Cheque {collection.cheque_number} realized"
    elif new_status == CollectionStatus.RETURNED.value:
        entry_type = LedgerEntryType.RETURNED.value
        debit, credit = customer_account(collection.customer_id), CHEQUES_IN_HAND
        description = f"Cheque {collection.cheque_number} returned"
    else:
        raise LedgerError(f"No ledger posting for status {new_status}")

    return LedgerEntry(
        entry_type=entry_type,
        date=entry_date or today_iso(),
        description=description,
        reference_id=str(collection.id),
        collector=collector_name,
        debit_account=debit,
        credit_account=credit,
        amount=collection.amount
    )


def serialize_entry(entry):
    return {
        'entry_id': str(entry.id),
        'entry_type': entry.entry_type,
        'schema_version': entry.schema_version,
        'date': entry.date,
        'description': entry.description,
        'reference_id': entry.reference_id,
        'collector': entry.collector,
        'debit_account': entry.debit_account,
        'credit_account': entry.credit_account,
        'amount': float(entry.amount),
    }


def get_all_ledger_entries(reference_id=None):
    try:
        query = LedgerEntry.query
        if reference_id:
            query = query.filter_by(reference_id=reference_id)
        entries = query.order_by(desc(LedgerEntry.date), desc(LedgerEntry.created_at)).all()
        return [serialize_entry(entry) for entry in entries]
    except Exception as e:
        logger.error(f"Error getting ledger entries: {str(e)}")
        raise LedgerError("Failed to retrieve ledger entries")


def bulk_delete_ledger_entries(entry_ids, current_user, ip_address, user_agent):
    """Operator bulk delete; the only path that removes ledger postings"""
    if not entry_ids:
        raise LedgerError("No ledger entries selected")

    store = DataStore()
    entries = LedgerEntry.query.filter(LedgerEntry.id.in_(entry_ids)).all()
    if len(entries) != len(set(entry_ids)):
        found = {str(e.id) for e in entries}
        missing = [eid for eid in entry_ids if eid not in found]
        raise LedgerError(f"Ledger entries not found: {', '.join(missing)}")

    try:
        with ledger_delete_allowed(store.session):
            with store.batch() as batch:
                for entry in entries:
                    batch.delete(entry)
    except DataStoreError as e:
        logger.error(f"Error deleting ledger entries: {str(e)}")
        raise LedgerError("Failed to delete ledger entries")

    log_action(current_user, 'DELETE_LEDGER', f"Deleted {len(entries)} ledger entries", ip_address, user_agent, store)
    logger.info(f"Deleted {len(entries)} ledger entries")
    return len(entries)
