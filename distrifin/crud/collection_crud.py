from distrifin.models import Collection, Customer, CollectionStatus, PaymentType
from distrifin.crud import ledger_crud
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.date_utils import parse_iso_date, today_iso
from distrifin.utils.logging_utils import log_action
from decimal import Decimal, InvalidOperation
from datetime import date
import logging

logger = logging.getLogger(__name__)

# Card and cheque payments wait for the bank; cash and QR are final on receipt
PENDING_PAYMENT_TYPES = {PaymentType.CARD.value, PaymentType.CHEQUE.value}

LEDGER_NOT_POSTED = "Collection saved but its ledger entry could not be posted."
AUDIT_NOT_WRITTEN = "Collection saved but its audit entry could not be written."


class CollectionError(Exception):
    """Custom exception for collection operations"""
    pass


class CollectionValidationError(CollectionError):
    """Raised when collection input fails a local precondition"""
    pass


def derive_status(payment_type):
    if payment_type in PENDING_PAYMENT_TYPES:
        return CollectionStatus.PENDING.value
    return CollectionStatus.RECEIVED.value


def _parse_amount(raw):
    if raw is None or str(raw).strip() == '':
        return None
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def validate_collection_data(data, customer, settings, today=None):
    """
    Check a collection payload before anything is written.

    Returns:
        tuple: (payment_type, amount, realize_date or None)

    Raises:
        CollectionValidationError: On the first failed rule
    """
    customer_id = str(data.get('customer_id') or '').strip()
    amount = _parse_amount(data.get('amount'))
    if not customer_id or amount is None:
        raise CollectionValidationError("Customer and Amount are required.")
    if amount <= 0:
        raise CollectionValidationError("Amount must be greater than zero.")
    if customer is None:
        raise CollectionValidationError(f"Customer {customer_id} not found")

    try:
        payment_type = PaymentType(data.get('payment_type') or PaymentType.CASH.value).value
    except ValueError:
        raise CollectionValidationError(f"Invalid payment type: {data.get('payment_type')}")

    if payment_type != PaymentType.CHEQUE.value:
        return payment_type, amount, None

    cheque_number = str(data.get('cheque_number') or '').strip()
    bank = str(data.get('bank') or '').strip()
    realize_raw = str(data.get('realize_date') or '').strip()
    if not cheque_number or not bank or not realize_raw:
        raise CollectionValidationError("Cheque details incomplete.")
    try:
        realize_date = parse_iso_date(realize_raw)
    except ValueError:
        raise CollectionValidationError("Realize date must be in YYYY-MM-DD format.")

    if settings.enforce_cheque_credit_period:
        today = today or date.today()
        if realize_date > today and (realize_date - today).days > customer.credit_period_days:
            raise CollectionValidationError(
                f"Cheque date exceeds allowed credit period of {customer.credit_period_days} days."
            )

    return payment_type, amount, realize_date


def record_collection(data, settings, current_user, ip_address=None, user_agent=None, today=None,
                      warnings=None):
    """
    Validate and save a payment, then post its ledger entry and audit log.

    The collection write leads; the ledger posting and audit entry follow as
    separate writes and a failure there is logged without undoing the
    collection. Such failures are appended to `warnings` when a list is
    passed in, so callers can report them.
    """
    warnings = warnings if warnings is not None else []
    store = DataStore()
    customer_id = str(data.get('customer_id') or '').strip()
    customer = Customer.query.filter_by(id=customer_id, is_active=True).first() if customer_id else None

    payment_type, amount, realize_date = validate_collection_data(data, customer, settings, today)
    is_cheque = payment_type == PaymentType.CHEQUE.value

    new_collection = Collection(
        customer_id=customer.id,
        payment_type=payment_type,
        amount=amount,
        status=derive_status(payment_type),
        collection_date=(today.isoformat() if today else today_iso()),
        cheque_number=str(data['cheque_number']).strip() if is_cheque else None,
        bank=str(data['bank']).strip() if is_cheque else None,
        branch=(str(data.get('branch') or '').strip() or None) if is_cheque else None,
        realize_date=realize_date.isoformat() if is_cheque else None,
        cheque_image=data.get('cheque_image') if is_cheque else None,
        created_by=str(current_user.id) if current_user else None
    )

    try:
        store.add(new_collection)
    except DataStoreError as e:
        logger.error(f"Error adding collection: {str(e)}")
        raise CollectionError("Failed to save collection")

    collector_name = current_user.name if current_user else None
    try:
        store.add(ledger_crud.build_collection_entry(new_collection, customer, collector_name))
    except DataStoreError as e:
        logger.error(f"Ledger posting failed for collection {new_collection.id}: {str(e)}")
        warnings.append(LEDGER_NOT_POSTED)

    try:
        log_action(
            current_user,
            'CREATE_COLLECTION',
            f"Recorded {amount} ({payment_type}) from customer {customer.business_name} [{customer.id}]",
            ip_address,
            user_agent,
            store
        )
    except DataStoreError as e:
        logger.error(f"Audit log failed for collection {new_collection.id}: {str(e)}")
        warnings.append(AUDIT_NOT_WRITTEN)

    return new_collection


def serialize_collection(collection, customer=None):
    customer = customer or collection.customer
    return {
        'collection_id': str(collection.id),
        'customer_id': collection.customer_id,
        'customer_name': customer.business_name if customer else None,
        'payment_type': collection.payment_type,
        'amount': float(collection.amount),
        'status': collection.status,
        'cheque_number': collection.cheque_number,
        'bank': collection.bank,
        'branch': collection.branch,
        'realize_date': collection.realize_date,
        'collection_date': collection.collection_date,
        'has_cheque_image': bool(collection.cheque_image),
        'created_by': collection.created_by,
    }


def get_all_collections(current_user=None, only_own=False):
    try:
        query = Collection.query
        if only_own and current_user is not None:
            query = query.filter_by(created_by=str(current_user.id))
        collections = query.order_by(Collection.collection_date.desc(), Collection.created_at.desc()).all()
        return [serialize_collection(c) for c in collections]
    except Exception as e:
        logger.error(f"Error getting collections: {str(e)}")
        raise CollectionError("Failed to retrieve collections")


def get_pending_cheques():
    return Collection.query.filter_by(
        payment_type=PaymentType.CHEQUE.value,
        status=CollectionStatus.PENDING.value
    ).order_by(Collection.realize_date.asc()).all()


def get_cheque_image(collection_id):
    collection = Collection.query.get(collection_id)
    if not collection:
        raise CollectionError(f"Collection {collection_id} not found")
    return collection.cheque_image
