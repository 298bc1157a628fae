from distrifin.models import Customer, CustomerStatus, Route
from distrifin.services.customer_import import parse_customer_csv
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.logging_utils import log_action
from decimal import Decimal, InvalidOperation
import logging

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = [
    'customer_name', 'business_name', 'address', 'business_address', 'phone_number',
    'whatsapp_number', 'br_number', 'nic', 'date_of_birth', 'location', 'route_id',
]


class CustomerError(Exception):
    """Custom exception for customer operations"""
    pass


def validate_customer_data(data, is_update=False):
    errors = {}
    if not is_update or 'business_name' in data:
        if not str(data.get('business_name') or '').strip():
            errors['business_name'] = 'Business name is required'
    if not is_update or 'phone_number' in data:
        if not str(data.get('phone_number') or '').strip():
            errors['phone_number'] = 'Phone number is required'
    if data.get('credit_limit') not in (None, ''):
        try:
            if Decimal(str(data['credit_limit'])) < 0:
                errors['credit_limit'] = 'Credit limit cannot be negative'
        except InvalidOperation:
            errors['credit_limit'] = 'Credit limit must be a number'
    if data.get('credit_period_days') not in (None, ''):
        try:
            if int(data['credit_period_days']) < 0:
                errors['credit_period_days'] = 'Credit period cannot be negative'
        except (TypeError, ValueError):
            errors['credit_period_days'] = 'Credit period must be a whole number'
    if data.get('status') and data['status'] not in [s.value for s in CustomerStatus]:
        errors['status'] = 'Invalid status'
    return errors


def serialize_customer(customer, route_names=None):
    route_names = route_names or {}
    return {
        'customer_id': str(customer.id),
        'customer_name': customer.customer_name,
        'business_name': customer.business_name,
        'address': customer.address,
        'business_address': customer.business_address,
        'phone_number': customer.phone_number,
        'whatsapp_number': customer.whatsapp_number,
        'br_number': customer.br_number,
        'nic': customer.nic,
        'date_of_birth': customer.date_of_birth,
        'location': customer.location,
        'route_id': customer.route_id,
        'route_name': route_names.get(customer.route_id),
        'credit_limit': float(customer.credit_limit),
        'credit_period_days': customer.credit_period_days,
        'status': customer.status,
        'created_by': customer.created_by,
    }


def get_all_customers(include_deleted=False):
    try:
        query = Customer.query
        if not include_deleted:
            query = query.filter_by(is_active=True)
        route_names = {str(r.id): r.route_name for r in Route.query.all()}
        return [serialize_customer(c, route_names) for c in query.order_by(Customer.business_name).all()]
    except Exception as e:
        logger.error(f"Error getting customers: {str(e)}")
        raise CustomerError("Failed to retrieve customers")


def get_customer(customer_id):
    return Customer.query.filter_by(id=customer_id, is_active=True).first()


def add_customer(data, settings, current_user, ip_address, user_agent):
    store = DataStore()
    new_customer = Customer(
        customer_name=str(data.get('customer_name') or '').strip() or str(data['business_name']).strip(),
        business_name=str(data['business_name']).strip(),
        address=data.get('address'),
        business_address=data.get('business_address'),
        phone_number=str(data['phone_number']).strip(),
        whatsapp_number=data.get('whatsapp_number'),
        br_number=data.get('br_number'),
        nic=data.get('nic'),
        date_of_birth=data.get('date_of_birth'),
        location=data.get('location') or '',
        route_id=data.get('route_id') or '',
        credit_limit=Decimal(str(data['credit_limit'])) if data.get('credit_limit') not in (None, '') else settings.default_credit_limit,
        credit_period_days=int(data['credit_period_days']) if data.get('credit_period_days') not in (None, '') else settings.default_credit_period,
        status=data.get('status') or CustomerStatus.ACTIVE.value,
        created_by=str(current_user.id) if current_user else None,
        is_active=True
    )
    try:
        store.add(new_customer)
        log_action(current_user, 'CREATE_CUSTOMER',
                   f"Created customer {new_customer.business_name} [{new_customer.id}]",
                   ip_address, user_agent, store)
    except DataStoreError as e:
        logger.error(f"Error adding customer: {str(e)}")
        raise CustomerError("Failed to add customer")
    return new_customer


def update_customer(customer_id, data, current_user, ip_address, user_agent):
    store = DataStore()
    customer = get_customer(customer_id)
    if not customer:
        return None

    fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}
    if data.get('credit_limit') not in (None, ''):
        fields['credit_limit'] = Decimal(str(data['credit_limit']))
    if data.get('credit_period_days') not in (None, ''):
        fields['credit_period_days'] = int(data['credit_period_days'])
    if data.get('status'):
        fields['status'] = data['status']

    try:
        store.update(customer, **fields)
        log_action(current_user, 'UPDATE_CUSTOMER',
                   f"Updated customer {customer.business_name} [{customer.id}]: {', '.join(sorted(fields))}",
                   ip_address, user_agent, store)
    except DataStoreError as e:
        logger.error(f"Error updating customer: {str(e)}")
        raise CustomerError("Failed to update customer")
    return customer


def delete_customer(customer_id, current_user, ip_address, user_agent):
    """Soft delete: the customer keeps its collections and ledger history"""
    store = DataStore()
    customer = get_customer(customer_id)
    if not customer:
        return False
    try:
        store.update(customer, is_active=False, status=CustomerStatus.INACTIVE.value)
        log_action(current_user, 'DELETE_CUSTOMER',
                   f"Deleted customer {customer.business_name} [{customer.id}]",
                   ip_address, user_agent, store)
    except DataStoreError as e:
        logger.error(f"Error deleting customer: {str(e)}")
        raise CustomerError("Failed to delete customer")
    return True


def import_customers(text, settings, current_user, ip_address, user_agent):
    """
    Parse an uploaded customer file and save every row in one commit.

    Raises:
        CustomerImportError: If the file has no importable rows (nothing is written)
        CustomerError: If the batch commit fails (nothing is written)
    """
    routes = Route.query.all()
    customers = parse_customer_csv(text, routes, settings)
    created_by = str(current_user.id) if current_user else None

    store = DataStore()
    try:
        with store.batch() as batch:
            for customer in customers:
                customer.created_by = created_by
                batch.add(customer)
    except DataStoreError as e:
        logger.error(f"Error importing customers: {str(e)}")
        raise CustomerError("Failed to import customers")

    for customer in customers:
        try:
            log_action(current_user, 'CREATE_CUSTOMER',
                       f"Imported customer {customer.business_name} [{customer.id}]",
                       ip_address, user_agent, store)
        except DataStoreError as e:
            logger.error(f"Audit log failed for imported customer {customer.id}: {str(e)}")

    logger.info(f"Imported {len(customers)} customers")
    return customers
