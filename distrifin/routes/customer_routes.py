from flask import jsonify, request
from flask_jwt_extended import get_current_user
from . import main
from ..crud import customer_crud
from ..crud.settings_crud import get_settings_snapshot
from ..services.customer_import import CustomerImportError
from ..utils.access_control import Page, page_required
from ..utils.csv_utils import read_upload_text
import logging

logger = logging.getLogger(__name__)


@main.route('/customers/list', methods=['GET'])
@page_required(Page.CUSTOMERS)
def get_customers():
    include_deleted = request.args.get('include_deleted', 'false').lower() == 'true'
    try:
        return jsonify(customer_crud.get_all_customers(include_deleted)), 200
    except customer_crud.CustomerError as e:
        return jsonify({'error': str(e)}), 500


@main.route('/customers/add', methods=['POST'])
@page_required(Page.CUSTOMERS)
def add_new_customer():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}

    validation_errors = customer_crud.validate_customer_data(data, is_update=False)
    if validation_errors:
        return jsonify({'errors': validation_errors}), 400

    try:
        new_customer = customer_crud.add_customer(data, get_settings_snapshot(), current_user, ip_address, user_agent)
        return jsonify({'message': 'Customer added successfully', 'id': str(new_customer.id)}), 201
    except customer_crud.CustomerError as e:
        return jsonify({'error': 'Failed to add customer', 'message': str(e)}), 500


@main.route('/customers/update/<string:id>', methods=['PUT'])
@page_required(Page.CUSTOMERS)
def update_existing_customer(id):
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}

    validation_errors = customer_crud.validate_customer_data(data, is_update=True)
    if validation_errors:
        return jsonify({'errors': validation_errors}), 400

    try:
        updated_customer = customer_crud.update_customer(id, data, current_user, ip_address, user_agent)
        if updated_customer:
            return jsonify({'message': 'Customer updated successfully'}), 200
        return jsonify({'message': 'Customer not found'}), 404
    except customer_crud.CustomerError as e:
        return jsonify({'error': 'Failed to update customer', 'message': str(e)}), 500


@main.route('/customers/delete/<string:id>', methods=['DELETE'])
@page_required(Page.CUSTOMERS)
def delete_existing_customer(id):
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    try:
        if customer_crud.delete_customer(id, current_user, ip_address, user_agent):
            return jsonify({'message': 'Customer deleted successfully'}), 200
        return jsonify({'message': 'Customer not found'}), 404
    except customer_crud.CustomerError as e:
        return jsonify({'error': 'Failed to delete customer', 'message': str(e)}), 500


@main.route('/customers/import', methods=['POST'])
@page_required(Page.CUSTOMERS)
def import_customers():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')

    if 'file' not in request.files:
        return jsonify({'error': 'No file part'}), 400
    file = request.files['file']
    if file.filename == '':
        return jsonify({'error': 'No selected file'}), 400

    try:
        text = read_upload_text(file)
        customers = customer_crud.import_customers(text, get_settings_snapshot(), current_user, ip_address, user_agent)
        return jsonify({
            'message': f'Successfully imported {len(customers)} customers',
            'count': len(customers),
            'ids': [str(c.id) for c in customers]
        }), 201
    except (CustomerImportError, ValueError) as e:
        return jsonify({'error': str(e)}), 400
    except customer_crud.CustomerError as e:
        return jsonify({'error': 'Failed to import customers', 'message': str(e)}), 500
