from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_current_user
from . import main
from ..crud import user_crud
from ..utils.access_control import Page, page_required


@main.route('/users/list', methods=['GET'])
@page_required(Page.USERS)
def get_users():
    try:
        return jsonify(user_crud.get_all_users()), 200
    except user_crud.UserError as e:
        return jsonify({'error': str(e)}), 500


@main.route('/users/add', methods=['POST'])
@page_required(Page.USERS)
def add_new_user():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}
    try:
        new_user = user_crud.add_user(data, current_user, ip_address, user_agent)
        return jsonify({'message': 'User added successfully', 'id': str(new_user.id)}), 201
    except ValueError as ve:
        return jsonify({'error': 'Validation failed', 'message': str(ve)}), 400
    except user_crud.UserError as e:
        return jsonify({'error': 'Failed to add user', 'message': str(e)}), 500


@main.route('/users/update/<string:id>', methods=['PUT'])
@page_required(Page.USERS)
def update_existing_user(id):
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}
    try:
        updated_user = user_crud.update_user(id, data, current_user, ip_address, user_agent)
        if updated_user:
            return jsonify({'message': 'User updated successfully'}), 200
        return jsonify({'message': 'User not found'}), 404
    except ValueError as ve:
        return jsonify({'error': 'Validation failed', 'message': str(ve)}), 400
    except user_crud.UserError as e:
        return jsonify({'error': 'Failed to update user', 'message': str(e)}), 500


@main.route('/users/delete/<string:id>', methods=['DELETE'])
@page_required(Page.USERS)
def delete_existing_user(id):
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    try:
        if user_crud.delete_user(id, current_user, ip_address, user_agent):
            return jsonify({'message': 'User deleted successfully'}), 200
        return jsonify({'message': 'User not found'}), 404
    except ValueError as ve:
        return jsonify({'error': str(ve)}), 400
    except user_crud.UserError as e:
        return jsonify({'error': 'Failed to delete user', 'message': str(e)}), 500


@main.route('/user/change-password', methods=['POST'])
@jwt_required()
def change_password():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')

    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    current_password = data.get('current_password')
    new_password = data.get('new_password')
    if not current_password or not new_password:
        return jsonify({'error': 'Current password and new password are required'}), 400
    if new_password != data.get('confirm_password'):
        return jsonify({'error': 'New password and confirm password do not match'}), 400

    result = user_crud.change_password(current_user, current_password, new_password, ip_address, user_agent)
    if result.get('success'):
        return jsonify({'message': result.get('message')}), 200
    return jsonify({'error': result.get('error')}), 400
