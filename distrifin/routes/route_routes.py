from flask import jsonify, request
from flask_jwt_extended import get_current_user
from . import main
from ..crud import route_crud
from ..utils.access_control import Page, page_required


@main.route('/routes/list', methods=['GET'])
@page_required(Page.CUSTOMERS)
def get_routes():
    try:
        return jsonify(route_crud.get_all_routes()), 200
    except route_crud.RouteError as e:
        return jsonify({'error': str(e)}), 500


@main.route('/routes/add', methods=['POST'])
@page_required(Page.CUSTOMERS)
def add_new_route():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}
    try:
        new_route = route_crud.add_route(data, current_user, ip_address, user_agent)
        return jsonify({'message': 'Route added successfully', 'id': str(new_route.id)}), 201
    except ValueError as ve:
        return jsonify({'error': 'Validation failed', 'message': str(ve)}), 400
    except route_crud.RouteError as e:
        return jsonify({'error': 'Failed to add route', 'message': str(e)}), 500


@main.route('/routes/update/<string:id>', methods=['PUT'])
@page_required(Page.CUSTOMERS)
def update_existing_route(id):
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}
    try:
        updated_route = route_crud.update_route(id, data, current_user, ip_address, user_agent)
        if updated_route:
            return jsonify({'message': 'Route updated successfully'}), 200
        return jsonify({'message': 'Route not found'}), 404
    except ValueError as ve:
        return jsonify({'error': 'Validation failed', 'message': str(ve)}), 400
    except route_crud.RouteError as e:
        return jsonify({'error': 'Failed to update route', 'message': str(e)}), 500
