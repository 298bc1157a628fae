from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_current_user
from . import main
from ..crud import settings_crud
from ..utils.access_control import Page, page_required


@main.route('/settings', methods=['GET'])
@jwt_required()
def get_settings():
    return jsonify(settings_crud.get_settings_snapshot().to_dict()), 200


@main.route('/settings/update', methods=['PUT'])
@page_required(Page.SETTINGS)
def update_settings():
    current_user = get_current_user()
    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}
    try:
        snapshot = settings_crud.update_settings(data, current_user, ip_address, user_agent)
        return jsonify({'message': 'Settings updated successfully', 'settings': snapshot.to_dict()}), 200
    except settings_crud.SettingsError as e:
        return jsonify({'error': str(e)}), 400
