from flask import jsonify, request
from flask_jwt_extended import get_current_user
from . import main
from ..crud import collection_crud
from ..crud.settings_crud import get_settings_snapshot
from ..services.cheque_extraction import ChequeExtractionClient, compress_cheque_image
from ..utils.access_control import Page, page_required, can_record_collection
import logging

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp', 'heic'}


def allowed_image(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_IMAGE_EXTENSIONS


@main.route('/collections/list', methods=['GET'])
@page_required(Page.COLLECTIONS)
def get_collections():
    current_user = get_current_user()
    only_own = request.args.get('mine', 'false').lower() == 'true'
    try:
        return jsonify(collection_crud.get_all_collections(current_user, only_own)), 200
    except collection_crud.CollectionError as e:
        return jsonify({'error': str(e)}), 500


@main.route('/collections/add', methods=['POST'])
@page_required(Page.COLLECTIONS)
def add_new_collection():
    current_user = get_current_user()
    if not can_record_collection(current_user):
        return jsonify({'error': 'Your role cannot record collections'}), 403

    ip_address = request.remote_addr
    user_agent = request.headers.get('User-Agent')
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    warnings = []
    try:
        collection = collection_crud.record_collection(
            data, get_settings_snapshot(), current_user, ip_address, user_agent, warnings=warnings
        )
        return jsonify({
            'message': 'Collection recorded successfully',
            'collection': collection_crud.serialize_collection(collection),
            'ledger_posted': collection_crud.LEDGER_NOT_POSTED not in warnings,
            'warnings': warnings
        }), 201
    except collection_crud.CollectionValidationError as e:
        return jsonify({'error': str(e)}), 400
    except collection_crud.CollectionError as e:
        return jsonify({'error': 'Failed to save collection', 'message': str(e)}), 500


@main.route('/collections/scan-cheque', methods=['POST'])
@page_required(Page.COLLECTIONS)
def scan_cheque():
    """
    Compress an uploaded cheque photo and try to read its fields.
    A failed read still returns the compressed image with data set to null.
    """
    if not get_settings_snapshot().enable_cheque_camera:
        return jsonify({'error': 'Cheque camera is disabled'}), 403
    if 'image' not in request.files:
        return jsonify({'error': 'No image part'}), 400
    file = request.files['image']
    if file.filename == '' or not allowed_image(file.filename):
        return jsonify({'error': 'Invalid image file'}), 400

    try:
        image_b64 = compress_cheque_image(file.read())
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    cheque_data = ChequeExtractionClient.from_config().extract(image_b64)
    return jsonify({
        'image': image_b64,
        'data': cheque_data.to_dict() if cheque_data else None
    }), 200


@main.route('/collections/<string:id>/cheque-image', methods=['GET'])
@page_required(Page.CHEQUES)
def get_cheque_image(id):
    try:
        image = collection_crud.get_cheque_image(id)
    except collection_crud.CollectionError as e:
        return jsonify({'error': str(e)}), 404
    if not image:
        return jsonify({'message': 'No cheque image stored'}), 404
    return jsonify({'image': image}), 200
