from flask import Blueprint, request, jsonify, current_app, url_for
from flask_jwt_extended import create_access_token, jwt_required, get_current_user
from distrifin import jwt, mail
from distrifin.models import User
from distrifin.store import DataStore
from distrifin.utils.access_control import allowed_pages, can_record_collection
from distrifin.utils.logging_utils import log_action
from flask_mail import Message
from itsdangerous import URLSafeTimedSerializer, SignatureExpired, BadSignature
from smtplib import SMTPException
import logging

logger = logging.getLogger(__name__)

auth = Blueprint('auth', __name__)

RESET_SALT = 'password-reset-salt'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'])


@jwt.user_identity_loader
def user_identity_lookup(user):
    return str(user.id) if isinstance(user, User) else str(user)


@jwt.user_lookup_loader
def user_lookup_callback(_jwt_header, jwt_data):
    # Role comes from the stored user record, not from the token claims
    return User.query.filter_by(id=jwt_data["sub"], is_active=True).one_or_none()


@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = str(data.get('email') or '').strip().lower()
    user = User.query.filter_by(email=email).first() if email else None
    if user and user.is_active and user.check_password(data.get('password') or ''):
        access_token = create_access_token(
            identity=user,
            additional_claims={
                "id": str(user.id),
                "role": user.role,
                "name": user.name
            }
        )
        log_action(user, 'LOGIN', f"{user.email} signed in",
                   request.remote_addr, request.headers.get('User-Agent'))
        return jsonify(token=access_token, role=user.role, name=user.name), 200
    return jsonify({"error": "Invalid credentials"}), 401


@auth.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    user = get_current_user()
    log_action(user, 'LOGOUT', f"{user.email} signed out",
               request.remote_addr, request.headers.get('User-Agent'))
    return jsonify({"message": "Successfully logged out"}), 200


@auth.route('/me', methods=['GET'])
@jwt_required()
def me():
    user = get_current_user()
    return jsonify({
        'id': str(user.id),
        'name': user.name,
        'email': user.email,
        'role': user.role,
        'pages': sorted(page.value for page in allowed_pages(user)),
        'can_record_collection': can_record_collection(user),
    }), 200


@auth.route('/forgot-password', methods=['POST'])
def forgot_password():
    email = str((request.get_json(silent=True) or {}).get('email') or '').strip().lower()
    user = User.query.filter_by(email=email).first() if email else None
    if not user:
        return jsonify({"error": "Email not found"}), 404

    token = _serializer().dumps(user.email, salt=RESET_SALT)
    reset_url = url_for('auth.reset_password', token=token, _external=True)
    msg = Message('Password Reset Request - DistriFin',
                  sender=current_app.config['MAIL_DEFAULT_SENDER'],
                  recipients=[user.email])
    msg.body = f"Hello {user.name},\n\nUse the link below to reset your password:\n{reset_url}\n"
    try:
        mail.send(msg)
    except (SMTPException, OSError) as e:
        logger.error(f"Password reset email to {user.email} failed: {str(e)}")
        return jsonify({"error": "Failed to send password reset email"}), 502
    return jsonify({"message": "Password reset link sent to your email"}), 200


@auth.route('/reset-password/<token>', methods=['POST'])
def reset_password(token):
    try:
        email = _serializer().loads(token, salt=RESET_SALT,
                                    max_age=current_app.config['PASSWORD_RESET_MAX_AGE'])
    except SignatureExpired:
        return jsonify({"error": "The password reset link has expired"}), 400
    except BadSignature:
        return jsonify({"error": "Invalid password reset link"}), 400

    user = User.query.filter_by(email=email).first()
    if not user:
        return jsonify({"error": "User not found"}), 404

    new_password = (request.get_json(silent=True) or {}).get('password') or ''
    if len(new_password) < 6:
        return jsonify({"error": "Password must be at least 6 characters"}), 400

    store = DataStore()
    user.set_password(new_password)
    store.update(user)
    log_action(user, 'UPDATE_USER', f"Password reset for {user.email}",
               request.remote_addr, request.headers.get('User-Agent'), store)
    return jsonify({"message": "Password has been reset successfully"}), 200
