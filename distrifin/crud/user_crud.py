from distrifin import mail
from distrifin.models import User, UserRole
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.access_control import Page, allowed_pages
from distrifin.utils.logging_utils import log_action
from flask import current_app
from flask_mail import Message
from smtplib import SMTPException
import logging
import secrets

logger = logging.getLogger(__name__)

TEMP_PASSWORD_BYTES = 9


class UserError(Exception):
    """Custom exception for user operations"""
    pass


def serialize_user(user):
    return {
        'id': str(user.id),
        'name': user.name,
        'email': user.email,
        'role': user.role,
        'permissions': user.permissions or [],
        'is_active': user.is_active,
        'pages': sorted(page.value for page in allowed_pages(user)),
    }


def get_user_by_id(user_id):
    user = User.query.get(user_id)
    return serialize_user(user) if user else None


def get_all_users():
    try:
        return [serialize_user(u) for u in User.query.order_by(User.name).all()]
    except Exception as e:
        logger.error(f"Error getting users: {str(e)}")
        raise UserError("Failed to retrieve users")


def _clean_role(raw):
    try:
        return UserRole(str(raw or '').upper()).value
    except ValueError:
        raise ValueError(f"Invalid role: {raw}")


def _clean_permissions(raw):
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)):
        raise ValueError("Permissions must be a list of page identifiers")
    known = {page.value for page in Page}
    return [str(p).upper() for p in raw if str(p).upper() in known]


def send_setup_email(user, temp_password):
    msg = Message('Your DistriFin account',
                  sender=current_app.config['MAIL_DEFAULT_SENDER'],
                  recipients=[user.email])
    msg.body = (
        f"Hello {user.name},\n\n"
        f"An account has been created for you with the role {user.role}.\n"
        f"Temporary password: {temp_password}\n\n"
        "Please sign in and change your password."
    )
    mail.send(msg)


def add_user(data, current_user, ip_address, user_agent):
    """
    Create a user with a random temporary password and e-mail it.

    A failed e-mail does not undo the account; the audit entry records it.
    """
    name = str(data.get('name') or '').strip()
    email = str(data.get('email') or '').strip().lower()
    if not name or not email:
        raise ValueError("Name and email are required")
    if User.query.filter_by(email=email).first():
        raise ValueError(f"A user with email {email} already exists")

    temp_password = data.get('password') or secrets.token_urlsafe(TEMP_PASSWORD_BYTES)
    new_user = User(
        name=name,
        email=email,
        role=_clean_role(data.get('role') or UserRole.COLLECTOR.value),
        permissions=_clean_permissions(data.get('permissions')),
        is_active=True
    )
    new_user.set_password(temp_password)

    store = DataStore()
    try:
        store.add(new_user)
    except DataStoreError as e:
        logger.error(f"Error adding user: {str(e)}")
        raise UserError("Failed to add user")

    mail_note = 'setup email sent'
    try:
        send_setup_email(new_user, temp_password)
    except (SMTPException, OSError) as e:
        logger.error(f"Setup email to {email} failed: {str(e)}")
        mail_note = 'setup email failed'

    log_action(current_user, 'CREATE_USER', f"Created user {email} ({new_user.role}); {mail_note}",
               ip_address, user_agent, store)
    return new_user


def update_user(user_id, data, current_user, ip_address, user_agent):
    store = DataStore()
    user = store.get(User, user_id)
    if not user:
        return None

    fields = {}
    if 'name' in data:
        fields['name'] = str(data['name'] or '').strip() or user.name
    if 'role' in data:
        fields['role'] = _clean_role(data['role'])
    if 'permissions' in data:
        fields['permissions'] = _clean_permissions(data['permissions'])
    if 'is_active' in data:
        fields['is_active'] = bool(data['is_active'])
    if data.get('password'):
        user.set_password(data['password'])
        fields['password'] = user.password

    try:
        store.update(user, **fields)
        log_action(current_user, 'UPDATE_USER',
                   f"Updated user {user.email}: {', '.join(sorted(fields))}",
                   ip_address, user_agent, store)
    except DataStoreError as e:
        logger.error(f"Error updating user: {str(e)}")
        raise UserError("Failed to update user")
    return user


def delete_user(user_id, current_user, ip_address, user_agent):
    store = DataStore()
    user = store.get(User, user_id)
    if not user:
        return False
    if current_user is not None and str(current_user.id) == str(user.id):
        raise ValueError("You cannot delete your own account")

    email = user.email
    try:
        store.delete(user)
        log_action(current_user, 'DELETE_USER', f"Deleted user {email}", ip_address, user_agent, store)
    except DataStoreError as e:
        logger.error(f"Error deleting user: {str(e)}")
        raise UserError("Failed to delete user")
    return True


def change_password(user, current_password, new_password, ip_address, user_agent):
    if not user.check_password(current_password):
        return {'success': False, 'error': 'Current password is incorrect'}
    if len(new_password) < 6:
        return {'success': False, 'error': 'New password must be at least 6 characters'}

    store = DataStore()
    user.set_password(new_password)
    store.update(user)
    log_action(user, 'UPDATE_USER', f"Password changed for {user.email}", ip_address, user_agent, store)
    logger.info(f"Password changed successfully for user {user.id}")
    return {'success': True, 'message': 'Password changed successfully'}
