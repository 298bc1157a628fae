from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from flask import current_app, has_app_context
from distrifin.models import GlobalSettings
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.logging_utils import log_action
import logging

logger = logging.getLogger(__name__)

SETTINGS_ID = 1

DEFAULT_SETTINGS = {
    'default_credit_limit': Decimal('50000'),
    'default_credit_period': 30,
    'enable_cheque_camera': True,
    'currency_code': 'USD',
    'country': '',
}


class SettingsError(Exception):
    """Custom exception for settings operations"""
    pass


@dataclass(frozen=True)
class SettingsSnapshot:
    """Settings read once per request and passed to the workflows that need them"""
    default_credit_limit: Decimal = DEFAULT_SETTINGS['default_credit_limit']
    default_credit_period: int = DEFAULT_SETTINGS['default_credit_period']
    enable_cheque_camera: bool = DEFAULT_SETTINGS['enable_cheque_camera']
    currency_code: str = DEFAULT_SETTINGS['currency_code']
    country: str = DEFAULT_SETTINGS['country']
    enforce_cheque_credit_period: bool = False

    def to_dict(self):
        return {
            'default_credit_limit': float(self.default_credit_limit),
            'default_credit_period': self.default_credit_period,
            'enable_cheque_camera': self.enable_cheque_camera,
            'currency_code': self.currency_code,
            'country': self.country,
        }


def get_settings_snapshot():
    settings = GlobalSettings.query.get(SETTINGS_ID)
    enforce = bool(current_app.config.get('ENFORCE_CHEQUE_CREDIT_PERIOD', False)) if has_app_context() else False
    if not settings:
        return SettingsSnapshot(enforce_cheque_credit_period=enforce)
    return SettingsSnapshot(
        default_credit_limit=Decimal(str(settings.default_credit_limit)),
        default_credit_period=int(settings.default_credit_period),
        enable_cheque_camera=bool(settings.enable_cheque_camera),
        currency_code=settings.currency_code,
        country=settings.country,
        enforce_cheque_credit_period=enforce
    )


def update_settings(data, current_user, ip_address, user_agent):
    try:
        store = DataStore()
        settings = GlobalSettings.query.get(SETTINGS_ID)
        if not settings:
            settings = GlobalSettings(id=SETTINGS_ID, **DEFAULT_SETTINGS)
            store.session.add(settings)

        if 'default_credit_limit' in data:
            limit = Decimal(str(data['default_credit_limit']))
            if limit < 0:
                raise ValueError("Default credit limit cannot be negative")
            settings.default_credit_limit = limit
        if 'default_credit_period' in data:
            period = int(data['default_credit_period'])
            if period < 0:
                raise ValueError("Default credit period cannot be negative")
            settings.default_credit_period = period
        if 'enable_cheque_camera' in data:
            settings.enable_cheque_camera = bool(data['enable_cheque_camera'])
        if 'currency_code' in data:
            settings.currency_code = str(data['currency_code']).upper()[:3]
        if 'country' in data:
            settings.country = data['country'] or ''

        store.update(settings)
        log_action(current_user, 'UPDATE_SETTINGS', 'System settings updated', ip_address, user_agent, store)
        return get_settings_snapshot()
    except (ValueError, TypeError, InvalidOperation) as e:
        DataStore().session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise SettingsError(str(e))
    except DataStoreError as e:
        logger.error(f"Error updating settings: {str(e)}")
        raise SettingsError("Failed to update settings")
