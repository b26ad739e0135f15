"""Settings service: key/value business defaults and the provider the quote engine reads."""
import logging
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from jewelquote.exceptions import NotFoundError, ValidationError
from jewelquote.models import Setting
from jewelquote.services.pricing_service import lenient_decimal

logger = logging.getLogger(__name__)

DEFAULT_LABOUR_RATE = Decimal('350')
DEFAULT_MARKUP_PCT = Decimal('30')

# quote_validity_days, quote_notes and currency are form defaults for clients; the server never applies them
DEFAULT_SETTINGS: Dict[str, Dict[str, str]] = {
    'company_name': {'value': 'My Jewellery Business', 'description': 'Company name for quotes and invoices'},
    'company_address': {'value': '', 'description': 'Company address'},
    'company_phone': {'value': '', 'description': 'Company phone number'},
    'company_email': {'value': '', 'description': 'Company email address'},
    'company_vat': {'value': '', 'description': 'VAT registration number'},
    'default_labour_rate': {'value': '350', 'description': 'Default labour rate per hour (ZAR)'},
    'default_markup_pct': {'value': '30', 'description': 'Default markup percentage'},
    'quote_validity_days': {'value': '30', 'description': 'Default quote validity in days'},
    'quote_terms': {'value': 'Payment due within 30 days of acceptance.', 'description': 'Default terms and conditions for quotes'},
    'quote_notes': {'value': '', 'description': 'Default notes for quotes'},
    'currency': {'value': 'ZAR', 'description': 'Base currency'},
    'currency_symbol': {'value': 'R', 'description': 'Currency symbol'},
}


class SettingsProvider:
    """
    Read-only access to business defaults.

    Services receive a provider instead of querying settings themselves, so
    tests can pin the defaults with ``StaticSettingsProvider``.
    """

    def get_default(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def get_decimal(self, key: str, fallback: Decimal) -> Decimal:
        """Numeric setting; a missing or non-numeric value yields ``fallback``."""
        return lenient_decimal(self.get_default(key), default=fallback)

    def default_labour_rate(self) -> Decimal:
        return self.get_decimal('default_labour_rate', DEFAULT_LABOUR_RATE)

    def default_markup_pct(self) -> Decimal:
        return self.get_decimal('default_markup_pct', DEFAULT_MARKUP_PCT)


class DbSettingsProvider(SettingsProvider):
    """Provider backed by the ``setting`` table of the given session."""

    def __init__(self, session: Session):
        self.session = session

    def get_default(self, key: str) -> Optional[str]:
        setting = self.session.get(Setting, key)
        return setting.value if setting is not None else None


class StaticSettingsProvider(SettingsProvider):
    """Provider over a plain dict."""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values = dict(values or {})

    def get_default(self, key: str) -> Optional[str]:
        return self.values.get(key)


def get_all_settings(session: Session) -> Dict[str, str]:
    """All settings as a dict, with seeded defaults filling any gaps."""
    values = {key: meta['value'] for key, meta in DEFAULT_SETTINGS.items()}
    for setting in session.query(Setting).order_by(Setting.key).all():
        values[setting.key] = setting.value
    return values


def get_setting(session: Session, key: str) -> Dict[str, Optional[str]]:
    setting = session.get(Setting, key)
    if setting is not None:
        return {'key': setting.key, 'value': setting.value, 'description': setting.description}
    if key in DEFAULT_SETTINGS:
        return {'key': key, **DEFAULT_SETTINGS[key]}
    raise NotFoundError(f'Setting {key} not found')


def upsert_setting(session: Session, key: str, value, description: Optional[str] = None) -> Setting:
    """Create or overwrite a single setting."""
    if not key or not key.strip():
        raise ValidationError('Setting key is required', field='key')
    if value is None:
        raise ValidationError('Value is required', field='value')

    try:
        setting = session.get(Setting, key)
        if setting is None:
            setting = Setting(
                key=key,
                description=description or DEFAULT_SETTINGS.get(key, {}).get('description')
            )
            session.add(setting)
        elif description is not None:
            setting.description = description
        setting.value = str(value)
        session.commit()
        return setting
    except Exception:
        session.rollback()
        raise


def seed_default_settings(session: Session) -> int:
    """Insert any default setting that is not stored yet. Returns how many were added."""
    existing = {key for (key,) in session.query(Setting.key).all()}
    added = 0
    try:
        for key, meta in DEFAULT_SETTINGS.items():
            if key in existing:
                continue
            session.add(Setting(key=key, value=meta['value'], description=meta['description']))
            added += 1
        session.commit()
    except Exception:
        session.rollback()
        raise

    if added:
        logger.info(f"Seeded {added} default settings")
    return added
