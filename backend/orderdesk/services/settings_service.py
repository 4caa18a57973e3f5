# Overview: Service-layer operations for business settings; single-row profile with config defaults.

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import BusinessSettings
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import run_with_retry


SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "business_name",
        "address",
        "phone",
        "email",
        "tax_rate_bps",
        "currency",
        "receipt_footer",
    },
)

# 100% expressed in basis points
MAX_TAX_RATE_BPS = 10000


def _defaults() -> BusinessSettings:
    return BusinessSettings(
        business_name=current_app.config.get("DEFAULT_BUSINESS_NAME", "OrderDesk"),
        tax_rate_bps=current_app.config.get("DEFAULT_TAX_RATE_BPS", 0),
        currency=current_app.config.get("DEFAULT_CURRENCY", "USD"),
    )


def get_business_settings() -> BusinessSettings:
    """
    Return the settings row, or an unsaved default built from config.

    The default is never added to the session; reading settings has no
    side effects.
    """
    settings = db.session.query(BusinessSettings).order_by(BusinessSettings.id.asc()).first()
    if settings is None:
        return _defaults()
    return settings


def current_tax_rate_bps() -> int:
    return int(get_business_settings().tax_rate_bps or 0)


def _enforce_rules(patch: dict) -> None:
    if "tax_rate_bps" in patch:
        rate = patch["tax_rate_bps"]
        if rate < 0 or rate > MAX_TAX_RATE_BPS:
            raise ValidationError(
                f"tax_rate_bps must be between 0 and {MAX_TAX_RATE_BPS}",
                details={"tax_rate_bps": rate},
            )
    if "currency" in patch:
        currency = patch["currency"]
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency must be a 3-letter ISO code", details={"currency": currency})
        patch["currency"] = currency.upper()


def update_business_settings(payload: dict) -> BusinessSettings:
    """Validate a partial update and upsert the settings row."""
    patch = validate_payload(
        model=BusinessSettings,
        payload=payload,
        policy=SETTINGS_POLICY,
        partial=True,
    )
    _enforce_rules(patch)

    def _op():
        settings = db.session.query(BusinessSettings).order_by(BusinessSettings.id.asc()).first()
        if settings is None:
            settings = _defaults()
            db.session.add(settings)
        for key, value in patch.items():
            setattr(settings, key, value)
        db.session.commit()
        return settings

    return run_with_retry(_op)


def ensure_business_settings() -> BusinessSettings:
    """Persist the default settings row if none exists (used by `flask system init`)."""
    settings = db.session.query(BusinessSettings).first()
    if settings is None:
        settings = _defaults()
        db.session.add(settings)
        db.session.commit()
    return settings
