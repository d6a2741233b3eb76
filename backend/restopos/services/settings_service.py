from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..models import StoreSettings
from ..validation import ModelValidationPolicy, parse_tax_rate, validate_payload

logger = logging.getLogger(__name__)


STORE_SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "store_name",
        "address",
        "phone",
        "currency",
        "tax_rate",
        "price_includes_tax",
    }),
)


def get_store_settings(session: Session) -> StoreSettings:
    """Return the settings row, creating it with defaults on first use."""
    settings = session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    if settings is None:
        settings = StoreSettings()
        session.add(settings)
        session.flush()
        logger.info("Created default store settings")
    return settings


def update_store_settings(session: Session, payload: dict, *, commit: bool = True) -> StoreSettings:
    patch = validate_payload(
        model=StoreSettings,
        payload=payload,
        policy=STORE_SETTINGS_POLICY,
        partial=True,
    )
    if "tax_rate" in patch:
        patch["tax_rate"] = f"{parse_tax_rate(patch['tax_rate']):.2f}"

    settings = get_store_settings(session)
    for key, value in patch.items():
        setattr(settings, key, value)
    session.flush()

    if commit:
        session.commit()
    return settings
