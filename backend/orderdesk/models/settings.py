from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class BusinessSettings(db.Model):
    """
    Single-row business profile.

    tax_rate_bps is the default tax applied to new orders; each order keeps
    its own snapshot so later changes never reprice existing orders.
    """
    __tablename__ = "business_settings"

    id = db.Column(db.Integer, primary_key=True)
    business_name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    receipt_footer = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "business_name": self.business_name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "tax_rate_bps": self.tax_rate_bps,
            "currency": self.currency,
            "receipt_footer": self.receipt_footer,
            "updated_at": to_utc_z(self.updated_at),
        }
