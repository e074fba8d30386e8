from __future__ import annotations

from ..extensions import db
from bizledger.time_utils import to_utc_z


class Customer(db.Model):
    """
    Invoice customer.

    MULTI-TENANT: Customers are scoped by tenant_id. Names are unique within
    a tenant so an invoice naming an unknown customer can upsert by name.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_customers_tenant_name"),
        db.Index("ix_customers_tenant_enabled", "tenant_id", "enabled"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(255), nullable=True)
    currency_code = db.Column(db.String(3), nullable=False, default="UGX")

    enabled = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "website": self.website,
            "currency_code": self.currency_code,
            "enabled": self.enabled,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
