from __future__ import annotations

from ..extensions import db
from bizledger.time_utils import to_utc_z


class SaleFact(db.Model):
    """
    Completed point-of-sale transaction.

    WHY: Written by the POS subsystem only. This engine reads sales to merge
    them with invoices and expenses; it never creates or mutates them.
    """
    __tablename__ = "sale_facts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "receipt_number", name="uq_sale_facts_tenant_receipt"),
        # Composite index for tenant-scoped window queries
        db.Index("ix_sale_facts_tenant_occurred", "tenant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    receipt_number = db.Column(db.String(64), nullable=True)

    total_minor = db.Column(db.BigInteger, nullable=False)
    currency_code = db.Column(db.String(3), nullable=False, default="UGX")

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "receipt_number": self.receipt_number,
            "total_minor": self.total_minor,
            "currency_code": self.currency_code,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class SaleFactLine(db.Model):
    """Individual product lines on a sale (read-only)."""
    __tablename__ = "sale_fact_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sale_facts.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_minor = db.Column(db.BigInteger, nullable=False)
    line_total_minor = db.Column(db.BigInteger, nullable=False)

    sale = db.relationship(
        "SaleFact",
        backref=db.backref("lines", lazy="selectin", order_by="SaleFactLine.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_name": self.product_name,
            "quantity": str(self.quantity),
            "unit_price_minor": self.unit_price_minor,
            "line_total_minor": self.line_total_minor,
        }
