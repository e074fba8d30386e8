from __future__ import annotations

from ..extensions import db
from bizledger.time_utils import to_utc_z, to_iso_date


class Invoice(db.Model):
    """
    Customer invoice document.

    INVARIANTS (enforced by invoice_service, re-checked on read):
    - subtotal_minor == sum(item.line_total_minor)
    - total_minor == subtotal_minor - discount_minor + tax_minor

    Stored status is one of DRAFT, SENT, PAID, CANCELLED. OVERDUE is never
    stored; it is derived at read time from SENT + due_date.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
        db.Index("ix_invoices_tenant_status_issue", "tenant_id", "status", "issue_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    # Human-readable number (e.g., "INV-000123"), unique per tenant
    invoice_number = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    # Amounts in minor units of currency_code
    subtotal_minor = db.Column(db.BigInteger, nullable=False, default=0)
    discount_minor = db.Column(db.BigInteger, nullable=False, default=0)
    tax_minor = db.Column(db.BigInteger, nullable=False, default=0)
    total_minor = db.Column(db.BigInteger, nullable=False, default=0)
    vat_rate_bps = db.Column(db.Integer, nullable=False, default=1800)
    currency_code = db.Column(db.String(3), nullable=False, default="UGX")

    notes = db.Column(db.Text, nullable=True)

    # Payment capture (mark_paid)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_amount_minor = db.Column(db.BigInteger, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    # Set when generated from a POS sale
    source_sale_id = db.Column(db.Integer, db.ForeignKey("sale_facts.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self, effective_status: str | None = None) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "status": effective_status or self.status,
            "stored_status": self.status,
            "subtotal_minor": self.subtotal_minor,
            "discount_minor": self.discount_minor,
            "tax_minor": self.tax_minor,
            "total_minor": self.total_minor,
            "vat_rate_bps": self.vat_rate_bps,
            "currency_code": self.currency_code,
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "paid_amount_minor": self.paid_amount_minor,
            "payment_method": self.payment_method,
            "source_sale_id": self.source_sale_id,
            "items": [item.to_dict() for item in self.items],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceItem(db.Model):
    """Ordered line items on an invoice."""
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_minor = db.Column(db.BigInteger, nullable=False)
    line_total_minor = db.Column(db.BigInteger, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=1800)

    invoice = db.relationship("Invoice", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "name": self.name,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price_minor": self.unit_price_minor,
            "line_total_minor": self.line_total_minor,
            "tax_rate_bps": self.tax_rate_bps,
        }
