from __future__ import annotations

from ..extensions import db
from bizledger.time_utils import to_utc_z


class Expense(db.Model):
    """
    Manually-entered business expense.

    Mutable only through expense_service.update_expense, which checks
    version_id (optimistic concurrency).
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_tenant_paid", "tenant_id", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    amount_minor = db.Column(db.BigInteger, nullable=False)
    currency_code = db.Column(db.String(3), nullable=False, default="UGX")
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    reference = db.Column(db.String(120), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "amount_minor": self.amount_minor,
            "currency_code": self.currency_code,
            "description": self.description,
            "category": self.category,
            "payment_method": self.payment_method,
            "reference": self.reference,
            "paid_at": to_utc_z(self.paid_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ExpenseCategory(db.Model):
    __tablename__ = "expense_categories"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_expense_categories_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
