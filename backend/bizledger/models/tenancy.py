from __future__ import annotations

from ..extensions import db
from bizledger.time_utils import to_utc_z


class TenantProfile(db.Model):
    """
    Business profile row owned by the identity subsystem.

    WHY: Read-only here. The identity resolver uses it to find a usable
    tenant when a demonstration session carries no claims.
    """
    __tablename__ = "tenant_profiles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)
    business_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<TenantProfile id={self.id} tenant_id={self.tenant_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "business_name": self.business_name,
            "created_at": to_utc_z(self.created_at),
        }
