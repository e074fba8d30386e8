from __future__ import annotations

from ..extensions import db
from bizledger.time_utils import to_utc_z


class SyncRecord(db.Model):
    """
    Local -> external id mapping for one entity on one platform.

    WHY: Lets the sync bridge update an existing external record instead of
    creating a duplicate. Losing a row only risks a duplicate on the
    external platform, never local data loss.
    """
    __tablename__ = "sync_records"
    __table_args__ = (
        db.UniqueConstraint(
            "tenant_id", "platform", "entity_type", "local_id",
            name="uq_sync_records_entity",
        ),
        db.Index("ix_sync_records_tenant_type_status", "tenant_id", "entity_type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    platform = db.Column(db.String(32), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)  # customer, invoice, expense
    local_id = db.Column(db.Integer, nullable=False)

    external_id = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING")  # SYNCED, FAILED, PENDING
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_error = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "platform": self.platform,
            "entity_type": self.entity_type,
            "local_id": self.local_id,
            "external_id": self.external_id,
            "status": self.status,
            "last_attempt_at": to_utc_z(self.last_attempt_at) if self.last_attempt_at else None,
            "last_error": self.last_error,
        }
