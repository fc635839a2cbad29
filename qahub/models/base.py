"""
Shared column helpers for QaHub models.

Everything that belongs to a tenant derives from ``TenantModel`` so the
owning tenant is always a non-null, indexed, cascading foreign key and
services can start every listing from ``Model.query_for_tenant(tid)``.
"""

from datetime import datetime, timezone

from qahub.models import db


def utcnow():
    # Naive UTC: SQLite drops tzinfo, so stored and fresh values must match.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value):
    return value.isoformat() if value else None


class TenantModel(db.Model):
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    @classmethod
    def query_for_tenant(cls, tenant_id):
        return cls.query.filter(cls.tenant_id == tenant_id)
