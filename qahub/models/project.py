"""
Project domain model.

Models:
    - Project: top-level container inside a tenant
    - Repository: a squad's test repository inside a project (unique prefix)
"""

from qahub.models import db
from qahub.models.auth import brief
from qahub.models.base import TenantModel, iso, utcnow


class Project(TenantModel):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(500))
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    repositories = db.relationship(
        "Repository", back_populates="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    creator = db.relationship("User", foreign_keys=[created_by])
    updater = db.relationship("User", foreign_keys=[updated_by])

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "created_by": brief(self.creator),
            "updated_by": brief(self.updater),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_counts:
            from qahub.models.testing import TestPlan, TestRun

            d["counts"] = {
                "repositories": self.repositories.count(),
                "test_plans": TestPlan.query.filter_by(project_id=self.id).count(),
                "test_runs": TestRun.query.filter_by(project_id=self.id).count(),
            }
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.title[:40]}>"


class Repository(TenantModel):
    __tablename__ = "repositories"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    prefix = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255))
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="repositories")
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "title": self.title,
            "prefix": self.prefix,
            "description": self.description,
            "created_by": brief(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
