"""
QaHub
PRD review model: product requirement documents submitted to the
Apps Script reviewer and synced back from the review sheet.
"""

from qahub.models import db
from qahub.models.auth import brief
from qahub.models.base import TenantModel, iso, utcnow


PRD_REVIEW_STATUSES = ("DRAFT", "PROCESSING", "COMPLETED", "FINALIZED")


class PrdReview(TenantModel):
    __tablename__ = "prd_reviews"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    request_id = db.Column(db.String(64), unique=True, nullable=False)
    requester_name = db.Column(db.String(255), nullable=False)
    title = db.Column(db.String(500), nullable=False)
    content = db.Column(db.Text)
    confluence_url = db.Column(db.String(1000))
    page_id = db.Column(db.String(100))
    status = db.Column(db.String(20), default="DRAFT", nullable=False, index=True)
    ai_review = db.Column(db.Text)
    comments = db.Column(db.Text)
    review_metadata = db.Column("metadata", db.JSON, default=dict)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime)
    synced_at = db.Column(db.DateTime)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    creator = db.relationship("User", foreign_keys=[created_by])
    reviewer = db.relationship("User", foreign_keys=[reviewed_by])

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "request_id": self.request_id,
            "requester_name": self.requester_name,
            "title": self.title,
            "content": self.content,
            "confluence_url": self.confluence_url,
            "page_id": self.page_id,
            "status": self.status,
            "ai_review": self.ai_review,
            "comments": self.comments,
            "metadata": self.review_metadata or {},
            "reviewed_by": brief(self.reviewer),
            "reviewed_at": iso(self.reviewed_at),
            "synced_at": iso(self.synced_at),
            "created_by": brief(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
