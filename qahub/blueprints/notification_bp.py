"""
QaHub
Notification Blueprint: the calling user's inbox.

Provides:
    - Listing with ``type`` / ``read`` filters and inbox statistics
    - Creating notifications for any notifiable
    - Read / unread toggling, mark-all-read
    - Single and bulk deletion
"""

import logging

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.services.notification_service import USER_NOTIFIABLE, NotificationService
from qahub.utils.validation import Validator

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1/notifications")


# ═══════════════════════════════════════════════════════════════════════════
#  INBOX
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("", methods=["GET"])
def list_notifications():
    return list_response(NotificationService.list_query(current_user_id(), request.args))


@notification_bp.route("/stats", methods=["GET"])
def notification_stats():
    return data_response(NotificationService.stats(current_user_id()))


@notification_bp.route("/mark-all-read", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_user_id())
    return data_response({"count": count})


@notification_bp.route("/bulk", methods=["DELETE"])
def bulk_delete():
    v = Validator(request.get_json(silent=True) or {})
    v.id_list("ids", required=True, min_items=1)
    data = v.check()
    return data_response({"count": NotificationService.bulk_delete(current_user_id(), data["ids"])})


@notification_bp.route("/<int:notification_id>", methods=["GET"])
def get_notification(notification_id):
    return data_response(NotificationService.get(current_user_id(), notification_id).to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  CREATE / UPDATE / DELETE
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("", methods=["POST"])
def create_notification():
    """Create a notification; ``data`` may be an object or plain text."""
    v = Validator(request.get_json(silent=True) or {})
    v.string("type", required=True, max_length=255)
    v.integer("notifiable_id", required=True, min_value=1)
    v.string("notifiable_type", max_length=255, default=USER_NOTIFIABLE)
    v.json("data")
    data = v.check()
    notif = NotificationService.create(
        type=data["type"],
        notifiable_id=data["notifiable_id"],
        notifiable_type=data.get("notifiable_type") or USER_NOTIFIABLE,
        data=data.get("data"),
    )
    return data_response(notif.to_dict(), 201)


@notification_bp.route("/<int:notification_id>", methods=["PATCH"])
def update_notification(notification_id):
    """``{"read_at": <iso datetime>}`` marks read, ``{"read_at": null}`` marks unread."""
    v = Validator(request.get_json(silent=True) or {})
    v.datetime("read_at", required=False)
    data = v.check()
    notif = NotificationService.set_read(current_user_id(), notification_id, data.get("read_at"))
    return data_response(notif.to_dict())


@notification_bp.route("/<int:notification_id>", methods=["DELETE"])
def delete_notification(notification_id):
    NotificationService.delete(current_user_id(), notification_id)
    return data_response({"message": "Notification deleted"})
