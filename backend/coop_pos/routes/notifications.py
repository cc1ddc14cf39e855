# Overview: Flask API routes for the in-process notification feed.

from flask import Blueprint, jsonify, request

from ..extensions import notifications

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _feed():
    notifier = notifications.notifier
    return notifier if hasattr(notifier, "recent") else None


@notifications_bp.get("")
def list_notifications_route():
    feed = _feed()
    if feed is None:
        return jsonify({"success": True, "notifications": []}), 200
    limit = request.args.get("limit", 50, type=int) or 50
    return jsonify({
        "success": True,
        "notifications": [n.to_dict() for n in feed.recent(limit)],
    }), 200


@notifications_bp.post("/<notification_id>/read")
def mark_notification_read_route(notification_id: str):
    feed = _feed()
    if feed is None or not feed.mark_read(notification_id):
        return jsonify({"success": False, "message": "Notification not found"}), 404
    return jsonify({"success": True}), 200
