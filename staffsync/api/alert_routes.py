"""
Alerts API Blueprint
Provides REST endpoints for alert evaluation and notification state.
"""

from flask import Blueprint, jsonify

from staffsync.alerts.dispatcher import mark_notification_read
from staffsync.database.connection import get_db
from staffsync.factory import build_alert_evaluator
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

alerts_bp = Blueprint('alerts', __name__, url_prefix='/api')


@alerts_bp.route('/evaluate-alerts', methods=['POST'])
def evaluate_alerts():
    """
    Evaluate every active alert rule.

    Returns:
        JSON with evaluated and triggered rule counts
    """
    try:
        summary = build_alert_evaluator().evaluate_all()

        return jsonify({
            'success': True,
            'evaluated': summary.evaluated,
            'triggered': summary.triggered,
            'notifications': summary.notifications,
            'errors': summary.errors
        })

    except Exception as e:
        logger.error(f"Alert evaluation failed: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@alerts_bp.route('/notifications/<int:notification_id>/read', methods=['POST'])
def read_notification(notification_id: int):
    """Mark a notification as read."""
    try:
        if not mark_notification_read(get_db(), notification_id):
            return jsonify({'success': False, 'error': 'Notification not found'}), 404

        return jsonify({'success': True, 'id': notification_id})

    except Exception as e:
        logger.error(f"Failed to mark notification {notification_id} read: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500
