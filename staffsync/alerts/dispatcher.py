"""
Notification Dispatcher Module
Persists alert notifications per recipient and delivers them by e-mail.
"""

import html
import json
from datetime import datetime
from typing import List

import requests

from staffsync.alerts.recipients import Recipient, RecipientResolver
from staffsync.alerts.rules import CandidateNotification
from staffsync.config_manager import EmailConfig
from staffsync.database.connection import DatabaseConnection
from staffsync.database.models import AlertNotification
from staffsync.errors import EmailDeliveryFailed
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

CHANNEL_EMAIL = 'email'
CHANNEL_IN_APP = 'in_app'


class EmailSender:
    """Sends e-mail through the Resend HTTP API."""

    def __init__(self, config: EmailConfig, session: requests.Session = None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def send(self, to: str, subject: str, html_body: str) -> None:
        """
        Send one message.

        Raises:
            EmailDeliveryFailed: Provider unreachable or message rejected
        """
        try:
            response = self.session.post(
                self.config.api_url,
                json={
                    'from': self.config.sender,
                    'to': [to],
                    'subject': subject,
                    'html': html_body
                },
                headers={'Authorization': f'Bearer {self.config.api_key}'},
                timeout=self.config.timeout
            )
        except requests.exceptions.RequestException as e:
            raise EmailDeliveryFailed(f"E-mail provider unreachable: {e}")

        if response.status_code >= 400:
            raise EmailDeliveryFailed(
                f"E-mail provider rejected message to {to} (HTTP {response.status_code})"
            )


def render_email(candidate: CandidateNotification) -> str:
    details = json.dumps(candidate.details, indent=2, default=str)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: #DC2626;">{html.escape(candidate.title)}</h2>'
        f'<p style="font-size: 16px; color: #374151;">{html.escape(candidate.message)}</p>'
        '<div style="background: #F3F4F6; padding: 16px; border-radius: 8px;">'
        '<strong>Details:</strong>'
        f'<pre style="white-space: pre-wrap;">{html.escape(details)}</pre>'
        '</div>'
        '<p style="color: #6B7280; font-size: 14px;">Automatic alert from the staffing dashboard.</p>'
        '</div>'
    )


class NotificationDispatcher:
    """
    Fans a candidate notification out to its recipients.

    One AlertNotification row is stored per recipient. E-mail is attempted
    afterwards when the rule asks for it; a failed delivery leaves the row
    in place with email_sent unset.
    """

    def __init__(self, db: DatabaseConnection, recipient_resolver: RecipientResolver,
                 email_sender: EmailSender = None):
        self.db = db
        self.recipient_resolver = recipient_resolver
        self.email_sender = email_sender

    def dispatch(self, candidate: CandidateNotification, channels: List[str] = None) -> List[int]:
        """
        Persist and deliver a notification.

        Returns:
            Ids of the stored AlertNotification rows
        """
        recipients = self.recipient_resolver.resolve(candidate.centre_code)
        if not recipients:
            logger.warning(f"No recipients for {candidate.rule_type} alert "
                           f"(centre: {candidate.centre_code or 'all'})")
            return []

        stored = self._persist(candidate, recipients)

        if CHANNEL_EMAIL in (channels or []):
            self._deliver(candidate, stored)

        logger.info(f"Dispatched {candidate.severity} {candidate.rule_type} alert "
                    f"to {len(stored)} recipients")
        return [notification_id for notification_id, _ in stored]

    def _persist(self, candidate: CandidateNotification, recipients: List[Recipient]):
        with self.db.session_scope() as session:
            notifications = []
            for recipient in recipients:
                notification = AlertNotification(
                    rule_id=candidate.rule_id,
                    rule_type=candidate.rule_type,
                    severity=candidate.severity,
                    title=candidate.title,
                    message=candidate.message,
                    details=candidate.details,
                    centre_code=candidate.centre_code,
                    recipient_user_id=recipient.user_id,
                    recipient_email=recipient.email
                )
                session.add(notification)
                notifications.append(notification)
            session.flush()
            return [(n.id, n.recipient_email) for n in notifications]

    def _deliver(self, candidate: CandidateNotification, stored) -> None:
        if self.email_sender is None or not self.email_sender.enabled:
            logger.warning("E-mail channel requested but no e-mail provider is configured")
            return

        body = render_email(candidate)
        for notification_id, email in stored:
            if not email:
                continue
            try:
                self.email_sender.send(email, candidate.title, body)
            except EmailDeliveryFailed as e:
                logger.error(f"Failed to e-mail notification {notification_id}: {e.message}")
                continue

            with self.db.session_scope() as session:
                notification = session.get(AlertNotification, notification_id)
                notification.email_sent = True
                notification.email_sent_at = datetime.utcnow()
            logger.info(f"E-mail sent to {email}")


def mark_notification_read(db: DatabaseConnection, notification_id: int) -> bool:
    """Mark a notification read. Returns False when it does not exist."""
    with db.session_scope() as session:
        notification = session.get(AlertNotification, notification_id)
        if notification is None:
            return False
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.utcnow()
    return True
