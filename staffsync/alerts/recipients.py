"""
Alert Recipients Module
Resolves who receives a notification for a rule scope.
"""

from dataclasses import dataclass
from typing import List, Optional

from staffsync.database.connection import DatabaseConnection
from staffsync.database.queries import QueryHelpers
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Recipient:
    user_id: int
    email: Optional[str] = None


class RecipientResolver:
    """All admins plus the managers of the rule's centre, one entry per user."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def resolve(self, centre_code: str = None) -> List[Recipient]:
        with self.db.session_scope() as session:
            rows = QueryHelpers(session).get_alert_recipients(centre_code)

        recipients = []
        seen = set()
        for user_id, email in rows:
            if user_id in seen:
                continue
            seen.add(user_id)
            recipients.append(Recipient(user_id=user_id, email=email or None))

        logger.debug(f"Resolved {len(recipients)} recipients for {centre_code or 'all centres'}")
        return recipients
