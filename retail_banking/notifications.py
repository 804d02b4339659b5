"""
In-App Notification Module

Stores notifications for users and tracks read state. Delivery over email,
SMS or push is out of scope; notifications are only ever read in-app.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime
from .logging_config import get_logger


class NotificationType(Enum):
    TRANSACTION = "transaction"
    SECURITY = "security"
    ACCOUNT = "account"
    LOAN = "loan"
    BILL_PAYMENT = "bill_payment"
    SYSTEM = "system"


class NotificationPriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class Notification(StorageRecord):
    """Notification shown to one user"""
    user_id: str
    title: str
    message: str
    notification_type: NotificationType
    priority: NotificationPriority = NotificationPriority.NORMAL
    is_read: bool = False
    read_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['notification_type'] = self.notification_type.value
        result['priority'] = self.priority.value
        result['read_at'] = format_datetime(self.read_at)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['notification_type'] = NotificationType(data['notification_type'])
        data['priority'] = NotificationPriority(data['priority'])
        data['read_at'] = parse_datetime(data.get('read_at'))
        return cls(**data)


class NotificationService:
    """Creates notifications and manages read state"""

    def __init__(self, storage: StorageInterface, limit: int = 50):
        self.storage = storage
        self.notifications_table = "notifications"
        self.limit = limit
        self.logger = get_logger("retail_banking.notifications")

    def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: NotificationType,
        priority: NotificationPriority = NotificationPriority.NORMAL
    ) -> Notification:
        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            priority=priority
        )
        self.storage.save(self.notifications_table, notification.id, notification.to_dict())
        self.logger.debug(f"Notification {notification.id} created for user {user_id}")
        return notification

    def get_user_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        """Newest first, capped at ``limit``"""
        filters = {"user_id": user_id}
        if unread_only:
            filters["is_read"] = False

        notifications = [
            Notification.from_dict(data)
            for data in self.storage.find(self.notifications_table, filters)
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:self.limit]

    def get_unread_count(self, user_id: str) -> int:
        return len(self.storage.find(self.notifications_table, {"user_id": user_id, "is_read": False}))

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark one notification read; False when missing or already read"""
        data = self.storage.load(self.notifications_table, notification_id)
        if not data:
            return False

        notification = Notification.from_dict(data)
        if notification.is_read:
            return False

        self._mark(notification, datetime.now(timezone.utc))
        return True

    def mark_all_as_read(self, user_id: str) -> int:
        """Mark every unread notification of a user read; returns how many changed"""
        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            unread = self.get_unread(user_id)
            for notification in unread:
                self._mark(notification, now)
        return len(unread)

    def get_unread(self, user_id: str) -> List[Notification]:
        return [
            Notification.from_dict(data)
            for data in self.storage.find(self.notifications_table, {"user_id": user_id, "is_read": False})
        ]

    def _mark(self, notification: Notification, when: datetime) -> None:
        notification.is_read = True
        notification.read_at = when
        notification.updated_at = when
        self.storage.save(self.notifications_table, notification.id, notification.to_dict())

    # Event helpers used by the banking services

    def notify_bill_payment(self, user_id: str, provider_name: str, amount: str, paid: bool) -> Notification:
        status = "successful" if paid else "failed"
        return self.create_notification(
            user_id,
            f"Bill Payment {status}",
            f"{provider_name} - {amount}",
            NotificationType.BILL_PAYMENT
        )

    def notify_exchange(self, user_id: str, from_amount: str, to_amount: str) -> Notification:
        return self.create_notification(
            user_id,
            "Currency Exchange Completed",
            f"Exchanged {from_amount} to {to_amount}",
            NotificationType.TRANSACTION
        )

    def notify_loan(self, user_id: str, title: str, message: str) -> Notification:
        return self.create_notification(
            user_id, title, message, NotificationType.LOAN, NotificationPriority.HIGH
        )
