"""
Notification Module

Payment reminders and promotions a merchant sends to its clients. Each kind
is gated on the client's payment status: overdue reminders go to ``vencido``
clients, upcoming reminders to ``a_vencer`` clients and promotions only to
clients that are ``em_dia``.

Delivery is in-app: the notification is stored for the client and a log
line is written. There is no external channel.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any
import uuid

from .audit import AuditTrail, AuditEventType
from .clients import Client, ClientDirectory, PaymentStatus
from .errors import ValidationError
from .ledger import CreditLedgerService
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, parse_datetime


class NotificationKind(Enum):
    """Notification kinds and the payment status each one requires"""
    OVERDUE_REMINDER = ("overdue_reminder", PaymentStatus.VENCIDO)
    UPCOMING_REMINDER = ("upcoming_reminder", PaymentStatus.A_VENCER)
    PROMOTION = ("promotion", PaymentStatus.EM_DIA)

    def __init__(self, code: str, required_status: PaymentStatus):
        self.code = code
        self.required_status = required_status

    @classmethod
    def from_code(cls, code: str) -> 'NotificationKind':
        for kind in cls:
            if kind.code == code:
                return kind
        raise ValueError(f"Unknown notification kind '{code}'")


MESSAGE_TEMPLATES: Dict[NotificationKind, str] = {
    NotificationKind.OVERDUE_REMINDER: (
        "Olá {name}, você possui pagamentos em atraso. "
        "Por favor, regularize sua situação."
    ),
    NotificationKind.UPCOMING_REMINDER: (
        "Olá {name}, você possui pagamentos próximos do vencimento."
    ),
    NotificationKind.PROMOTION: (
        "Promoção para {name}: Oferta especial para clientes com bom histórico!"
    ),
}

# Reminder kinds accepted by send_reminder, by their short names
REMINDER_KINDS = {
    "overdue": NotificationKind.OVERDUE_REMINDER,
    "upcoming": NotificationKind.UPCOMING_REMINDER,
}


@dataclass
class Notification(StorageRecord):
    """A message delivered to a client"""
    client_id: str
    merchant_id: str
    kind: NotificationKind
    message: str
    sent_by: Optional[str] = None
    read_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['kind'] = self.kind.code
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            client_id=data['client_id'],
            merchant_id=data['merchant_id'],
            kind=NotificationKind.from_code(data['kind']),
            message=data['message'],
            sent_by=data.get('sent_by'),
            read_at=parse_datetime(data.get('read_at')),
        )


class NotificationService:
    """Sends reminders and promotions and keeps the in-app inbox"""

    def __init__(
        self,
        storage: StorageInterface,
        clients: ClientDirectory,
        ledger: CreditLedgerService,
        audit_trail: AuditTrail,
        upcoming_window_days: int = 7
    ):
        self.storage = storage
        self.clients = clients
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.upcoming_window_days = upcoming_window_days
        self.table_name = "notifications"
        self.logger = get_logger("crediario.notifications")

    def send_reminder(self, client_id: str, kind: str,
                      user_id: Optional[str] = None) -> Notification:
        """
        Send an ``overdue`` or ``upcoming`` payment reminder

        Raises:
            NotFoundError: If the client does not exist
            ValidationError: On an unknown kind or a client whose payment
                status does not call for this reminder
        """
        if kind not in REMINDER_KINDS:
            raise ValidationError(f"Unknown reminder kind '{kind}'")
        client = self.clients.require_client(client_id)
        return self._send(client, REMINDER_KINDS[kind], user_id)

    def send_promotion(self, client_id: str, user_id: Optional[str] = None) -> Notification:
        """Send a promotion to a client in good standing"""
        client = self.clients.require_client(client_id)
        return self._send(client, NotificationKind.PROMOTION, user_id)

    def send_upcoming_reminders(self, merchant_id: str, user_id: Optional[str] = None,
                                now: Optional[datetime] = None) -> List[Notification]:
        """
        Remind every ``a_vencer`` client of the merchant that has a credit
        record falling due within ``upcoming_window_days``.
        """
        due_client_ids = {
            r.client_id for r in self.ledger.records_due_within(self.upcoming_window_days, now)
        }
        sent = []
        for client in self.clients.list_clients(merchant_id):
            if client.id in due_client_ids and client.payment_status == PaymentStatus.A_VENCER:
                sent.append(self._send(client, NotificationKind.UPCOMING_REMINDER, user_id))
        return sent

    def get_notifications(self, client_id: Optional[str] = None,
                          merchant_id: Optional[str] = None) -> List[Notification]:
        """Notifications newest first, narrowed to a client and/or merchant"""
        filters = {}
        if client_id:
            filters["client_id"] = client_id
        if merchant_id:
            filters["merchant_id"] = merchant_id

        data = self.storage.find(self.table_name, filters)
        notifications = [Notification.from_dict(d) for d in data]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    def mark_as_read(self, notification_id: str) -> bool:
        data = self.storage.load(self.table_name, notification_id)
        if not data:
            return False

        notification = Notification.from_dict(data)
        if notification.read_at is None:
            notification.read_at = datetime.now(timezone.utc)
            notification.updated_at = notification.read_at
            self.storage.save(self.table_name, notification.id, notification.to_dict())
        return True

    def get_unread_count(self, client_id: str) -> int:
        return sum(1 for n in self.get_notifications(client_id=client_id) if n.read_at is None)

    def _send(self, client: Client, kind: NotificationKind,
              user_id: Optional[str]) -> Notification:
        if client.payment_status != kind.required_status:
            raise ValidationError(
                f"Cannot send {kind.code} to a client with status {client.payment_status.value}"
            )

        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            client_id=client.id,
            merchant_id=client.merchant_id,
            kind=kind,
            message=MESSAGE_TEMPLATES[kind].format(name=client.name),
            sent_by=user_id
        )

        with self.storage.atomic():
            self.storage.save(self.table_name, notification.id, notification.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.NOTIFICATION_SENT,
                entity_type="client",
                entity_id=client.id,
                metadata={"notification_id": notification.id, "kind": kind.code},
                user_id=user_id
            )

        log_action(self.logger, "info", f"Notification sent: {notification.message}",
                   user_id=user_id, action="send_notification",
                   resource=f"client:{client.id}", extra={"kind": kind.code})
        return notification
