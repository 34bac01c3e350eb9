"""
Client Management Module

Merchant-scoped directory of crediário clients: credit limits, current debt,
payment status, and lookup by name or CPF.

Two lookups exist on purpose. The cashier's point-of-sale search resolves a
single client (first match), while the merchant's client list returns every
match and can be filtered by payment status.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any
import re
import uuid

from .audit import AuditTrail, AuditEventType
from .currency import Money
from .errors import NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, parse_datetime, parse_money


class PaymentStatus(Enum):
    """Client payment status"""
    EM_DIA = "em_dia"      # Current
    A_VENCER = "a_vencer"  # Due soon
    VENCIDO = "vencido"    # Overdue

    @property
    def label(self) -> str:
        return {
            PaymentStatus.EM_DIA: "Em dia",
            PaymentStatus.A_VENCER: "A vencer",
            PaymentStatus.VENCIDO: "Vencido",
        }[self]


def normalize_cpf(value: str) -> str:
    """Strip everything but digits: "123.456.789-00" -> "12345678900" """
    return re.sub(r'\D', '', value or "")


def format_cpf(value: str) -> str:
    """Format an 11-digit CPF as 000.000.000-00; other lengths are returned as digits"""
    digits = normalize_cpf(value)
    if len(digits) != 11:
        return digits
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


@dataclass
class Client(StorageRecord):
    """
    Crediário client with credit limit and running debt
    """
    name: str
    cpf: str
    merchant_id: str
    email: str = ""
    phone: str = ""
    address: str = ""
    credit_limit: Money = None
    current_debt: Money = None
    payment_status: PaymentStatus = PaymentStatus.EM_DIA
    last_payment: Optional[datetime] = None

    def __post_init__(self):
        if self.credit_limit is None:
            self.credit_limit = Money.zero()
        if self.current_debt is None:
            self.current_debt = Money.zero()
        self.validate()

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Client name is required")
        if not normalize_cpf(self.cpf):
            raise ValidationError("Client CPF is required")
        if self.credit_limit.is_negative():
            raise ValidationError("Credit limit cannot be negative")
        if self.current_debt.is_negative():
            raise ValidationError("Current debt cannot be negative")
        if self.current_debt > self.credit_limit:
            raise ValidationError(
                f"Current debt {self.current_debt.to_string()} exceeds credit limit "
                f"{self.credit_limit.to_string()}"
            )

    @property
    def available_credit(self) -> Money:
        """Headroom for new credit grants"""
        return self.credit_limit - self.current_debt

    @property
    def has_debt(self) -> bool:
        return self.current_debt.is_positive()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Client':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            name=data['name'],
            cpf=data['cpf'],
            merchant_id=data['merchant_id'],
            email=data.get('email', ""),
            phone=data.get('phone', ""),
            address=data.get('address', ""),
            credit_limit=parse_money(data['credit_limit']),
            current_debt=parse_money(data['current_debt']),
            payment_status=PaymentStatus(data['payment_status']),
            last_payment=parse_datetime(data.get('last_payment')),
        )


@dataclass
class ClientStats:
    """Merchant dashboard counters"""
    total_clients: int
    clients_in_debt: int
    overdue_clients: int
    total_debt: Money


class ClientDirectory:
    """
    Manages the client collection; every query can be narrowed to one merchant
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "clients"
        self.logger = get_logger("crediario.clients")

    def create_client(
        self,
        name: str,
        cpf: str,
        merchant_id: str,
        email: str = "",
        phone: str = "",
        address: str = "",
        credit_limit: Optional[Money] = None,
        current_debt: Optional[Money] = None,
        payment_status: PaymentStatus = PaymentStatus.EM_DIA,
        last_payment: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        client_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Client:
        """
        Create and store a new client

        Args:
            name: Full name
            cpf: CPF, formatted or digits only
            merchant_id: Owning merchant
            credit_limit: Credit limit (zero when omitted)
            current_debt: Opening debt (zero when omitted)
            payment_status: Opening payment status
            client_id: Explicit id (generated when omitted)
            user_id: Acting user, for the audit trail

        Returns:
            Created Client
        """
        now = datetime.now(timezone.utc)
        client = Client(
            id=client_id or "",
            created_at=created_at or now,
            updated_at=now,
            name=name.strip(),
            cpf=cpf.strip(),
            merchant_id=merchant_id,
            email=email.strip(),
            phone=phone,
            address=address,
            credit_limit=credit_limit,
            current_debt=current_debt,
            payment_status=payment_status,
            last_payment=last_payment
        )
        if client_id:
            if self.storage.exists(self.table_name, client_id):
                raise ValidationError(f"Client {client_id} already exists")
            return self._append(client, user_id)
        return self.upsert(client, user_id=user_id)

    def upsert(self, client: Client, user_id: Optional[str] = None) -> Client:
        """
        Replace the stored client with the same id, keeping its position and
        creation time; otherwise append it under a freshly generated id.
        """
        client.validate()
        existing = self.get_client(client.id) if client.id else None

        if existing is None:
            client.id = self._new_id()
            return self._append(client, user_id)

        client.created_at = existing.created_at
        client.updated_at = datetime.now(timezone.utc)
        self.store(client)

        self.audit_trail.log_event(
            event_type=AuditEventType.CLIENT_UPDATED,
            entity_type="client",
            entity_id=client.id,
            metadata={
                "old_data": {
                    "name": existing.name,
                    "credit_limit": existing.credit_limit.to_string(),
                    "current_debt": existing.current_debt.to_string(),
                    "payment_status": existing.payment_status.value
                },
                "new_data": {
                    "name": client.name,
                    "credit_limit": client.credit_limit.to_string(),
                    "current_debt": client.current_debt.to_string(),
                    "payment_status": client.payment_status.value
                }
            },
            user_id=user_id
        )
        log_action(self.logger, "info", "Client updated", user_id=user_id,
                   action="update_client", resource=f"client:{client.id}")
        return client

    def store(self, client: Client) -> None:
        """Persist a client snapshot without auditing (ledger writes audit its own events)"""
        self.storage.save(self.table_name, client.id, client.to_dict())

    def get_client(self, client_id: str) -> Optional[Client]:
        """Get client by ID"""
        data = self.storage.load(self.table_name, client_id)
        if data:
            return Client.from_dict(data)
        return None

    def require_client(self, client_id: str) -> Client:
        client = self.get_client(client_id)
        if not client:
            raise NotFoundError("Client", client_id)
        return client

    def list_clients(self, merchant_id: Optional[str] = None) -> List[Client]:
        """All clients in insertion order, optionally for one merchant"""
        if merchant_id is None:
            data = self.storage.load_all(self.table_name)
        else:
            data = self.storage.find(self.table_name, {"merchant_id": merchant_id})
        return [Client.from_dict(d) for d in data]

    def find(self, query: str, merchant_id: Optional[str] = None) -> List[Client]:
        """
        Clients whose CPF digits contain the query digits or whose name
        contains the query, case-insensitive. The CPF match only applies
        when the query has digits.
        """
        term = query.strip().lower()
        if not term:
            return []
        digits = normalize_cpf(term)
        return [
            c for c in self.list_clients(merchant_id)
            if (digits and digits in normalize_cpf(c.cpf)) or term in c.name.lower()
        ]

    def find_first(self, query: str, merchant_id: Optional[str] = None) -> Optional[Client]:
        """Point-of-sale lookup: the first matching client, or None when not found"""
        matches = self.find(query, merchant_id)
        if not matches:
            log_action(self.logger, "info", "Client not found",
                       action="find_client", extra={"query": query})
            return None
        return matches[0]

    def search(
        self,
        query: str = "",
        status: Optional[PaymentStatus] = None,
        merchant_id: Optional[str] = None
    ) -> List[Client]:
        """
        Merchant client list: every client matching name, CPF digits or
        email, narrowed to ``status`` when given. A blank query matches all.
        """
        clients = self.list_clients(merchant_id)
        term = query.strip().lower()

        if term:
            digits = normalize_cpf(term)
            clients = [
                c for c in clients
                if term in c.name.lower()
                or (digits and digits in normalize_cpf(c.cpf))
                or term in c.email.lower()
            ]

        if status is not None:
            clients = [c for c in clients if c.payment_status == status]

        return clients

    def get_stats(self, merchant_id: Optional[str] = None) -> ClientStats:
        clients = self.list_clients(merchant_id)
        total_debt = Money.zero()
        for c in clients:
            total_debt = total_debt + c.current_debt
        return ClientStats(
            total_clients=len(clients),
            clients_in_debt=sum(1 for c in clients if c.has_debt),
            overdue_clients=sum(1 for c in clients if c.payment_status == PaymentStatus.VENCIDO),
            total_debt=total_debt
        )

    def _append(self, client: Client, user_id: Optional[str]) -> Client:
        self.store(client)

        self.audit_trail.log_event(
            event_type=AuditEventType.CLIENT_CREATED,
            entity_type="client",
            entity_id=client.id,
            metadata={
                "name": client.name,
                "merchant_id": client.merchant_id,
                "credit_limit": client.credit_limit.to_string()
            },
            user_id=user_id
        )
        log_action(self.logger, "info", "Client created", user_id=user_id,
                   action="create_client", resource=f"client:{client.id}")
        return client

    def _new_id(self) -> str:
        client_id = str(uuid.uuid4())
        while self.storage.exists(self.table_name, client_id):
            client_id = str(uuid.uuid4())
        return client_id
