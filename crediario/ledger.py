"""
Credit Ledger Module

Debt arithmetic for crediário clients. ``record_payment`` and ``grant_credit``
are pure: they take a client snapshot and a proposed change and return either
a new snapshot or a rejection reason, never clamping out-of-range input.

``CreditLedgerService`` applies them against storage, keeping the client's
running balance and its credit records (one per grant) in step inside a
single atomic block, and runs the overdue sweep that moves clients to
``vencido`` when an unpaid record passes its due date.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Dict, List, Optional, Any
import uuid

from .audit import AuditTrail, AuditEventType
from .clients import Client, ClientDirectory, PaymentStatus
from .currency import Money
from .errors import ValidationError
from .logging_config import get_logger, log_action
from .merchants import MerchantDirectory
from .storage import StorageInterface, StorageRecord, parse_datetime, parse_money


# Descriptions of records opened by balance edits rather than sales
OPENING_BALANCE = "Saldo inicial"
DEBT_ADJUSTMENT = "Ajuste de saldo"


class Rejection(Enum):
    """Reasons a ledger operation is refused"""
    INVALID_AMOUNT = "invalid_amount"
    EXCEEDS_DEBT = "exceeds_debt"
    EXCEEDS_AVAILABLE_CREDIT = "exceeds_available_credit"
    MISSING_DESCRIPTION = "missing_description"

    @property
    def message(self) -> str:
        return {
            Rejection.INVALID_AMOUNT: "Valor inválido",
            Rejection.EXCEEDS_DEBT: "Valor maior que a dívida atual",
            Rejection.EXCEEDS_AVAILABLE_CREDIT: "Valor maior que o crédito disponível",
            Rejection.MISSING_DESCRIPTION: "Descrição obrigatória",
        }[self]


class CreditRecordStatus(Enum):
    """Credit record (ledger entry) status"""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass
class CreditRecord(StorageRecord):
    """One credit grant and how much of it has been settled"""
    client_id: str
    amount: Money
    description: str
    due_date: datetime
    status: CreditRecordStatus = CreditRecordStatus.PENDING
    paid_amount: Money = None
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        if self.paid_amount is None:
            self.paid_amount = Money.zero(self.amount.currency)
        if not self.amount.is_positive():
            raise ValidationError("Credit record amount must be positive")
        if self.paid_amount.is_negative() or self.paid_amount > self.amount:
            raise ValidationError("Paid amount must be between zero and the record amount")

    @property
    def outstanding(self) -> Money:
        return self.amount - self.paid_amount

    @property
    def is_open(self) -> bool:
        return self.status != CreditRecordStatus.PAID

    def is_past_due(self, now: datetime) -> bool:
        return self.status == CreditRecordStatus.OVERDUE or (self.is_open and self.due_date < now)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CreditRecord':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            client_id=data['client_id'],
            amount=parse_money(data['amount']),
            description=data['description'],
            due_date=parse_datetime(data['due_date']),
            status=CreditRecordStatus(data['status']),
            paid_amount=parse_money(data['paid_amount']),
            paid_at=parse_datetime(data.get('paid_at')),
        )


@dataclass
class LedgerResult:
    """Outcome of a ledger operation: a new client snapshot or a rejection"""
    client: Optional[Client] = None
    rejection: Optional[Rejection] = None
    record: Optional[CreditRecord] = None  # Record opened by a grant
    settled: List[CreditRecord] = field(default_factory=list)  # Records touched by a payment

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @classmethod
    def accepted(cls, client: Client) -> 'LedgerResult':
        return cls(client=client)

    @classmethod
    def rejected(cls, rejection: Rejection) -> 'LedgerResult':
        return cls(rejection=rejection)


def record_payment(client: Client, amount: Money,
                   now: Optional[datetime] = None) -> LedgerResult:
    """
    Pay ``amount`` toward the client's debt.

    Full payoff forces the status to ``em_dia``; a partial payment leaves
    the status as it was.
    """
    if not amount.is_positive():
        return LedgerResult.rejected(Rejection.INVALID_AMOUNT)
    if amount > client.current_debt:
        return LedgerResult.rejected(Rejection.EXCEEDS_DEBT)

    now = now or datetime.now(timezone.utc)
    new_debt = client.current_debt - amount
    status = PaymentStatus.EM_DIA if new_debt.is_zero() else client.payment_status

    return LedgerResult.accepted(replace(
        client,
        current_debt=new_debt,
        payment_status=status,
        last_payment=now,
        updated_at=now
    ))


def grant_credit(client: Client, amount: Money, description: str,
                 now: Optional[datetime] = None) -> LedgerResult:
    """
    Add ``amount`` to the client's debt, within the available credit.

    The status becomes ``a_vencer`` whatever it was before.
    """
    if not amount.is_positive():
        return LedgerResult.rejected(Rejection.INVALID_AMOUNT)
    if not description or not description.strip():
        return LedgerResult.rejected(Rejection.MISSING_DESCRIPTION)
    if amount > client.available_credit:
        return LedgerResult.rejected(Rejection.EXCEEDS_AVAILABLE_CREDIT)

    now = now or datetime.now(timezone.utc)
    return LedgerResult.accepted(replace(
        client,
        current_debt=client.current_debt + amount,
        payment_status=PaymentStatus.A_VENCER,
        updated_at=now
    ))


class CreditLedgerService:
    """
    Applies ledger operations to stored clients and reconciles their credit records
    """

    def __init__(
        self,
        storage: StorageInterface,
        clients: ClientDirectory,
        merchants: MerchantDirectory,
        audit_trail: AuditTrail,
        default_due_days: int = 30
    ):
        self.storage = storage
        self.clients = clients
        self.merchants = merchants
        self.audit_trail = audit_trail
        self.default_due_days = default_due_days
        self.table_name = "credit_records"
        self.logger = get_logger("crediario.ledger")

    def record_payment(self, client_id: str, amount: Money,
                       user_id: Optional[str] = None,
                       now: Optional[datetime] = None) -> LedgerResult:
        """
        Record a payment and settle open credit records, oldest due date first

        Args:
            client_id: Paying client
            amount: Amount received
            user_id: Acting cashier, for the audit trail
            now: Payment time (current time when omitted)

        Returns:
            LedgerResult with the new client snapshot and the records it
            settled, or the rejection reason with nothing written

        Raises:
            NotFoundError: If the client does not exist
        """
        now = now or datetime.now(timezone.utc)
        client = self.clients.require_client(client_id)

        result = record_payment(client, amount, now)
        if not result.ok:
            self._log_rejection("record_payment", client, amount, result.rejection, user_id)
            return result

        with self.storage.atomic():
            updated = result.client
            result.settled = self._settle_records(updated, amount, now, user_id)
            self.clients.store(updated)
            self.sync_merchant_totals(updated.merchant_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_RECORDED,
                entity_type="client",
                entity_id=updated.id,
                metadata={
                    "amount": amount.to_string(),
                    "previous_debt": client.current_debt.to_string(),
                    "current_debt": updated.current_debt.to_string(),
                    "payment_status": updated.payment_status.value,
                    "settled_records": [r.id for r in result.settled]
                },
                user_id=user_id
            )

        log_action(
            self.logger, "info", "Payment recorded", user_id=user_id,
            action="record_payment", resource=f"client:{updated.id}",
            extra={"amount": amount.to_string(),
                   "current_debt": updated.current_debt.to_string()}
        )
        return result

    def grant_credit(self, client_id: str, amount: Money, description: str,
                     due_date: Optional[datetime] = None,
                     user_id: Optional[str] = None,
                     now: Optional[datetime] = None) -> LedgerResult:
        """
        Grant new credit and open a pending credit record for it

        Args:
            client_id: Client receiving credit
            amount: Credit amount
            description: What was bought
            due_date: When the record falls due (default ``default_due_days`` from now)
            user_id: Acting cashier, for the audit trail
            now: Grant time (current time when omitted)

        Raises:
            NotFoundError: If the client does not exist
        """
        now = now or datetime.now(timezone.utc)
        client = self.clients.require_client(client_id)

        result = grant_credit(client, amount, description, now)
        if not result.ok:
            self._log_rejection("grant_credit", client, amount, result.rejection, user_id)
            return result

        with self.storage.atomic():
            updated = result.client
            result.record = self.add_record(
                client_id=updated.id,
                amount=amount,
                description=description.strip(),
                due_date=due_date or now + timedelta(days=self.default_due_days),
                created_at=now
            )
            self.clients.store(updated)
            self.sync_merchant_totals(updated.merchant_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.CREDIT_GRANTED,
                entity_type="client",
                entity_id=updated.id,
                metadata={
                    "amount": amount.to_string(),
                    "description": description.strip(),
                    "credit_record_id": result.record.id,
                    "due_date": result.record.due_date,
                    "current_debt": updated.current_debt.to_string()
                },
                user_id=user_id
            )

        log_action(
            self.logger, "info", "Credit granted", user_id=user_id,
            action="grant_credit", resource=f"client:{updated.id}",
            extra={"amount": amount.to_string(), "credit_record_id": result.record.id}
        )
        return result

    def create_client(self, user_id: Optional[str] = None,
                      now: Optional[datetime] = None, **fields) -> Client:
        """
        Create a client and open a credit record for any opening debt

        An opening debt on a ``vencido`` client is recorded as already
        overdue; otherwise it falls due ``default_due_days`` from now.

        Args:
            user_id: Acting merchant, for the audit trail
            now: Creation time (current time when omitted)
            **fields: ``ClientDirectory.create_client`` arguments
        """
        now = now or datetime.now(timezone.utc)
        with self.storage.atomic():
            client = self.clients.create_client(user_id=user_id, **fields)
            if client.has_debt:
                overdue = client.payment_status == PaymentStatus.VENCIDO
                self.add_record(
                    client_id=client.id,
                    amount=client.current_debt,
                    description=OPENING_BALANCE,
                    due_date=now if overdue else now + timedelta(days=self.default_due_days),
                    status=CreditRecordStatus.OVERDUE if overdue else CreditRecordStatus.PENDING,
                    created_at=now
                )
            self.sync_merchant_totals(client.merchant_id)
        return client

    def update_client(self, client_id: str, changes: Dict[str, Any],
                      user_id: Optional[str] = None,
                      now: Optional[datetime] = None) -> Client:
        """
        Apply a merchant's edit to a client, keeping credit records in step
        with a changed debt: a lower debt settles open records oldest due
        first, a higher one opens a record for the difference. A client left
        owing nothing is ``em_dia``; an ``em_dia`` client whose debt rises
        becomes ``a_vencer``.

        Raises:
            NotFoundError: If the client does not exist
            ValidationError: If the edited client is invalid; nothing is written
        """
        now = now or datetime.now(timezone.utc)
        client = self.clients.require_client(client_id)
        updated = replace(client, **changes)
        if not updated.has_debt:
            updated.payment_status = PaymentStatus.EM_DIA
        elif (updated.current_debt > client.current_debt
              and updated.payment_status == PaymentStatus.EM_DIA):
            updated.payment_status = PaymentStatus.A_VENCER

        with self.storage.atomic():
            updated = self.clients.upsert(updated, user_id=user_id)

            if updated.current_debt != client.current_debt:
                if updated.current_debt < client.current_debt:
                    self._settle_records(updated, client.current_debt - updated.current_debt,
                                         now, user_id)
                else:
                    self.add_record(
                        client_id=updated.id,
                        amount=updated.current_debt - client.current_debt,
                        description=DEBT_ADJUSTMENT,
                        due_date=now + timedelta(days=self.default_due_days),
                        created_at=now
                    )
                self.audit_trail.log_event(
                    event_type=AuditEventType.DEBT_ADJUSTED,
                    entity_type="client",
                    entity_id=updated.id,
                    metadata={"previous_debt": client.current_debt.to_string(),
                              "current_debt": updated.current_debt.to_string()},
                    user_id=user_id
                )
            self.sync_merchant_totals(updated.merchant_id)

        if updated.current_debt != client.current_debt:
            log_action(
                self.logger, "info", "Debt adjusted", user_id=user_id,
                action="adjust_debt", resource=f"client:{updated.id}",
                extra={"previous_debt": client.current_debt.to_string(),
                       "current_debt": updated.current_debt.to_string()}
            )
        return updated

    def refresh_overdue(self, now: Optional[datetime] = None,
                        merchant_id: Optional[str] = None) -> List[Client]:
        """
        Overdue sweep, over every client or only one merchant's.

        A client owing nothing is ``em_dia``. Otherwise open records past
        their due date become ``overdue`` and their clients ``vencido``, and a
        ``vencido`` client left without overdue records returns to ``a_vencer``.

        Returns:
            Clients whose payment status changed
        """
        now = now or datetime.now(timezone.utc)
        changed = []

        with self.storage.atomic():
            clients = self.clients.list_clients(merchant_id)
            client_ids = {c.id for c in clients}
            overdue_clients = set()
            for record in self.list_records():
                if record.client_id not in client_ids or not record.is_past_due(now):
                    continue
                overdue_clients.add(record.client_id)
                if record.status == CreditRecordStatus.PENDING:
                    record.status = CreditRecordStatus.OVERDUE
                    record.updated_at = now
                    self._save_record(record)
                    self.audit_trail.log_event(
                        event_type=AuditEventType.CREDIT_RECORD_OVERDUE,
                        entity_type="credit_record",
                        entity_id=record.id,
                        metadata={"client_id": record.client_id,
                                  "due_date": record.due_date,
                                  "outstanding": record.outstanding.to_string()}
                    )

            for client in clients:
                if not client.has_debt:
                    status = PaymentStatus.EM_DIA
                elif client.id in overdue_clients:
                    status = PaymentStatus.VENCIDO
                elif client.payment_status == PaymentStatus.VENCIDO:
                    status = PaymentStatus.A_VENCER
                else:
                    continue

                if status != client.payment_status:
                    client.payment_status = status
                    client.updated_at = now
                    self.clients.store(client)
                    changed.append(client)

        if changed:
            log_action(self.logger, "info", "Payment statuses refreshed",
                       action="refresh_overdue",
                       extra={"merchant_id": merchant_id,
                              "changed_clients": [c.id for c in changed]})
        return changed

    def add_record(
        self,
        client_id: str,
        amount: Money,
        description: str,
        due_date: datetime,
        status: CreditRecordStatus = CreditRecordStatus.PENDING,
        paid_amount: Optional[Money] = None,
        paid_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None
    ) -> CreditRecord:
        """Store a credit record as is; balances are not touched"""
        now = datetime.now(timezone.utc)
        if status == CreditRecordStatus.PAID and paid_amount is None:
            paid_amount = amount
        record = CreditRecord(
            id=str(uuid.uuid4()),
            created_at=created_at or now,
            updated_at=now,
            client_id=client_id,
            amount=amount,
            description=description,
            due_date=due_date,
            status=status,
            paid_amount=paid_amount,
            paid_at=paid_at
        )
        self._save_record(record)
        return record

    def get_record(self, record_id: str) -> Optional[CreditRecord]:
        data = self.storage.load(self.table_name, record_id)
        if data:
            return CreditRecord.from_dict(data)
        return None

    def list_records(self) -> List[CreditRecord]:
        return [CreditRecord.from_dict(d) for d in self.storage.load_all(self.table_name)]

    def records_for_client(self, client_id: str) -> List[CreditRecord]:
        """Credit records of one client, in creation order"""
        data = self.storage.find(self.table_name, {"client_id": client_id})
        return [CreditRecord.from_dict(d) for d in data]

    def outstanding_for_client(self, client_id: str) -> Money:
        """Sum of what is still owed on the client's open records"""
        total = Money.zero()
        for record in self.records_for_client(client_id):
            if record.is_open:
                total = total + record.outstanding
        return total

    def records_due_within(self, days: int,
                           now: Optional[datetime] = None) -> List[CreditRecord]:
        """Open records that are not yet overdue and fall due in the next ``days`` days"""
        now = now or datetime.now(timezone.utc)
        horizon = now + timedelta(days=days)
        return [
            r for r in self.list_records()
            if r.is_open and now <= r.due_date <= horizon
        ]

    def sync_merchant_totals(self, merchant_id: str) -> None:
        """Recompute a merchant's client count and total debt"""
        debts = [c.current_debt for c in self.clients.list_clients(merchant_id)]
        self.merchants.refresh_totals(merchant_id, debts)

    def _settle_records(self, client: Client, amount: Money, now: datetime,
                        user_id: Optional[str]) -> List[CreditRecord]:
        open_records = sorted(
            (r for r in self.records_for_client(client.id) if r.is_open),
            key=lambda r: (r.due_date, r.created_at)
        )

        settled = []
        remaining = amount
        for record in open_records:
            if client.has_debt:
                if remaining.is_zero():
                    break
                take = min(remaining, record.outstanding)
                remaining = remaining - take
            else:
                # Balance cleared: nothing is owed on any record
                take = record.outstanding

            record.paid_amount = record.paid_amount + take
            if record.outstanding.is_zero():
                record.status = CreditRecordStatus.PAID
                record.paid_at = now
                self.audit_trail.log_event(
                    event_type=AuditEventType.CREDIT_RECORD_PAID,
                    entity_type="credit_record",
                    entity_id=record.id,
                    metadata={"client_id": client.id, "amount": record.amount.to_string()},
                    user_id=user_id
                )
            record.updated_at = now
            self._save_record(record)
            settled.append(record)

        return settled

    def _save_record(self, record: CreditRecord) -> None:
        self.storage.save(self.table_name, record.id, record.to_dict())

    def _log_rejection(self, action: str, client: Client, amount: Money,
                       rejection: Rejection, user_id: Optional[str]) -> None:
        log_action(
            self.logger, "warning", f"Ledger operation rejected: {rejection.value}",
            user_id=user_id, action=action, resource=f"client:{client.id}",
            extra={
                "amount": amount.to_string(),
                "current_debt": client.current_debt.to_string(),
                "credit_limit": client.credit_limit.to_string(),
                "rejection": rejection.value
            }
        )
