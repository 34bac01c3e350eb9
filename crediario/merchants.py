"""
Merchant Management Module

Admin-scoped directory of merchants (lojistas): create, edit, search and
irreversible deletion behind an explicit confirmation, plus the aggregate
counters shown on the administrator dashboard.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Any
import uuid

from .audit import AuditTrail, AuditEventType
from .currency import Money
from .errors import ConfirmationRequiredError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, parse_datetime, parse_money


class MerchantStatus(Enum):
    """Merchant status"""
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class Merchant(StorageRecord):
    """
    Merchant with contact info and aggregate counters over its clients
    """
    name: str
    email: str
    phone: str = ""
    address: str = ""
    status: MerchantStatus = MerchantStatus.ACTIVE
    total_clients: int = 0
    total_debt: Money = None

    def __post_init__(self):
        if self.total_debt is None:
            self.total_debt = Money.zero()
        self.validate()

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Merchant name is required")
        if not self.email or "@" not in self.email:
            raise ValidationError("Invalid email format")

    @property
    def is_active(self) -> bool:
        return self.status == MerchantStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Merchant':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            name=data['name'],
            email=data['email'],
            phone=data.get('phone', ""),
            address=data.get('address', ""),
            status=MerchantStatus(data['status']),
            total_clients=data.get('total_clients', 0),
            total_debt=parse_money(data["total_debt"]),
        )


@dataclass
class MerchantStats:
    """Administrator dashboard counters"""
    total_merchants: int
    active_merchants: int
    total_clients: int
    total_debt: Money


class MerchantDirectory:
    """
    Manages the merchant collection on behalf of the super-administrator
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "merchants"
        self.logger = get_logger("crediario.merchants")

    def create_merchant(
        self,
        name: str,
        email: str,
        phone: str = "",
        address: str = "",
        status: MerchantStatus = MerchantStatus.ACTIVE,
        merchant_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        user_id: Optional[str] = None
    ) -> Merchant:
        """
        Create a new merchant

        Args:
            name: Store name
            email: Contact email
            phone: Contact phone
            address: Street address
            status: Initial status
            merchant_id: Explicit id (generated when omitted)
            created_at: Creation time (now when omitted)
            user_id: Acting user, for the audit trail

        Returns:
            Created Merchant
        """
        now = datetime.now(timezone.utc)
        merchant_id = merchant_id or str(uuid.uuid4())
        if self.storage.exists(self.table_name, merchant_id):
            raise ValidationError(f"Merchant {merchant_id} already exists")

        merchant = Merchant(
            id=merchant_id,
            created_at=created_at or now,
            updated_at=now,
            name=name.strip(),
            email=email.strip(),
            phone=phone,
            address=address,
            status=status
        )
        self._save_merchant(merchant)

        self.audit_trail.log_event(
            event_type=AuditEventType.MERCHANT_CREATED,
            entity_type="merchant",
            entity_id=merchant.id,
            metadata={"name": merchant.name, "email": merchant.email},
            user_id=user_id
        )
        log_action(self.logger, "info", "Merchant created", user_id=user_id,
                   action="create_merchant", resource=f"merchant:{merchant.id}")

        return merchant

    def get_merchant(self, merchant_id: str) -> Optional[Merchant]:
        """Get merchant by ID"""
        data = self.storage.load(self.table_name, merchant_id)
        if data:
            return Merchant.from_dict(data)
        return None

    def require_merchant(self, merchant_id: str) -> Merchant:
        merchant = self.get_merchant(merchant_id)
        if not merchant:
            raise NotFoundError("Merchant", merchant_id)
        return merchant

    def list_merchants(self) -> List[Merchant]:
        return [Merchant.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def update_merchant(
        self,
        merchant_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        status: Optional[MerchantStatus] = None,
        user_id: Optional[str] = None
    ) -> Merchant:
        """Update merchant contact info or status"""
        merchant = self.require_merchant(merchant_id)

        old_data = {"name": merchant.name, "email": merchant.email, "status": merchant.status.value}

        if name is not None:
            merchant.name = name.strip()
        if email is not None:
            merchant.email = email.strip()
        if phone is not None:
            merchant.phone = phone
        if address is not None:
            merchant.address = address
        if status is not None:
            merchant.status = status

        merchant.validate()
        merchant.updated_at = datetime.now(timezone.utc)
        self._save_merchant(merchant)

        self.audit_trail.log_event(
            event_type=AuditEventType.MERCHANT_UPDATED,
            entity_type="merchant",
            entity_id=merchant.id,
            metadata={
                "old_data": old_data,
                "new_data": {"name": merchant.name, "email": merchant.email,
                             "status": merchant.status.value}
            },
            user_id=user_id
        )
        log_action(self.logger, "info", "Merchant updated", user_id=user_id,
                   action="update_merchant", resource=f"merchant:{merchant.id}")

        return merchant

    def delete_merchant(self, merchant_id: str, confirm: bool = False,
                        user_id: Optional[str] = None) -> bool:
        """
        Permanently delete a merchant.

        Raises:
            ConfirmationRequiredError: Unless ``confirm`` is true
            NotFoundError: If the merchant does not exist
        """
        merchant = self.require_merchant(merchant_id)
        if not confirm:
            raise ConfirmationRequiredError(
                f"Deleting merchant {merchant_id} is irreversible and must be confirmed"
            )

        with self.storage.atomic():
            deleted = self.storage.delete(self.table_name, merchant_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.MERCHANT_DELETED,
                entity_type="merchant",
                entity_id=merchant_id,
                metadata={"name": merchant.name},
                user_id=user_id
            )
        log_action(self.logger, "info", "Merchant deleted", user_id=user_id,
                   action="delete_merchant", resource=f"merchant:{merchant_id}")
        return deleted

    def search_merchants(self, query: str = "") -> List[Merchant]:
        """Merchants whose name or email contains ``query`` (case-insensitive)"""
        merchants = self.list_merchants()
        term = query.strip().lower()
        if not term:
            return merchants
        return [
            m for m in merchants
            if term in m.name.lower() or term in m.email.lower()
        ]

    def refresh_totals(self, merchant_id: str, debts: Iterable[Money]) -> Optional[Merchant]:
        """
        Recompute the client count and total debt of a merchant from the
        debts of its clients. Missing merchants are ignored.
        """
        merchant = self.get_merchant(merchant_id)
        if not merchant:
            return None

        total = Money.zero()
        count = 0
        for debt in debts:
            total = total + debt
            count += 1

        merchant.total_clients = count
        merchant.total_debt = total
        merchant.updated_at = datetime.now(timezone.utc)
        self._save_merchant(merchant)
        return merchant

    def get_stats(self) -> MerchantStats:
        merchants = self.list_merchants()
        total_debt = Money.zero()
        for m in merchants:
            total_debt = total_debt + m.total_debt
        return MerchantStats(
            total_merchants=len(merchants),
            active_merchants=sum(1 for m in merchants if m.is_active),
            total_clients=sum(m.total_clients for m in merchants),
            total_debt=total_debt
        )

    def _save_merchant(self, merchant: Merchant) -> None:
        self.storage.save(self.table_name, merchant.id, merchant.to_dict())
