"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..clients import Client, format_cpf
from ..currency import Money, format_brl, parse_amount
from ..ledger import CreditRecord
from ..merchants import Merchant
from ..notifications import Notification


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("BRL", description="Currency code")
    formatted: Optional[str] = Field(None, description="pt-BR display form, e.g. R$ 1.234,56")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code,
                   formatted=format_brl(money))


# Session schemas
class LoginRequest(BaseModel):
    email: str
    password: str


# Merchant schemas
class CreateMerchantRequest(BaseModel):
    name: str
    email: str
    phone: str = ""
    address: str = ""
    status: str = Field("active", description="Merchant status (active, inactive)")


class UpdateMerchantRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: Optional[str] = None


# Client schemas
class CreateClientRequest(BaseModel):
    name: str
    cpf: str
    email: str = ""
    phone: str = ""
    address: str = ""
    credit_limit: str = Field("0", description="Amount, e.g. 1500.00 or 1.500,00")
    current_debt: str = Field("0", description="Opening debt")
    payment_status: str = Field("em_dia", description="em_dia, a_vencer or vencido")


class UpdateClientRequest(BaseModel):
    name: Optional[str] = None
    cpf: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    credit_limit: Optional[str] = None
    current_debt: Optional[str] = None
    payment_status: Optional[str] = None


# Ledger schemas
class PaymentRequest(BaseModel):
    amount: str = Field(..., description="Amount paid, e.g. 300,00")

    def to_money(self) -> Money:
        return parse_amount(self.amount)


class CreditRequest(BaseModel):
    amount: str = Field(..., description="Credit amount, e.g. 250,00")
    description: str = ""
    due_date: Optional[str] = Field(None, description="ISO date; defaults to the configured term")

    def to_money(self) -> Money:
        return parse_amount(self.amount)


class ReminderRequest(BaseModel):
    kind: str = Field(..., description="overdue or upcoming")


# Response helpers
def merchant_to_dict(merchant: Merchant) -> Dict[str, Any]:
    return {
        "id": merchant.id,
        "name": merchant.name,
        "email": merchant.email,
        "phone": merchant.phone,
        "address": merchant.address,
        "status": merchant.status.value,
        "total_clients": merchant.total_clients,
        "total_debt": MoneyModel.from_money(merchant.total_debt).model_dump(),
        "created_at": merchant.created_at.isoformat()
    }


def client_to_dict(client: Client) -> Dict[str, Any]:
    return {
        "id": client.id,
        "name": client.name,
        "cpf": format_cpf(client.cpf),
        "email": client.email,
        "phone": client.phone,
        "address": client.address,
        "merchant_id": client.merchant_id,
        "credit_limit": MoneyModel.from_money(client.credit_limit).model_dump(),
        "current_debt": MoneyModel.from_money(client.current_debt).model_dump(),
        "available_credit": MoneyModel.from_money(client.available_credit).model_dump(),
        "payment_status": client.payment_status.value,
        "payment_status_label": client.payment_status.label,
        "last_payment": client.last_payment.isoformat() if client.last_payment else None,
        "created_at": client.created_at.isoformat()
    }


def record_to_dict(record: CreditRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "client_id": record.client_id,
        "amount": MoneyModel.from_money(record.amount).model_dump(),
        "paid_amount": MoneyModel.from_money(record.paid_amount).model_dump(),
        "outstanding": MoneyModel.from_money(record.outstanding).model_dump(),
        "description": record.description,
        "due_date": record.due_date.isoformat(),
        "status": record.status.value,
        "paid_at": record.paid_at.isoformat() if record.paid_at else None,
        "created_at": record.created_at.isoformat()
    }


def notification_to_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "client_id": notification.client_id,
        "merchant_id": notification.merchant_id,
        "kind": notification.kind.code,
        "message": notification.message,
        "created_at": notification.created_at.isoformat()
    }
