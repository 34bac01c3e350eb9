"""
Merchant endpoints: the merchant's own clients, counters and notifications
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .auth import CrediarioSystem, get_system, require_permission
from .schemas import (
    CreateClientRequest,
    UpdateClientRequest,
    ReminderRequest,
    MoneyModel,
    client_to_dict,
    record_to_dict,
    notification_to_dict
)
from ..access import Actor, Permission
from ..clients import Client, PaymentStatus
from ..currency import parse_amount


router = APIRouter()


def _scoped_client(system: CrediarioSystem, actor: Actor, client_id: str) -> Client:
    client = system.client_directory.require_client(client_id)
    system.access_manager.require_scope(actor, client.merchant_id)
    return client


@router.get("/clients")
async def list_clients(
    q: str = "",
    payment_status: Optional[str] = None,
    actor: Actor = Depends(require_permission(Permission.VIEW_CLIENTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """List the merchant's clients by name, CPF or email, optionally by payment status"""
    status_filter = PaymentStatus(payment_status) if payment_status else None
    clients = system.client_directory.search(q, status=status_filter, merchant_id=actor.merchant_id)
    return {"clients": [client_to_dict(c) for c in clients], "total": len(clients)}


@router.post("/clients", status_code=status.HTTP_201_CREATED)
async def create_client(
    request: CreateClientRequest,
    actor: Actor = Depends(require_permission(Permission.MANAGE_CLIENTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Create a client for the merchant"""
    client = system.ledger_service.create_client(
        name=request.name,
        cpf=request.cpf,
        merchant_id=actor.merchant_id,
        email=request.email,
        phone=request.phone,
        address=request.address,
        credit_limit=parse_amount(request.credit_limit),
        current_debt=parse_amount(request.current_debt),
        payment_status=PaymentStatus(request.payment_status),
        user_id=actor.id
    )
    return client_to_dict(client)


@router.get("/clients/{client_id}")
async def get_client(
    client_id: str,
    actor: Actor = Depends(require_permission(Permission.VIEW_CLIENTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Client with its credit records"""
    client = _scoped_client(system, actor, client_id)
    records = system.ledger_service.records_for_client(client.id)
    result = client_to_dict(client)
    result["credit_records"] = [record_to_dict(r) for r in records]
    return result


@router.put("/clients/{client_id}")
async def update_client(
    client_id: str,
    request: UpdateClientRequest,
    actor: Actor = Depends(require_permission(Permission.MANAGE_CLIENTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Update client information, credit limit and debt"""
    client = _scoped_client(system, actor, client_id)

    changes = {}
    for name in ("name", "cpf", "email", "phone", "address"):
        value = getattr(request, name)
        if value is not None:
            changes[name] = value.strip() if name in ("name", "cpf", "email") else value
    if request.credit_limit is not None:
        changes["credit_limit"] = parse_amount(request.credit_limit)
    if request.current_debt is not None:
        changes["current_debt"] = parse_amount(request.current_debt)
    if request.payment_status is not None:
        changes["payment_status"] = PaymentStatus(request.payment_status)

    updated = system.ledger_service.update_client(client.id, changes, user_id=actor.id)
    return client_to_dict(updated)


@router.get("/stats")
async def get_stats(
    actor: Actor = Depends(require_permission(Permission.VIEW_CLIENTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Merchant dashboard counters"""
    stats = system.client_directory.get_stats(actor.merchant_id)
    return {
        "total_clients": stats.total_clients,
        "clients_in_debt": stats.clients_in_debt,
        "overdue_clients": stats.overdue_clients,
        "total_debt": MoneyModel.from_money(stats.total_debt).model_dump()
    }


@router.post("/clients/{client_id}/reminder", status_code=status.HTTP_201_CREATED)
async def send_reminder(
    client_id: str,
    request: ReminderRequest,
    actor: Actor = Depends(require_permission(Permission.SEND_NOTIFICATIONS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Send an overdue or upcoming payment reminder"""
    client = _scoped_client(system, actor, client_id)
    notification = system.notification_service.send_reminder(client.id, request.kind, user_id=actor.id)
    return notification_to_dict(notification)


@router.post("/clients/{client_id}/promotion", status_code=status.HTTP_201_CREATED)
async def send_promotion(
    client_id: str,
    actor: Actor = Depends(require_permission(Permission.SEND_NOTIFICATIONS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Send a promotion to a client in good standing"""
    client = _scoped_client(system, actor, client_id)
    notification = system.notification_service.send_promotion(client.id, user_id=actor.id)
    return notification_to_dict(notification)


@router.post("/reminders/upcoming")
async def send_upcoming_reminders(
    actor: Actor = Depends(require_permission(Permission.SEND_NOTIFICATIONS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Remind every client with a payment falling due soon"""
    sent = system.notification_service.send_upcoming_reminders(actor.merchant_id, user_id=actor.id)
    return {"notifications": [notification_to_dict(n) for n in sent], "total": len(sent)}


@router.get("/notifications")
async def list_notifications(
    client_id: Optional[str] = None,
    actor: Actor = Depends(require_permission(Permission.VIEW_CLIENTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Notifications sent by the merchant, newest first"""
    notifications = system.notification_service.get_notifications(
        client_id=client_id, merchant_id=actor.merchant_id
    )
    return {"notifications": [notification_to_dict(n) for n in notifications],
            "total": len(notifications)}


@router.post("/overdue/refresh")
async def refresh_overdue(
    actor: Actor = Depends(require_permission(Permission.MANAGE_CLIENTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Run the overdue sweep and report the merchant's clients whose status changed"""
    changed = system.ledger_service.refresh_overdue(merchant_id=actor.merchant_id)
    return {"clients": [client_to_dict(c) for c in changed], "total": len(changed)}
