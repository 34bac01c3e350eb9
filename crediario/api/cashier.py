"""
Cashier endpoints: point-of-sale lookup, payments and credit grants
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .auth import CrediarioSystem, get_system, require_permission
from .schemas import CreditRequest, PaymentRequest, client_to_dict, record_to_dict
from ..access import Actor, Permission
from ..ledger import LedgerResult


router = APIRouter()


def _ledger_response(result: LedgerResult):
    if not result.ok:
        return JSONResponse(
            status_code=422,
            content={"rejection": result.rejection.value, "detail": result.rejection.message}
        )
    response = {"client": client_to_dict(result.client)}
    if result.record is not None:
        response["credit_record"] = record_to_dict(result.record)
    if result.settled:
        response["settled_records"] = [record_to_dict(r) for r in result.settled]
    return response


@router.get("/search")
async def search_client(
    q: str = "",
    actor: Actor = Depends(require_permission(Permission.SEARCH_CLIENT)),
    system: CrediarioSystem = Depends(get_system)
):
    """Find one client by CPF or name"""
    client = system.client_directory.find_first(q, merchant_id=actor.merchant_id)
    if client is None:
        return {"found": False, "client": None, "message": "Cliente não encontrado"}
    return {"found": True, "client": client_to_dict(client)}


@router.post("/clients/{client_id}/payment")
async def record_payment(
    client_id: str,
    request: PaymentRequest,
    actor: Actor = Depends(require_permission(Permission.RECORD_PAYMENT)),
    system: CrediarioSystem = Depends(get_system)
):
    """Record a payment toward the client's debt"""
    client = system.client_directory.require_client(client_id)
    system.access_manager.require_scope(actor, client.merchant_id)

    result = system.ledger_service.record_payment(client.id, request.to_money(), user_id=actor.id)
    return _ledger_response(result)


@router.post("/clients/{client_id}/credit")
async def grant_credit(
    client_id: str,
    request: CreditRequest,
    actor: Actor = Depends(require_permission(Permission.GRANT_CREDIT)),
    system: CrediarioSystem = Depends(get_system)
):
    """Grant new credit within the client's available limit"""
    client = system.client_directory.require_client(client_id)
    system.access_manager.require_scope(actor, client.merchant_id)

    due_date = None
    if request.due_date:
        due_date = datetime.fromisoformat(request.due_date)
        if due_date.tzinfo is None:
            due_date = due_date.replace(tzinfo=timezone.utc)

    result = system.ledger_service.grant_credit(
        client.id, request.to_money(), request.description,
        due_date=due_date, user_id=actor.id
    )
    return _ledger_response(result)
