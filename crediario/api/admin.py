"""
Administrator endpoints: merchant directory and platform counters
"""

from fastapi import APIRouter, Depends, status

from .auth import CrediarioSystem, get_system, require_permission
from .schemas import (
    CreateMerchantRequest,
    UpdateMerchantRequest,
    MoneyModel,
    merchant_to_dict
)
from ..access import Actor, Permission
from ..merchants import MerchantStatus


router = APIRouter()


@router.get("/merchants")
async def list_merchants(
    q: str = "",
    actor: Actor = Depends(require_permission(Permission.VIEW_MERCHANTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """List merchants, filtered by name or email"""
    merchants = system.merchant_directory.search_merchants(q)
    return {"merchants": [merchant_to_dict(m) for m in merchants], "total": len(merchants)}


@router.post("/merchants", status_code=status.HTTP_201_CREATED)
async def create_merchant(
    request: CreateMerchantRequest,
    actor: Actor = Depends(require_permission(Permission.MANAGE_MERCHANTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Create a new merchant"""
    merchant = system.merchant_directory.create_merchant(
        name=request.name,
        email=request.email,
        phone=request.phone,
        address=request.address,
        status=MerchantStatus(request.status),
        user_id=actor.id
    )
    return merchant_to_dict(merchant)


@router.get("/merchants/{merchant_id}")
async def get_merchant(
    merchant_id: str,
    actor: Actor = Depends(require_permission(Permission.VIEW_MERCHANTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Get merchant by ID"""
    return merchant_to_dict(system.merchant_directory.require_merchant(merchant_id))


@router.put("/merchants/{merchant_id}")
async def update_merchant(
    merchant_id: str,
    request: UpdateMerchantRequest,
    actor: Actor = Depends(require_permission(Permission.MANAGE_MERCHANTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Update merchant information"""
    merchant = system.merchant_directory.update_merchant(
        merchant_id,
        name=request.name,
        email=request.email,
        phone=request.phone,
        address=request.address,
        status=MerchantStatus(request.status) if request.status else None,
        user_id=actor.id
    )
    return merchant_to_dict(merchant)


@router.delete("/merchants/{merchant_id}")
async def delete_merchant(
    merchant_id: str,
    confirm: bool = False,
    actor: Actor = Depends(require_permission(Permission.MANAGE_MERCHANTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Permanently delete a merchant; requires ?confirm=true"""
    system.merchant_directory.delete_merchant(merchant_id, confirm=confirm, user_id=actor.id)
    return {"merchant_id": merchant_id, "message": "Merchant deleted"}


@router.get("/stats")
async def get_stats(
    actor: Actor = Depends(require_permission(Permission.VIEW_MERCHANTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Administrator dashboard counters"""
    stats = system.merchant_directory.get_stats()
    return {
        "total_merchants": stats.total_merchants,
        "active_merchants": stats.active_merchants,
        "total_clients": stats.total_clients,
        "total_debt": MoneyModel.from_money(stats.total_debt).model_dump()
    }


@router.get("/audit/verify")
async def verify_audit_trail(
    actor: Actor = Depends(require_permission(Permission.MANAGE_MERCHANTS)),
    system: CrediarioSystem = Depends(get_system)
):
    """Check the audit hash chain"""
    return system.audit_trail.verify_integrity()
