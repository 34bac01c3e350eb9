"""
Session endpoints: login, current actor and route resolution
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .auth import (
    CrediarioSystem, get_system, issue_token,
    get_current_actor, get_optional_actor
)
from .schemas import LoginRequest
from ..access import Actor, SessionState, home_route, resolve_route


router = APIRouter()


@router.post("/login")
async def login(
    request: LoginRequest,
    system: CrediarioSystem = Depends(get_system)
):
    """Authenticate and return an actor token plus the home dashboard"""
    actor = system.access_manager.login(request.email, request.password)
    return {
        "token": issue_token(actor, system.config),
        "token_type": "bearer",
        "actor": actor.to_dict(),
        "home_route": home_route(actor).value
    }


@router.get("/me")
async def get_me(actor: Actor = Depends(get_current_actor)):
    """Current actor"""
    return {"actor": actor.to_dict(), "home_route": home_route(actor).value}


@router.get("/route")
async def get_route(
    path: str = "/",
    actor: Optional[Actor] = Depends(get_optional_actor)
):
    """What the caller sees when navigating to ``path``"""
    resolution = resolve_route(SessionState(actor=actor), path)
    return {
        "decision": resolution.decision.value,
        "route": resolution.route.value if resolution.route else None,
        "redirect_to": resolution.redirect_to.value if resolution.redirect_to else None,
        "renders_content": resolution.renders_content
    }
