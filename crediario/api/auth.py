"""
System container, actor tokens and authorization dependencies
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..access import AccessManager, Actor, Permission
from ..audit import AuditTrail
from ..clients import ClientDirectory
from ..config import CrediarioConfig, get_config
from ..errors import AuthenticationError
from ..ledger import CreditLedgerService
from ..merchants import MerchantDirectory
from ..notifications import NotificationService
from ..seed import seed_demo_data
from ..storage import InMemoryStorage


class CrediarioSystem:
    """Crediário service with all components initialized"""

    def __init__(self, config: Optional[CrediarioConfig] = None, seed: Optional[bool] = None):
        self.config = config or get_config()

        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.access_manager = AccessManager(self.storage, self.audit_trail)
        self.merchant_directory = MerchantDirectory(self.storage, self.audit_trail)
        self.client_directory = ClientDirectory(self.storage, self.audit_trail)
        self.ledger_service = CreditLedgerService(
            self.storage, self.client_directory, self.merchant_directory,
            self.audit_trail, default_due_days=self.config.default_due_days
        )
        self.notification_service = NotificationService(
            self.storage, self.client_directory, self.ledger_service,
            self.audit_trail, upcoming_window_days=self.config.upcoming_window_days
        )

        if seed is None:
            seed = self.config.seed_demo_data
        if seed:
            seed_demo_data(
                self,
                seed=self.config.seed_random_seed,
                merchants=self.config.seed_merchants,
                clients=self.config.seed_clients
            )


# Global system instance, built on first use
_system: Optional[CrediarioSystem] = None


def get_system() -> CrediarioSystem:
    global _system
    if _system is None:
        _system = CrediarioSystem()
    return _system


security = HTTPBearer(auto_error=False)


def issue_token(actor: Actor, config: CrediarioConfig) -> str:
    """JWT carrying the actor id and role between requests"""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": actor.id,
        "role": actor.role.code,
        "iat": now,
        "exp": now + timedelta(hours=config.jwt_expiry_hours)
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_token(token: str, config: CrediarioConfig) -> str:
    """User id from a token; raises AuthenticationError when invalid or expired"""
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return user_id


def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: CrediarioSystem = Depends(get_system)
) -> Optional[Actor]:
    """Actor behind the bearer token, or None when no token was sent"""
    if not credentials:
        return None
    user_id = decode_token(credentials.credentials, system.config)
    return system.access_manager.get_actor(user_id)


def get_current_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    """Dependency that requires an authenticated actor"""
    if actor is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return actor


def require_permission(permission: Permission):
    """Dependency factory for permission checking"""
    def check(actor: Actor = Depends(get_current_actor),
              system: CrediarioSystem = Depends(get_system)) -> Actor:
        return system.access_manager.authorize(actor, permission)
    return check
