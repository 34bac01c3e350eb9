"""
Access Control Module

Roles, permissions, dashboard routes and login for the three kinds of actor:
super-administrator, merchant (comerciante) and cashier (caixa).

Each role is a closed enum member carrying its home route and its permission
set, so every check is a lookup on the member rather than a string switch.
Route resolution follows a small state machine:

    Loading -> {Authenticated -> role dashboard, Unauthenticated -> login}
    Authenticated -> {Authorized -> render, Unauthorized -> denied}

Nothing renders while the session is loading, and a denied route never
renders protected content.
"""

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from .audit import AuditEventType, AuditTrail
from .errors import AccessDeniedError, AuthenticationError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, parse_datetime


class Permission(Enum):
    """Operations an actor may invoke"""
    # Merchant directory
    VIEW_MERCHANTS = "view_merchants"
    MANAGE_MERCHANTS = "manage_merchants"

    # Client directory
    VIEW_CLIENTS = "view_clients"
    MANAGE_CLIENTS = "manage_clients"
    SEND_NOTIFICATIONS = "send_notifications"

    # Point of sale
    SEARCH_CLIENT = "search_client"
    RECORD_PAYMENT = "record_payment"
    GRANT_CREDIT = "grant_credit"


class Route(Enum):
    """Dashboard routes"""
    LOGIN = "/login"
    ADMIN_DASHBOARD = "/admin"
    MERCHANT_DASHBOARD = "/merchant"
    CASHIER_DASHBOARD = "/cashier"

    @property
    def allowed_roles(self) -> FrozenSet['Role']:
        """Roles permitted to render this route"""
        return ROUTE_ROLES.get(self, frozenset())

    @classmethod
    def from_path(cls, path: str) -> Optional['Route']:
        normalized = "/" + path.strip().strip("/")
        for route in cls:
            if route.value == normalized:
                return route
        return None


class Role(Enum):
    """Actor roles with their home route and permissions"""
    SUPERADMIN = (
        "superadmin",
        Route.ADMIN_DASHBOARD,
        frozenset({Permission.VIEW_MERCHANTS, Permission.MANAGE_MERCHANTS}),
    )
    COMERCIANTE = (
        "comerciante",
        Route.MERCHANT_DASHBOARD,
        frozenset({Permission.VIEW_CLIENTS, Permission.MANAGE_CLIENTS,
                   Permission.SEND_NOTIFICATIONS}),
    )
    CAIXA = (
        "caixa",
        Route.CASHIER_DASHBOARD,
        frozenset({Permission.SEARCH_CLIENT, Permission.RECORD_PAYMENT,
                   Permission.GRANT_CREDIT}),
    )

    def __init__(self, code: str, home_route: Route, permissions: FrozenSet[Permission]):
        self.code = code
        self.home_route = home_route
        self.permissions = permissions

    @classmethod
    def from_code(cls, code: str) -> 'Role':
        for role in cls:
            if role.code == code:
                return role
        raise ValueError(f"Unknown role '{code}'")


ROUTE_ROLES: Dict[Route, FrozenSet[Role]] = {
    Route.ADMIN_DASHBOARD: frozenset({Role.SUPERADMIN}),
    Route.MERCHANT_DASHBOARD: frozenset({Role.COMERCIANTE}),
    Route.CASHIER_DASHBOARD: frozenset({Role.CAIXA}),
}


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as seen by every operation"""
    id: str
    email: str
    name: str
    role: Role
    merchant_id: Optional[str] = None

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.role.permissions

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.code,
            "merchant_id": self.merchant_id,
        }


@dataclass
class User(StorageRecord):
    """Stored user with credentials"""
    email: str
    name: str
    role: Role
    merchant_id: Optional[str] = None
    password_hash: Optional[str] = None
    password_salt: Optional[str] = None
    is_active: bool = True
    last_login: Optional[datetime] = None

    def to_actor(self) -> Actor:
        return Actor(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role,
            merchant_id=self.merchant_id,
        )

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['role'] = self.role.code
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> 'User':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            email=data['email'],
            name=data['name'],
            role=Role.from_code(data['role']),
            merchant_id=data.get('merchant_id'),
            password_hash=data.get('password_hash'),
            password_salt=data.get('password_salt'),
            is_active=data.get('is_active', True),
            last_login=parse_datetime(data.get('last_login')),
        )


@dataclass(frozen=True)
class SessionState:
    """What the route resolver knows about the caller"""
    actor: Optional[Actor] = None
    loading: bool = False


class RouteDecision(Enum):
    """Terminal and transient outcomes of route resolution"""
    LOADING = "loading"
    LOGIN = "login"
    REDIRECT = "redirect"
    DENIED = "denied"
    RENDER = "render"


@dataclass(frozen=True)
class RouteResolution:
    decision: RouteDecision
    route: Optional[Route] = None
    redirect_to: Optional[Route] = None

    @property
    def renders_content(self) -> bool:
        return self.decision == RouteDecision.RENDER


def home_route(actor: Actor) -> Route:
    """Dashboard an actor lands on after login or on an unknown path"""
    return actor.role.home_route


def resolve_route(session: SessionState, path: str) -> RouteResolution:
    """
    Decide what a caller sees when navigating to ``path``.

    Unknown paths and "/" redirect to the actor's home dashboard.
    """
    if session.loading:
        return RouteResolution(RouteDecision.LOADING)

    if session.actor is None:
        return RouteResolution(RouteDecision.LOGIN, route=Route.LOGIN)

    actor = session.actor
    route = Route.from_path(path)
    if route is None or route == Route.LOGIN:
        return RouteResolution(RouteDecision.REDIRECT, redirect_to=home_route(actor))

    if actor.role in route.allowed_roles:
        return RouteResolution(RouteDecision.RENDER, route=route)
    return RouteResolution(RouteDecision.DENIED, route=route)


class AccessManager:
    """User directory, login and authorization checks"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "users"
        self.logger = get_logger("crediario.access")

    # User management

    def create_user(self, email: str, password: str, name: str, role: Role,
                    merchant_id: Optional[str] = None,
                    user_id: Optional[str] = None) -> User:
        """Create a user; merchants and cashiers must be bound to a merchant"""
        email = email.strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required")
        if role != Role.SUPERADMIN and not merchant_id:
            raise ValidationError(f"Role {role.code} requires a merchant_id")
        if self.get_user_by_email(email):
            raise ValidationError(f"User {email} already exists")

        now = datetime.now(timezone.utc)
        user = User(
            id=user_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            email=email,
            name=name,
            role=role,
            merchant_id=merchant_id,
        )
        self._set_password(user, password)
        self.storage.save(self.table_name, user.id, user.to_dict())
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.table_name, user_id)
        if not data:
            return None
        return User.from_dict(data)

    def get_user_by_email(self, email: str) -> Optional[User]:
        users = self.storage.find(self.table_name, {'email': email.strip().lower()})
        if not users:
            return None
        return User.from_dict(users[0])

    def list_users(self) -> List[User]:
        return [User.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def get_actor(self, user_id: str) -> Actor:
        """Actor for an active user id"""
        user = self.get_user(user_id)
        if not user or not user.is_active:
            raise AuthenticationError("Unknown or inactive user")
        return user.to_actor()

    # Authentication

    def login(self, email: str, password: str) -> Actor:
        """
        Check credentials and return the actor.

        Raises:
            AuthenticationError: On unknown email, inactive user or wrong password
        """
        user = self.get_user_by_email(email)

        if not user or not user.is_active or not self._verify_password(user, password):
            self.audit_trail.log_event(
                AuditEventType.LOGIN_FAILED, 'user',
                user.id if user else email.strip().lower(),
                {'email': email}
            )
            log_action(self.logger, "warning", "Login failed",
                       action="login", resource=f"user:{email}")
            raise AuthenticationError("Invalid credentials")

        user.last_login = datetime.now(timezone.utc)
        user.updated_at = user.last_login
        self.storage.save(self.table_name, user.id, user.to_dict())

        self.audit_trail.log_event(
            AuditEventType.LOGIN_SUCCESS, 'user', user.id,
            {'role': user.role.code}, user_id=user.id
        )
        log_action(self.logger, "info", "Login succeeded", user_id=user.id,
                   action="login", resource=f"user:{user.id}")
        return user.to_actor()

    # Authorization

    def authorize(self, actor: Optional[Actor], permission: Permission) -> Actor:
        """
        Require ``permission`` from ``actor``.

        Raises:
            AccessDeniedError: When no actor is present or its role lacks the permission
        """
        if actor is None or not actor.has_permission(permission):
            self._deny(actor, permission.value)
        return actor

    def require_scope(self, actor: Actor, merchant_id: str) -> None:
        """
        Merchants and cashiers only reach their own merchant's data.

        Raises:
            AccessDeniedError: When the actor is bound to a different merchant
        """
        if actor.role == Role.SUPERADMIN:
            return
        if actor.merchant_id != merchant_id:
            self._deny(actor, f"merchant:{merchant_id}")

    def _deny(self, actor: Optional[Actor], target: str) -> None:
        actor_id = actor.id if actor else None
        self.audit_trail.log_event(
            AuditEventType.ACCESS_DENIED, 'user', actor_id or 'anonymous',
            {'target': target, 'role': actor.role.code if actor else None},
            user_id=actor_id
        )
        log_action(self.logger, "warning", "Access denied", user_id=actor_id,
                   action="authorize", resource=target)
        raise AccessDeniedError(f"Access denied to {target}")

    # Password helpers

    def _hash_password(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _set_password(self, user: User, password: str) -> None:
        user.password_salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(password, user.password_salt)

    def _verify_password(self, user: User, password: str) -> bool:
        if not user.password_hash or not user.password_salt:
            return False
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)
