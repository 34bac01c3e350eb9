"""
Domain exceptions.

Ledger rejections are returned as values (see ``crediario.ledger``); the
exceptions here cover lookups, access and validation failures.
"""


class CrediarioError(Exception):
    """Base class for all crediário errors"""


class NotFoundError(CrediarioError):
    """Requested merchant, client or record does not exist"""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ValidationError(CrediarioError, ValueError):
    """Invalid field values on create/update"""


class AuthenticationError(CrediarioError):
    """Login failed or actor token invalid"""


class AccessDeniedError(CrediarioError):
    """Actor role or merchant scope does not allow the operation"""


class ConfirmationRequiredError(CrediarioError):
    """Irreversible operation attempted without explicit confirmation"""
