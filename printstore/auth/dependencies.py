import uuid
from dataclasses import dataclass
from typing import FrozenSet, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from printstore.auth.constants import ROLE_PERMISSIONS, Permission, Role, logger
from printstore.auth.repository import userid_by_public_id
from printstore.common.custom_exceptions import Forbidden, Unauthorized
from printstore.config.settings import config_settings
from printstore.db.dependencies import get_session


@dataclass(frozen=True)
class RequestIdentity:
    """Caller identity, resolved once per request and passed into services."""
    user_id: int
    user_public_id: uuid.UUID
    roles: FrozenSet[Role]

    def has_permission(self, perm: Permission) -> bool:
        return any(perm in ROLE_PERMISSIONS[r] for r in self.roles)


class Authentication(HTTPBearer):
    def __init__(self, auto_error=False):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request: Request) -> dict:
        auth_creds = await super().__call__(request)
        if auth_creds is None:
            raise Unauthorized("missing bearer token")

        decoded_token = self.decode_token(auth_creds.credentials)
        if not decoded_token:
            raise Unauthorized("invalid or expired token provided")

        return decoded_token

    def decode_token(self, token: str) -> Optional[dict]:
        """To verify the signature , expiration and user claims of token"""
        try:
            return jwt.decode(
                token,
                key=config_settings.JWT_SECRET,
                algorithms=[config_settings.JWT_ALGO],
            )
        except JWTError:
            return None


def parse_roles(raw) -> FrozenSet[Role]:
    roles = set()
    for name in raw or []:
        try:
            roles.add(Role(name))
        except ValueError:
            # unknown role names grant nothing
            logger.debug("auth.unknown_role", extra={"role": name})
    return frozenset(roles)


async def current_identity(claims: dict = Depends(Authentication()),
                           session: AsyncSession = Depends(get_session)) -> RequestIdentity:
    sub = claims.get("sub")
    try:
        user_pid = uuid.UUID(str(sub))
    except (TypeError, ValueError):
        raise Unauthorized("token subject is not a user id")

    user_id = await userid_by_public_id(session, user_pid)
    if user_id is None:
        logger.warning("auth.identity.user_not_found", extra={"user_public_id": str(user_pid)})
        raise Unauthorized("user not found")

    return RequestIdentity(user_id=user_id, user_public_id=user_pid, roles=parse_roles(claims.get("roles")))


def require_permission(perm: Permission):
    async def _checker(identity: RequestIdentity = Depends(current_identity)) -> RequestIdentity:
        if not identity.has_permission(perm):
            logger.info("auth.permission_denied", extra={"permission": perm.value,
                                                         "user_public_id": str(identity.user_public_id)})
            raise Forbidden(f"missing permission {perm.value}")
        return identity

    return _checker
