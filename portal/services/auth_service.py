"""
Actor resolution and the role directory.

Provides:
- ``Actor`` — the explicit identity every workflow operation receives.
- ``get_roles`` / ``get_role_members`` — role directory lookups backed by
  the ``user_roles`` table.
- ``get_current_actor`` — FastAPI dependency that validates the Bearer JWT
  and builds the ``Actor`` from the role directory.
- ``require_role`` — dependency factory that enforces role-based access.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.models.usuario_rol import UsuarioRol
from portal.utils.constants import ROL_INACTIVO, ROL_SUPERADMIN
from portal.utils.security import verify_token

logger = logging.getLogger(__name__)

# Tokens are issued by the identity provider; ``tokenUrl`` only feeds Swagger.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


@dataclass(frozen=True)
class Actor:
    """The user performing an operation together with their role set."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)

    def has_role(self, *roles: str) -> bool:
        return not self.roles.isdisjoint(roles)

    @property
    def is_superadmin(self) -> bool:
        return ROL_SUPERADMIN in self.roles


# ---------------------------------------------------------------------------
# Role directory
# ---------------------------------------------------------------------------


def get_roles(db: Session, user_id: str) -> frozenset[str]:
    rows = db.query(UsuarioRol.role).filter(UsuarioRol.user_id == user_id).all()
    return frozenset(row.role for row in rows)


def get_role_members(db: Session, roles: Iterable[str]) -> set[str]:
    """Return the ids of every user holding at least one of *roles*."""
    roles = list(roles)
    if not roles:
        return set()
    rows = (
        db.query(UsuarioRol.user_id)
        .filter(UsuarioRol.role.in_(roles))
        .distinct()
        .all()
    )
    return {row.user_id for row in rows}


# ---------------------------------------------------------------------------
# FastAPI dependency — current actor
# ---------------------------------------------------------------------------


def get_current_actor(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> Actor:
    """Resolve the caller's identity from a JWT.

    The token only identifies the user (``sub``); roles are always read from
    the role directory so a revoked role takes effect immediately.

    Raises:
        HTTPException 401: If the token is missing, invalid or has no subject.
        HTTPException 403: If the user holds no role or only ``inactivo``.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No se pudo validar las credenciales",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = verify_token(token)
    except ValueError:
        raise credentials_exception

    user_id: str | None = payload.get("sub")
    if not user_id:
        raise credentials_exception

    roles = get_roles(db, str(user_id))
    if not roles - {ROL_INACTIVO}:
        logger.info("get_current_actor: user '%s' has no active role", user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Usuario inactivo o sin rol asignado",
        )

    return Actor(user_id=str(user_id), roles=roles)


# ---------------------------------------------------------------------------
# Role enforcement dependency factory
# ---------------------------------------------------------------------------


def require_role(*roles: str):
    """Return a dependency that restricts access to actors holding any of *roles*.

    .. code-block:: python

        @router.post("/broadcast")
        def broadcast(actor: Actor = Depends(require_role("superadmin"))):
            ...
    """
    allowed = frozenset(roles)

    def _check_role(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        if actor.roles.isdisjoint(allowed):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=(
                    f"Acceso denegado. Se requiere uno de los roles: "
                    f"{sorted(allowed)}"
                ),
            )
        return actor

    return _check_role
