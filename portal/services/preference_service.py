"""
Notification preferences — service layer.

Each user has at most one ``NotificationPreference`` row, created lazily
with every switch enabled the first time the user reads or edits it.

``filter_recipients`` is the preference stage of the notification pipeline:
it expands role targets into user ids and drops users who switched off the
category of the trámite.  Users without a row are kept, and a failed lookup
keeps everybody.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.models.notification_preference import NotificationPreference
from portal.schemas.notificacion import PreferenciasUpdate
from portal.services.auth_service import get_role_members
from portal.utils.constants import TIPO_REPOSICION, TIPO_REQUISICION

logger = logging.getLogger(__name__)

_COLUMNA_POR_TIPO = {
    TIPO_REQUISICION: NotificationPreference.notify_requisiciones,
    TIPO_REPOSICION: NotificationPreference.notify_reposiciones,
}


def get_or_create(db: Session, user_id: str) -> NotificationPreference:
    """Return the caller's preferences, inserting the defaults when missing."""
    pref = (
        db.query(NotificationPreference)
        .filter(NotificationPreference.user_id == user_id)
        .first()
    )
    if pref is not None:
        return pref

    pref = NotificationPreference(
        user_id=user_id,
        notify_requisiciones=True,
        notify_reposiciones=True,
    )
    db.add(pref)
    db.commit()
    db.refresh(pref)
    logger.info("preferences: created defaults for user=%s", user_id)
    return pref


def update(db: Session, user_id: str, data: PreferenciasUpdate) -> NotificationPreference:
    """Apply a partial update to the caller's preferences."""
    pref = get_or_create(db, user_id)
    changes = data.model_dump(exclude_none=True)
    for field, value in changes.items():
        setattr(pref, field, value)
    db.commit()
    db.refresh(pref)
    logger.info("preferences: user=%s updated %s", user_id, changes)
    return pref


def filter_recipients(
    db: Session,
    tipo: str,
    user_ids: Iterable[str],
    roles: Iterable[str] = (),
) -> set[str]:
    """Resolve the final recipient ids for a trámite notification.

    Args:
        db: Active SQLAlchemy session.
        tipo: "requisiciones" or "reposiciones"; selects the preference flag.
        user_ids: Directly targeted users.
        roles: Roles whose members are also targeted.

    Returns:
        Target ids minus users whose flag for *tipo* is false.
    """
    candidatos = {uid for uid in user_ids if uid}
    roles = list(roles)
    if roles:
        candidatos |= get_role_members(db, roles)
    if not candidatos:
        return set()

    columna = _COLUMNA_POR_TIPO.get(tipo)
    if columna is None:
        return candidatos

    try:
        rows = (
            db.query(NotificationPreference.user_id)
            .filter(
                NotificationPreference.user_id.in_(candidatos),
                columna.is_(False),
            )
            .all()
        )
    except SQLAlchemyError:
        logger.warning(
            "preferences: lookup failed for %d users, notifying all", len(candidatos),
            exc_info=True,
        )
        db.rollback()
        return candidatos

    excluidos = {row.user_id for row in rows}
    if excluidos:
        logger.debug("preferences: %d users opted out of %s", len(excluidos), tipo)
    return candidatos - excluidos
