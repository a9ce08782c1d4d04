"""
Push subscriptions — service layer.

A user has at most one subscription: registering from a new browser
replaces the previous endpoint, so only the latest device receives pushes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.models.push_subscription import PushSubscription
from portal.schemas.notificacion import SuscripcionCreate

logger = logging.getLogger(__name__)


def upsert(db: Session, user_id: str, data: SuscripcionCreate) -> PushSubscription:
    """Register or replace the caller's push endpoint.

    A replacement gets a new row id, so pruning of the old endpoint after an
    in-flight dispatch cannot remove it.  If a concurrent registration for
    the same user wins the ``user_id`` unique constraint, the replacement is
    attempted once more.

    Raises:
        HTTPException 409: If the second attempt also loses the race.
    """
    for intento in range(2):
        replaced = (
            db.query(PushSubscription)
            .filter(PushSubscription.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.flush()

        sub = PushSubscription(
            user_id=user_id,
            endpoint=data.endpoint,
            p256dh=data.keys.p256dh,
            auth=data.keys.auth,
        )
        db.add(sub)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                "subscription: concurrent registration for user=%s (attempt %d)",
                user_id, intento + 1,
            )
            continue

        db.refresh(sub)
        logger.info(
            "subscription %s: id=%d user=%s",
            "replaced" if replaced else "created", sub.id, user_id,
        )
        return sub

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Otra suscripción se registró al mismo tiempo. Intente nuevamente.",
    )


def delete_own(db: Session, user_id: str) -> bool:
    """Remove the caller's subscription; returns False when there was none."""
    deleted = (
        db.query(PushSubscription)
        .filter(PushSubscription.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("subscription removed: user=%s", user_id)
    return bool(deleted)


def list_all(db: Session) -> list[PushSubscription]:
    return db.query(PushSubscription).order_by(PushSubscription.created_at.desc()).all()


def delete_by_id(db: Session, subscription_id: int) -> None:
    """Delete any subscription by id (admin).

    Raises:
        HTTPException 404: If the subscription does not exist.
    """
    sub = db.query(PushSubscription).filter(PushSubscription.id == subscription_id).first()
    if sub is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Suscripción con id={subscription_id} no encontrada.",
        )
    db.delete(sub)
    db.commit()
    logger.info("subscription id=%d deleted by admin (user=%s)", subscription_id, sub.user_id)


def get_for_users(db: Session, user_ids: Iterable[str]) -> list[PushSubscription]:
    user_ids = list(user_ids)
    if not user_ids:
        return []
    return db.query(PushSubscription).filter(PushSubscription.user_id.in_(user_ids)).all()


def delete_expired(db: Session, subscription_ids: Iterable[int]) -> int:
    """Delete subscriptions the push service reported as gone.

    Rows are matched by primary key, so a user who re-subscribed meanwhile
    keeps the new row.
    """
    subscription_ids = list(subscription_ids)
    if not subscription_ids:
        return 0
    deleted = (
        db.query(PushSubscription)
        .filter(PushSubscription.id.in_(subscription_ids))
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("subscriptions: pruned %d expired rows", deleted)
    return deleted
