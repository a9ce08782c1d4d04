"""
Web Push delivery.

``dispatch`` sends one payload to the subscriptions of a set of users.
Each subscription gets exactly one independent attempt, run concurrently
in a bounded thread pool; only the HTTP request happens in the workers.

Outcomes per attempt
--------------------
- 200 / 201  → sent
- 404 / 410  → the endpoint is gone: counted as failed and the subscription
  row is deleted (by id) after the batch
- anything else (other status, timeout, bad keys) → failed, row kept

Nothing is retried and ``dispatch`` never raises.  Without VAPID keys no
request is made and every subscription counts as failed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from portal.config import get_settings
from portal.models.push_subscription import PushSubscription
from portal.schemas.notificacion import DispatchResult, PushPayload
from portal.services import subscription_service
from portal.utils.constants import PUSH_STATUS_GONE, PUSH_STATUS_OK

logger = logging.getLogger(__name__)

# (subscription_info, json_data) -> HTTP status code of the push service
Sender = Callable[[dict[str, Any], str], int]

_SENT = "sent"
_GONE = "gone"
_FAILED = "failed"


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


def vapid_configured() -> bool:
    settings = get_settings()
    return bool(settings.VAPID_PUBLIC_KEY and settings.VAPID_PRIVATE_KEY)


def send_webpush(subscription_info: dict[str, Any], data: str) -> int:
    """Deliver one encrypted, VAPID-signed push and return the status code.

    Error responses from the push service are returned as their status code;
    transport errors (timeouts, connection failures) propagate.
    """
    settings = get_settings()
    try:
        response = webpush(
            subscription_info=subscription_info,
            data=data,
            vapid_private_key=settings.VAPID_PRIVATE_KEY,
            # pywebpush fills in "aud" and "exp" on this dict
            vapid_claims={"sub": settings.VAPID_SUBJECT},
            ttl=settings.PUSH_TTL_SECONDS,
            timeout=settings.PUSH_TIMEOUT_SECONDS,
        )
    except WebPushException as exc:
        if exc.response is not None:
            return exc.response.status_code
        raise
    return response.status_code


def _subscription_info(sub: PushSubscription) -> dict[str, Any]:
    return {"endpoint": sub.endpoint, "keys": {"p256dh": sub.p256dh, "auth": sub.auth}}


def _attempt(sender: Sender, sub_id: int, info: dict[str, Any], data: str) -> str:
    try:
        status_code = sender(info, data)
    except Exception:  # noqa: BLE001 - one bad endpoint must not abort the batch
        logger.warning("push: delivery error for subscription id=%d", sub_id, exc_info=True)
        return _FAILED

    if status_code in PUSH_STATUS_OK:
        return _SENT
    if status_code in PUSH_STATUS_GONE:
        logger.info("push: subscription id=%d gone (HTTP %d)", sub_id, status_code)
        return _GONE
    logger.warning("push: subscription id=%d rejected (HTTP %d)", sub_id, status_code)
    return _FAILED


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------


def dispatch_to_subscriptions(
    db: Session,
    subscriptions: list[PushSubscription],
    payload: PushPayload,
    sender: Sender | None = None,
) -> DispatchResult:
    """Deliver *payload* to each of *subscriptions* once.

    Args:
        db: Session used to prune expired subscriptions after the batch.
        subscriptions: Rows to deliver to.
        payload: Push content.
        sender: Transport override; defaults to ``send_webpush``.

    Returns:
        Counts of sent, failed and expired deliveries.
    """
    if not subscriptions:
        return DispatchResult()

    if sender is None:
        if not vapid_configured():
            logger.warning(
                "push: VAPID keys not configured; %d deliveries skipped", len(subscriptions)
            )
            return DispatchResult(failed=len(subscriptions))
        sender = send_webpush

    data = json.dumps(payload.model_dump(exclude_none=True), ensure_ascii=False)
    # Detach plain values so workers never touch ORM instances
    jobs = [(sub.id, _subscription_info(sub)) for sub in subscriptions]
    max_workers = max(1, min(len(jobs), get_settings().PUSH_MAX_WORKERS))

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="webpush") as pool:
        futures = [
            (sub_id, pool.submit(_attempt, sender, sub_id, info, data))
            for sub_id, info in jobs
        ]
        outcomes = [(sub_id, future.result()) for sub_id, future in futures]

    sent = sum(1 for _, outcome in outcomes if outcome == _SENT)
    gone = [sub_id for sub_id, outcome in outcomes if outcome == _GONE]
    failed = len(outcomes) - sent

    if gone:
        try:
            subscription_service.delete_expired(db, gone)
        except Exception:  # noqa: BLE001
            db.rollback()
            logger.exception("push: failed to prune %d expired subscriptions", len(gone))

    logger.info(
        "push: dispatched tag=%s sent=%d failed=%d expired=%d",
        payload.tag, sent, failed, len(gone),
    )
    return DispatchResult(sent=sent, failed=failed, expired=len(gone))


def dispatch(
    db: Session,
    user_ids: Iterable[str],
    payload: PushPayload,
    sender: Sender | None = None,
) -> DispatchResult:
    """Deliver *payload* to every subscription owned by *user_ids*.

    Users without a subscription are skipped silently.
    """
    user_ids = set(user_ids)
    subscriptions = subscription_service.get_for_users(db, user_ids)
    if not subscriptions:
        logger.debug("push: none of %d recipients is subscribed", len(user_ids))
        return DispatchResult()
    return dispatch_to_subscriptions(db, subscriptions, payload, sender)
