from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from integration_service.db.models import IdempotencyKey, WebhookDelivery


async def get_idempotent_response(db: AsyncSession, key: str, endpoint: str):
    result = await db.execute(
        select(IdempotencyKey).where(
            IdempotencyKey.key == key,
            IdempotencyKey.endpoint == endpoint,
        )
    )
    return result.scalar_one_or_none()


async def save_idempotent_response(
    db: AsyncSession,
    key: str,
    endpoint: str,
    response_status: int,
    response_body: dict,
):
    row = IdempotencyKey(
        key=key,
        endpoint=endpoint,
        response_status=response_status,
        response_body=response_body,
    )
    db.add(row)
    await db.flush()
    return row


async def get_webhook_delivery(db: AsyncSession, delivery_id: str):
    result = await db.execute(select(WebhookDelivery).where(WebhookDelivery.delivery_id == delivery_id))
    return result.scalar_one_or_none()


async def claim_webhook_delivery(
    db: AsyncSession,
    delivery_id: str,
    event: str | None,
    action: str | None,
    pull_request_number: int | None,
):
    """Insert the delivery row before it is dispatched.

    Returns None when the unique delivery id is already held, i.e. a concurrent
    request for the same delivery got there first. The row is rolled back with
    the request transaction if dispatch fails, so a redelivery can retry.
    """
    row = WebhookDelivery(
        delivery_id=delivery_id,
        event=event,
        action=action,
        pull_request_number=pull_request_number,
        outcome="processing",
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return None
    return row
