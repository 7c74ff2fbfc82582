import logging

from django.db import transaction
from django.dispatch import Signal

from .models import Order, OutboxEvent

logger = logging.getLogger("shop")

ORDER_CREATED = "OrderCreated"
ORDER_STATUS_CHANGED = "OrderStatusChanged"
ORDER_UPDATED = "OrderUpdated"
ORDER_DELETED = "OrderDeleted"

# sent once per outbox row, only after the writing transaction commits
order_event_committed = Signal()


def record_order_event(order: Order, event_type: str, **payload) -> OutboxEvent:
    """Write an outbox row inside the caller's transaction and publish it after commit."""
    event = OutboxEvent.objects.create(
        aggregate_type="Order",
        aggregate_id=str(order.pk),
        event_type=event_type,
        payload={"order_id": str(order.pk), "order_number": order.order_number, **payload},
    )
    # the order is already committed when this runs; a publishing failure must not reach the caller
    transaction.on_commit(lambda: publish_event(event.pk), robust=True)
    return event


def publish_event(event_id) -> None:
    """Deliver a pending outbox row to receivers. Failed rows stay ``failed`` for a later redelivery."""
    event = OutboxEvent.objects.filter(pk=event_id, status="pending").first()
    if event is None:
        return

    failures = [
        (receiver, result)
        for receiver, result in order_event_committed.send_robust(sender=OutboxEvent, event=event)
        if isinstance(result, Exception)
    ]
    for receiver, exc in failures:
        logger.error(
            "event receiver failed: %s %s receiver=%r",
            event.event_type,
            event.aggregate_id,
            receiver,
            exc_info=(type(exc), exc, exc.__traceback__),
        )

    new_status = "failed" if failures else "sent"
    OutboxEvent.objects.filter(pk=event.pk, status="pending").update(
        status=new_status, attempts=event.attempts + 1
    )
    if not failures:
        logger.info("event published: %s %s", event.event_type, event.aggregate_id)


def redeliver_failed_events() -> int:
    """Put ``failed`` rows back to ``pending`` and publish them again. Returns how many were retried."""
    ids = list(OutboxEvent.objects.filter(status="failed").values_list("pk", flat=True))
    for event_id in ids:
        if OutboxEvent.objects.filter(pk=event_id, status="failed").update(status="pending"):
            publish_event(event_id)
    if ids:
        logger.info("redelivered %d failed events", len(ids))
    return len(ids)
