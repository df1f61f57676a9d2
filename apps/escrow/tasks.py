import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from apps.core.tasks import BaseTaskWithRetry
from apps.orders.models import Order, OrderStatus

from .models import EscrowHold, EscrowHoldStatus
from .services import EscrowHoldService

logger = logging.getLogger("escrow_tasks")


@shared_task(bind=True, base=BaseTaskWithRetry)
def release_due_escrow_holds(self):
    """
    Periodic sweep: release every pending hold whose window has passed.
    A failure on one hold is logged and left for the next sweep.
    """
    start_time = timezone.now()
    batch_size = settings.ESCROW_SETTINGS.get("RELEASE_SWEEP_BATCH_SIZE", 200)

    due_holds = list(
        EscrowHold.objects.filter(
            status=EscrowHoldStatus.PENDING, release_at__lte=start_time
        ).order_by("release_at")[:batch_size]
    )

    released = 0
    failed = 0
    for hold in due_holds:
        try:
            current = EscrowHoldService.auto_release(hold, start_time)
        except Exception as e:
            failed += 1
            logger.error(f"Auto-release failed for hold {hold.pk}: {str(e)}")
            continue
        if current.status == EscrowHoldStatus.RELEASED:
            released += 1

    duration = (timezone.now() - start_time).total_seconds() * 1000
    logger.info(
        f"Release sweep: {len(due_holds)} due, {released} released, "
        f"{failed} failed in {duration:.2f}ms"
    )
    return {"due": len(due_holds), "released": released, "failed": failed}


@shared_task(bind=True, base=BaseTaskWithRetry)
def auto_release_escrow_hold(self, hold_id):
    """Release a single hold if it is due; a no-op otherwise."""
    try:
        hold = EscrowHold.objects.get(pk=hold_id)
    except EscrowHold.DoesNotExist:
        logger.error(f"Escrow hold {hold_id} not found")
        return None

    current = EscrowHoldService.auto_release(hold)
    return current.status


@shared_task(bind=True, base=BaseTaskWithRetry)
def create_escrow_hold_for_order(self, order_id):
    """Deferred hold creation after delivery confirmation could not create it."""
    try:
        order = Order.objects.get(pk=order_id)
    except Order.DoesNotExist:
        logger.error(f"Order {order_id} not found for hold creation")
        return None

    if order.status != OrderStatus.DELIVERED or order.delivery_confirmed_at is None:
        logger.info(f"Order {order_id} is {order.status}, no hold needed")
        return None

    hold = EscrowHoldService.start_hold(order, order.delivery_confirmed_at)
    return str(hold.pk)


@shared_task(bind=True, base=BaseTaskWithRetry)
def repair_missing_escrow_holds(self):
    """Periodic sweep: delivered orders that never got their hold."""
    lookback = settings.ESCROW_SETTINGS.get("REPAIR_LOOKBACK_DAYS", 14)
    cutoff = timezone.now() - timedelta(days=lookback)

    orphaned = Order.objects.filter(
        status=OrderStatus.DELIVERED,
        delivery_confirmed_at__isnull=False,
        delivery_confirmed_at__gte=cutoff,
        escrow_hold__isnull=True,
    )

    repaired = 0
    for order in orphaned:
        try:
            EscrowHoldService.start_hold(order, order.delivery_confirmed_at)
            repaired += 1
        except Exception as e:
            logger.error(f"Hold repair failed for order {order.pk}: {str(e)}")

    if repaired:
        logger.warning(f"Repaired {repaired} missing escrow holds")
    return repaired
