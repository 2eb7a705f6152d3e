"""
LOGISTICS App - Celery Tasks

Asynchronous delivery code dispatch and its periodic catch-up.
"""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name='logistics.tasks.dispatch_delivery_codes',
    max_retries=3,
    default_retry_delay=30
)
def dispatch_delivery_codes(self, order_id: str, driver_id: str):
    """
    Send the validation codes of an accepted order (async).

    Precondition failures (unknown order, wrong driver) are final and not
    retried. Per-leg SMS failures are reported in the result and picked up
    later by retry_pending_code_dispatch.

    Args:
        order_id: Order UUID string
        driver_id: Assigned driver UUID string
    """
    from core.models import User
    from logistics.services.dispatch import dispatch_codes, DispatchError

    try:
        driver = User.objects.get(pk=driver_id)
    except User.DoesNotExist:
        logger.error(f"[DISPATCH TASK] Driver {driver_id} not found")
        return {'success': False, 'error': 'Entregador não encontrado'}

    try:
        result = dispatch_codes(order_id, driver)
    except DispatchError as e:
        logger.warning(f"[DISPATCH TASK] Order {str(order_id)[:8]} refused: {e}")
        return {'success': False, 'error': str(e)}
    except Exception as e:
        logger.error(f"[DISPATCH TASK] Error dispatching order {str(order_id)[:8]}: {e}")
        raise self.retry(exc=e, countdown=30 * (2 ** self.request.retries))

    return result.to_dict()


@shared_task(name='logistics.tasks.retry_pending_code_dispatch')
def retry_pending_code_dispatch():
    """
    Re-queue dispatch for accepted orders with legs still missing their SMS.

    Runs every 10 minutes.
    """
    from logistics.services.dispatch import find_pending_dispatch_orders

    queued = 0
    for order in find_pending_dispatch_orders():
        dispatch_delivery_codes.delay(str(order.id), str(order.driver_id))
        queued += 1

    if queued:
        logger.info(f"[DISPATCH TASK] Re-queued code dispatch for {queued} order(s)")
    return queued
