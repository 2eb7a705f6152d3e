"""
LOGISTICS App - Code Dispatch Service for FLUX

Sends each leg's validation code to its customer by SMS once the order has
been accepted by a driver. Dispatch is idempotent per leg: a leg whose code
already went out is skipped, a leg whose SMS failed is retried with a fresh
code.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from logistics.models import Order, OrderStatus, DeliveryLeg
from logistics.services.codes import generate_code, hash_code
from notifications.sms_service import TwilioSMSService, build_delivery_code_message

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Dispatch precondition failure (whole order refused)."""


class DispatchNotFound(DispatchError):
    pass


class DispatchUnauthorized(DispatchError):
    pass


@dataclass
class LegDispatchResult:
    leg_id: str
    success: bool
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            'leg_id': self.leg_id,
            'success': self.success,
            'error': self.error,
            'skipped': self.skipped,
        }


@dataclass
class DispatchResult:
    """Per-order dispatch report. Skipped legs count as sent and are also tallied in `skipped`."""
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    legs: List[LegDispatchResult] = field(default_factory=list)

    def add(self, leg_result: LegDispatchResult):
        self.legs.append(leg_result)
        if leg_result.success:
            self.sent += 1
            if leg_result.skipped:
                self.skipped += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            'success': True,
            'sent': self.sent,
            'failed': self.failed,
            'skipped': self.skipped,
            'results': [leg.to_dict() for leg in self.legs],
        }


def dispatch_codes(order_id, driver) -> DispatchResult:
    """
    Issue and send the validation code of every leg of an accepted order.

    Args:
        order_id: UUID of the order
        driver: Acting user, must be the order's assigned driver

    Returns:
        DispatchResult with one entry per leg

    Raises:
        DispatchNotFound: order unknown or not in ACCEPTED status
        DispatchUnauthorized: caller is not the assigned driver
    """
    try:
        order = Order.objects.get(pk=order_id, status=OrderStatus.ACCEPTED)
    except (Order.DoesNotExist, ValidationError):
        logger.warning(f"[DISPATCH] Order {order_id} not found or not accepted")
        raise DispatchNotFound("Pedido não encontrado ou não aceito")

    if driver is None or order.driver_id != driver.pk:
        logger.warning(
            f"[DISPATCH] User {getattr(driver, 'pk', None)} is not the driver "
            f"of order {order.short_id}"
        )
        raise DispatchUnauthorized("Você não é o entregador deste pedido")

    result = DispatchResult()
    leg_ids = list(order.legs.order_by('created_at').values_list('id', flat=True))

    for leg_id in leg_ids:
        try:
            leg_result = _dispatch_leg(leg_id)
        except Exception as e:
            logger.exception(f"[DISPATCH] Unexpected error on leg {str(leg_id)[:8]}: {e}")
            leg_result = LegDispatchResult(leg_id=str(leg_id), success=False, error=str(e))
        result.add(leg_result)

    logger.info(
        f"[DISPATCH] Order {order.short_id}: sent={result.sent} "
        f"failed={result.failed} skipped={result.skipped}"
    )
    return result


@transaction.atomic
def _dispatch_leg(leg_id) -> LegDispatchResult:
    """
    Send one leg's code. The leg row stays locked until the SMS outcome is
    recorded, so two concurrent dispatches cannot both send.
    """
    leg = DeliveryLeg.objects.select_for_update().get(pk=leg_id)
    leg_key = str(leg.id)

    if leg.code_sent_at is not None:
        return LegDispatchResult(leg_id=leg_key, success=True, skipped=True)

    if leg.validated_at is not None:
        return LegDispatchResult(leg_id=leg_key, success=True, skipped=True)

    if not leg.customer_phone:
        logger.warning(f"[DISPATCH] Leg {leg_key[:8]} has no customer phone")
        return LegDispatchResult(leg_id=leg_key, success=False, error='Sem telefone do cliente')

    code = generate_code()
    leg.code_hash = hash_code(code)
    leg.validation_attempts = 0
    leg.save(update_fields=['code_hash', 'validation_attempts'])

    sid, error = TwilioSMSService.send_sms(
        leg.customer_phone,
        build_delivery_code_message(leg.customer_name, code)
    )

    if error:
        logger.error(f"[DISPATCH] SMS failed for leg {leg_key[:8]}: {error}")
        return LegDispatchResult(leg_id=leg_key, success=False, error=error)

    leg.code_sent_at = timezone.now()
    leg.save(update_fields=['code_sent_at'])

    logger.info(f"[DISPATCH] Code sent for leg {leg_key[:8]} (SID={sid})")
    return LegDispatchResult(leg_id=leg_key, success=True)


def find_pending_dispatch_orders():
    """Accepted orders that still have legs waiting for their code SMS."""
    return (
        Order.objects
        .filter(
            status=OrderStatus.ACCEPTED,
            driver__isnull=False,
            legs__customer_phone__gt='',
            legs__code_sent_at__isnull=True,
            legs__validated_at__isnull=True,
        )
        .select_related('driver')
        .distinct()
    )
