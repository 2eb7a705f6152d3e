"""
LOGISTICS App - Order Service for FLUX

Order creation and driver acceptance. Only the transitions that gate
validation code dispatch live here.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from core.models import UserRole
from logistics.models import Order, OrderStatus, DeliveryLeg
from logistics.services.codes import generate_code, hash_code

logger = logging.getLogger(__name__)


LEG_FIELDS = (
    'pickup_address',
    'dropoff_address',
    'customer_name',
    'customer_phone',
    'package_type',
    'notes',
    'suggested_price',
)


class IssuedCodes(dict):
    """
    Plaintext codes issued at order creation, keyed by leg id (str).

    Owned by the caller: shown once to the company and then dropped.
    """


@transaction.atomic
def create_order(
    company,
    legs: Iterable[dict],
    total_value: Optional[Decimal] = None,
    issue_codes: bool = False
) -> Tuple[Order, IssuedCodes]:
    """
    Create an order and its delivery legs.

    Args:
        company: Ordering user (COMPANY or ADMIN)
        legs: Leg attributes, one dict per parcel
        total_value: Order total; defaults to the sum of suggested prices
        issue_codes: Generate a code per leg now instead of at dispatch

    Returns:
        (order, issued_codes) - issued_codes is empty unless issue_codes

    Raises:
        ValueError: no legs given
    """
    legs = list(legs)
    if not legs:
        raise ValueError("O pedido precisa de pelo menos uma entrega")

    if total_value is None:
        total_value = sum(
            (Decimal(str(leg.get('suggested_price') or '0')) for leg in legs),
            Decimal('0.00')
        )

    order = Order.objects.create(
        company=company,
        status=OrderStatus.PENDING,
        total_value=total_value
    )

    issued = IssuedCodes()
    for data in legs:
        attrs = {name: data[name] for name in LEG_FIELDS if data.get(name) is not None}
        leg = DeliveryLeg(order=order, validation_attempts=0, **attrs)
        if issue_codes:
            code = generate_code()
            leg.code_hash = hash_code(code)
            leg.save()
            issued[str(leg.id)] = code
        else:
            leg.save()

    logger.info(
        f"[ORDERS] Order {order.short_id} created by {company.phone_number} "
        f"with {len(legs)} leg(s) | codes issued: {issue_codes}"
    )
    return order, issued


@transaction.atomic
def accept_order(order_id, driver) -> Order:
    """
    Assign an active driver to a pending order (row-locked).

    The code dispatch task is scheduled once the transaction commits.

    Raises:
        ValueError: not an active driver, order unknown or no longer pending
    """
    if driver.role != UserRole.DRIVER:
        raise ValueError("Apenas entregadores podem aceitar pedidos")

    if not driver.is_active:
        raise ValueError("Sua conta está desativada")

    try:
        order = Order.objects.select_for_update().get(pk=order_id)
    except (Order.DoesNotExist, ValidationError):
        raise ValueError(f"Pedido {order_id} não encontrado")

    if order.status != OrderStatus.PENDING:
        raise ValueError("Este pedido já foi aceito por outro entregador")

    order.driver = driver
    order.status = OrderStatus.ACCEPTED
    order.accepted_at = timezone.now()
    order.save(update_fields=['driver', 'status', 'accepted_at', 'updated_at'])

    logger.info(f"[ORDERS] Order {order.short_id} accepted by driver {driver.phone_number}")

    order_key, driver_key = str(order.id), str(driver.pk)

    def _schedule_dispatch():
        from logistics.tasks import dispatch_delivery_codes
        dispatch_delivery_codes.delay(order_key, driver_key)

    transaction.on_commit(_schedule_dispatch)
    return order


def issued_codes_payload(order: Order, issued: Dict[str, str]) -> list:
    """One-time response payload pairing each leg with its plaintext code."""
    return [
        {
            'leg_id': str(leg.id),
            'customer_name': leg.customer_name,
            'code': issued[str(leg.id)],
        }
        for leg in order.legs.all()
        if str(leg.id) in issued
    ]
