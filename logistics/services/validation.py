"""
LOGISTICS App - Code Validation Service for FLUX

Redeems the validation code a driver collects from the customer at
drop-off. Every redemption that reaches the hash comparison leaves exactly
one audit entry and consumes one attempt; at most 5 attempts per leg.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from logistics.models import DeliveryLeg, DeliveryAuditLog, MAX_VALIDATION_ATTEMPTS
from logistics.services.codes import (
    generate_code, hash_code, normalize_code, codes_match, is_valid_code_hash,
)

logger = logging.getLogger(__name__)


class ValidationOutcome(models.TextChoices):
    VALIDATED = 'VALIDATED', 'Código validado'
    NOT_FOUND = 'NOT_FOUND', 'Entrega não encontrada'
    NOT_CONFIGURED = 'NOT_CONFIGURED', 'Código não configurado'
    ALREADY_VALIDATED = 'ALREADY_VALIDATED', 'Entrega já validada'
    ATTEMPTS_EXCEEDED = 'ATTEMPTS_EXCEEDED', 'Limite de tentativas excedido'
    UNAUTHORIZED = 'UNAUTHORIZED', 'Entregador não autorizado'
    MISMATCH = 'MISMATCH', 'Código inválido'


@dataclass
class ValidationResult:
    """Outcome of one redemption call. Never raised, always returned."""
    success: bool
    outcome: str
    message: str
    remaining_attempts: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            'success': self.success,
            'outcome': self.outcome,
            'message': self.message,
        }
        if self.remaining_attempts is not None:
            data['remaining_attempts'] = self.remaining_attempts
        return data


class CodeAlreadyValidated(Exception):
    """Raised when a new code is configured on a leg that is already validated."""


def _reject(outcome: str, message: str) -> ValidationResult:
    return ValidationResult(success=False, outcome=outcome, message=message)


def _mismatch_message(remaining: int) -> str:
    suffix = 'tentativa' if remaining == 1 else 'tentativas'
    return f"Código inválido. Restam {remaining} {suffix}."


# ============================================
# REDEMPTION
# ============================================

@transaction.atomic
def validate_code(
    leg_id,
    submitted_code: str,
    driver,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> ValidationResult:
    """
    Check a submitted code against the stored hash of a delivery leg.

    The leg row stays locked for the whole call, so concurrent submissions
    for the same leg are serialized and the ceiling cannot be overshot.
    Checks run in a fixed order; the terminal, locked and unauthorized
    cases return before anything is written.

    Args:
        leg_id: UUID of the delivery leg
        submitted_code: Code as typed by the driver (any casing/spacing)
        driver: Acting user
        ip_address: Client IP, stored in the audit entry
        user_agent: Client user agent, stored in the audit entry

    Returns:
        ValidationResult
    """
    try:
        leg = (
            DeliveryLeg.objects
            .select_for_update()
            .select_related('order')
            .get(pk=leg_id)
        )
    except (DeliveryLeg.DoesNotExist, ValidationError):
        logger.warning(f"[VALIDATION] Leg {leg_id} not found")
        return _reject(ValidationOutcome.NOT_FOUND, 'Entrega não encontrada')

    if not leg.code_hash:
        return _reject(
            ValidationOutcome.NOT_CONFIGURED,
            'Código não configurado para esta entrega'
        )

    if leg.validated_at is not None:
        return _reject(ValidationOutcome.ALREADY_VALIDATED, 'Entrega já foi validada')

    if leg.validation_attempts >= MAX_VALIDATION_ATTEMPTS:
        logger.warning(f"[VALIDATION] Leg {str(leg.id)[:8]} locked, attempt refused")
        return _reject(ValidationOutcome.ATTEMPTS_EXCEEDED, 'Limite de tentativas excedido')

    if driver is None or leg.order.driver_id != driver.pk:
        logger.warning(
            f"[VALIDATION] User {getattr(driver, 'pk', None)} is not the driver "
            f"of order {leg.order.short_id}"
        )
        return _reject(
            ValidationOutcome.UNAUTHORIZED,
            'Você não é o entregador deste pedido'
        )

    normalized = normalize_code(submitted_code)
    is_match = codes_match(normalized, leg.code_hash)

    DeliveryAuditLog.objects.create(
        leg=leg,
        driver=driver,
        attempted_code=normalized[:64],
        success=is_match,
        ip_address=ip_address or None,
        user_agent=(user_agent or '')[:255] or None,
    )

    leg.validation_attempts += 1
    update_fields = ['validation_attempts']
    if is_match:
        leg.validated_at = timezone.now()
        update_fields.append('validated_at')
    leg.save(update_fields=update_fields)

    if is_match:
        logger.info(
            f"[VALIDATION] Leg {str(leg.id)[:8]} validated by {driver.phone_number} "
            f"(attempt {leg.validation_attempts})"
        )
        return ValidationResult(
            success=True,
            outcome=ValidationOutcome.VALIDATED,
            message='Código validado com sucesso!'
        )

    remaining = leg.remaining_attempts
    logger.info(
        f"[VALIDATION] Wrong code for leg {str(leg.id)[:8]} | "
        f"attempt {leg.validation_attempts}/{MAX_VALIDATION_ATTEMPTS}"
    )
    return ValidationResult(
        success=False,
        outcome=ValidationOutcome.MISMATCH,
        message=_mismatch_message(remaining),
        remaining_attempts=remaining
    )


# ============================================
# CODE (RE)CONFIGURATION
# ============================================

@transaction.atomic
def set_code_hash(leg_id, code_hash: str) -> DeliveryLeg:
    """
    Store a new code hash on a leg and give it a fresh attempt budget.

    Raises:
        DeliveryLeg.DoesNotExist: unknown leg
        ValueError: hash is not 64 lowercase hex characters
        CodeAlreadyValidated: the leg already reached its terminal state
    """
    if not is_valid_code_hash(code_hash):
        raise ValueError("Hash de código inválido")

    leg = DeliveryLeg.objects.select_for_update().get(pk=leg_id)

    if leg.validated_at is not None:
        raise CodeAlreadyValidated("Entrega já foi validada")

    leg.code_hash = code_hash
    leg.validation_attempts = 0
    leg.save(update_fields=['code_hash', 'validation_attempts'])

    logger.info(f"[VALIDATION] New code configured for leg {str(leg.id)[:8]}")
    return leg


def issue_code(leg_id) -> str:
    """Generate a code for a leg, store its hash and hand the plaintext back."""
    code = generate_code()
    set_code_hash(leg_id, hash_code(code))
    return code


# ============================================
# AUDIT
# ============================================

def get_audit_history(leg_id):
    """Redemption attempts of a leg, newest first."""
    return (
        DeliveryAuditLog.objects
        .filter(leg_id=leg_id)
        .select_related('driver')
        .order_by('-created_at')
    )
