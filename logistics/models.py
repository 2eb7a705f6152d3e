"""
LOGISTICS App - Orders, Delivery Legs & Validation Audit for FLUX

Handles: Orders, per-parcel delivery legs, the validation code lifecycle
of each leg and the append-only audit trail of redemption attempts.
"""

import uuid
from decimal import Decimal
from django.conf import settings
from django.db import models


# Hard ceiling of redemption attempts per leg
MAX_VALIDATION_ATTEMPTS = 5


class OrderStatus(models.TextChoices):
    """Order status enumeration."""
    PENDING = 'pending', 'Aguardando entregador'
    ACCEPTED = 'accepted', 'Aceito'
    DRIVER_COMPLETED = 'driver_completed', 'Finalizado pelo entregador'
    COMPLETED = 'completed', 'Concluído'
    CANCELLED = 'cancelled', 'Cancelado'


class PackageType(models.TextChoices):
    """Package size enumeration."""
    ENVELOPE = 'envelope', 'Envelope'
    BAG = 'bag', 'Sacola'
    SMALL_BOX = 'small_box', 'Caixa pequena'
    LARGE_BOX = 'large_box', 'Caixa grande'
    OTHER = 'other', 'Outro'


class CodeState(models.TextChoices):
    """Validation code lifecycle of a delivery leg."""
    UNCONFIGURED = 'UNCONFIGURED', 'Sem código'
    PENDING = 'PENDING', 'Aguardando validação'
    LOCKED = 'LOCKED', 'Bloqueado (tentativas esgotadas)'
    VALIDATED = 'VALIDATED', 'Validado'


class Order(models.Model):
    """
    Delivery request posted by a company and accepted by one driver.

    Only the fields that gate code dispatch and validation are modelled
    beyond the basic lifecycle timestamps.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    company = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='company_orders',
        verbose_name="Empresa"
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driver_orders',
        verbose_name="Entregador"
    )

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        verbose_name="Status"
    )
    total_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Valor total (R$)"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    driver_completed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Pedido"
        verbose_name_plural = "Pedidos"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
            models.Index(fields=['driver', 'status'], name='order_driver_status_idx'),
        ]

    def __str__(self):
        return f"Pedido {str(self.id)[:8]} - {self.status}"

    @property
    def short_id(self) -> str:
        return str(self.id)[:8]


class DeliveryLeg(models.Model):
    """
    One parcel / drop-off within an order.

    Only the SHA-256 hash of the validation code is stored. The plaintext
    leaves the system once (SMS to the customer or a one-time API response
    to the company) and is never persisted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='legs',
        verbose_name="Pedido"
    )

    # Route
    pickup_address = models.CharField(max_length=255, verbose_name="Endereço de coleta")
    dropoff_address = models.CharField(max_length=255, verbose_name="Endereço de entrega")

    # Customer (receives the code)
    customer_name = models.CharField(max_length=150, blank=True, verbose_name="Nome do cliente")
    customer_phone = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        verbose_name="Telefone do cliente"
    )

    # Package
    package_type = models.CharField(
        max_length=20,
        choices=PackageType.choices,
        default=PackageType.OTHER,
        verbose_name="Tipo de pacote"
    )
    notes = models.TextField(blank=True, verbose_name="Observações")
    suggested_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Preço sugerido (R$)"
    )

    # Validation code lifecycle
    code_hash = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        verbose_name="Hash do código"
    )
    code_sent_at = models.DateTimeField(null=True, blank=True, verbose_name="Código enviado em")
    validation_attempts = models.PositiveIntegerField(default=0, verbose_name="Tentativas")
    validated_at = models.DateTimeField(null=True, blank=True, verbose_name="Validado em")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Entrega"
        verbose_name_plural = "Entregas"
        ordering = ['created_at']

    def __str__(self):
        return f"Entrega {str(self.id)[:8]} ({self.code_state})"

    @property
    def code_state(self) -> str:
        if self.validated_at is not None:
            return CodeState.VALIDATED
        if not self.code_hash:
            return CodeState.UNCONFIGURED
        if self.validation_attempts >= MAX_VALIDATION_ATTEMPTS:
            return CodeState.LOCKED
        return CodeState.PENDING

    @property
    def remaining_attempts(self) -> int:
        return max(0, MAX_VALIDATION_ATTEMPTS - self.validation_attempts)

    @property
    def is_validated(self) -> bool:
        return self.validated_at is not None


class DeliveryAuditLog(models.Model):
    """
    Immutable record of one code redemption attempt, successful or not.

    The submitted code is kept in clear on purpose: it is the evidence
    used to settle disputes between driver, company and customer.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    leg = models.ForeignKey(
        DeliveryLeg,
        on_delete=models.CASCADE,
        related_name='audit_logs',
        verbose_name="Entrega"
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='delivery_audit_logs',
        verbose_name="Entregador"
    )
    attempted_code = models.CharField(max_length=64, verbose_name="Código informado")
    success = models.BooleanField(default=False, verbose_name="Sucesso")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Tentativa de validação"
        verbose_name_plural = "Tentativas de validação"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['leg', 'created_at'], name='auditlog_leg_created_idx'),
        ]

    def __str__(self):
        result = "OK" if self.success else "FALHA"
        return f"{str(self.leg_id)[:8]} - {result} ({self.created_at:%d/%m/%Y %H:%M})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Registros de auditoria não podem ser alterados")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Registros de auditoria não podem ser removidos")
