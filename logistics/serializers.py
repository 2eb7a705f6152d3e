"""
Logistics App Serializers - Orders, Delivery Legs & Validation Audit
"""

from rest_framework import serializers
from .models import Order, DeliveryLeg, DeliveryAuditLog, PackageType


class DeliveryLegSerializer(serializers.ModelSerializer):
    """
    Leg status as seen by the company, the driver and admins.

    The code hash is never exposed.
    """

    code_state = serializers.CharField(read_only=True)
    remaining_attempts = serializers.IntegerField(read_only=True)

    class Meta:
        model = DeliveryLeg
        fields = [
            'id', 'order', 'pickup_address', 'dropoff_address',
            'customer_name', 'customer_phone', 'package_type', 'notes',
            'suggested_price', 'code_sent_at', 'validated_at',
            'validation_attempts', 'remaining_attempts', 'code_state',
            'created_at',
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full serializer for Order model."""

    company_phone = serializers.CharField(source='company.phone_number', read_only=True)
    driver_phone = serializers.CharField(source='driver.phone_number', read_only=True, default=None)
    legs = DeliveryLegSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'company', 'company_phone', 'driver', 'driver_phone',
            'status', 'total_value', 'legs',
            'created_at', 'accepted_at', 'driver_completed_at',
            'completed_at', 'cancelled_at',
        ]
        read_only_fields = fields


class LegInputSerializer(serializers.Serializer):
    pickup_address = serializers.CharField(max_length=255)
    dropoff_address = serializers.CharField(max_length=255)
    customer_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    customer_phone = serializers.CharField(
        max_length=20, required=False, allow_blank=True, allow_null=True
    )
    package_type = serializers.ChoiceField(choices=PackageType.choices, default=PackageType.OTHER)
    notes = serializers.CharField(required=False, allow_blank=True)
    suggested_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False
    )

    def validate_customer_phone(self, value):
        return (value or '').strip() or None


class OrderCreateSerializer(serializers.Serializer):
    """Serializer for order creation by a company."""

    legs = LegInputSerializer(many=True)
    total_value = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False
    )
    issue_codes = serializers.BooleanField(default=False)

    def validate_legs(self, value):
        if not value:
            raise serializers.ValidationError("O pedido precisa de pelo menos uma entrega.")
        return value


class CodeValidationSerializer(serializers.Serializer):
    """Code typed by the driver at drop-off."""

    code = serializers.CharField(max_length=32, trim_whitespace=True)


class DeliveryAuditLogSerializer(serializers.ModelSerializer):
    driver_phone = serializers.CharField(source='driver.phone_number', read_only=True)
    driver_name = serializers.CharField(source='driver.full_name', read_only=True)

    class Meta:
        model = DeliveryAuditLog
        fields = [
            'id', 'leg', 'driver', 'driver_phone', 'driver_name',
            'attempted_code', 'success', 'ip_address', 'user_agent', 'created_at',
        ]
        read_only_fields = fields
