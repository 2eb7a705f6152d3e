"""
Logistics App Filters
"""

from django_filters import rest_framework as filters

from .models import DeliveryAuditLog


class DeliveryAuditLogFilter(filters.FilterSet):
    """?success=true|false and a created_at window on a leg's audit trail."""

    created_after = filters.IsoDateTimeFilter(field_name='created_at', lookup_expr='gte')
    created_before = filters.IsoDateTimeFilter(field_name='created_at', lookup_expr='lte')

    class Meta:
        model = DeliveryAuditLog
        fields = ['success', 'driver']
