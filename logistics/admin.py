"""
Django Admin configuration for LOGISTICS app.
"""

from django.contrib import admin
from .models import Order, DeliveryLeg, DeliveryAuditLog


CODE_FIELDS = ('code_state', 'code_sent_at', 'validation_attempts', 'validated_at')


class DeliveryLegInline(admin.TabularInline):
    """Legs of an order; the code lifecycle is only changed through the services."""

    model = DeliveryLeg
    extra = 0
    fields = (
        'customer_name', 'customer_phone', 'dropoff_address',
        'package_type', 'suggested_price',
    ) + CODE_FIELDS
    readonly_fields = CODE_FIELDS

    @admin.display(description="Estado do código")
    def code_state(self, obj):
        return obj.code_state if obj.pk else '-'


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin for Order with its legs."""

    list_display = (
        'short_id',
        'status',
        'company_phone',
        'driver_name',
        'total_value',
        'created_at'
    )
    list_filter = ('status', 'created_at')
    search_fields = ('id', 'company__phone_number', 'driver__phone_number')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    raw_id_fields = ('company', 'driver')
    inlines = [DeliveryLegInline]

    readonly_fields = (
        'id',
        'created_at',
        'updated_at',
        'accepted_at',
        'driver_completed_at',
        'completed_at',
        'cancelled_at'
    )

    fieldsets = (
        ('Identificação', {
            'fields': ('id', 'status', 'total_value')
        }),
        ('Participantes', {
            'fields': ('company', 'driver')
        }),
        ('Datas', {
            'fields': (
                'created_at', 'updated_at', 'accepted_at',
                'driver_completed_at', 'completed_at', 'cancelled_at'
            ),
            'classes': ('collapse',)
        }),
    )

    @admin.display(description="ID")
    def short_id(self, obj):
        return obj.short_id

    @admin.display(description="Empresa")
    def company_phone(self, obj):
        return obj.company.phone_number

    @admin.display(description="Entregador")
    def driver_name(self, obj):
        return obj.driver.full_name if obj.driver else '-'


@admin.register(DeliveryAuditLog)
class DeliveryAuditLogAdmin(admin.ModelAdmin):
    """Read-only trail of code redemption attempts."""

    list_display = ('leg_short_id', 'driver', 'attempted_code', 'success', 'ip_address', 'created_at')
    list_filter = ('success', 'created_at')
    search_fields = ('leg__id', 'driver__phone_number', 'attempted_code')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'

    @admin.display(description="Entrega")
    def leg_short_id(self, obj):
        return str(obj.leg_id)[:8]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
