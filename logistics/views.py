"""
Logistics App Views - Orders, Delivery Legs & Code Validation API
"""

from rest_framework import mixins, viewsets, status, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from django.db.models import Q
from drf_spectacular.utils import extend_schema

from .models import Order, OrderStatus, DeliveryLeg
from .filters import DeliveryAuditLogFilter
from .serializers import (
    OrderSerializer, OrderCreateSerializer, DeliveryLegSerializer,
    CodeValidationSerializer, DeliveryAuditLogSerializer,
)
from .services.orders import create_order, accept_order, issued_codes_payload
from .services.dispatch import (
    dispatch_codes as dispatch_order_codes, DispatchNotFound, DispatchUnauthorized,
)
from .services.validation import (
    validate_code, issue_code as issue_leg_code, get_audit_history,
    ValidationOutcome, CodeAlreadyValidated,
)
from core.middleware import get_client_ip
from core.models import UserRole
from core.views import IsCompanyOrAdmin, IsDriver


VALIDATION_HTTP_STATUS = {
    ValidationOutcome.VALIDATED: status.HTTP_200_OK,
    ValidationOutcome.MISMATCH: status.HTTP_400_BAD_REQUEST,
    ValidationOutcome.NOT_CONFIGURED: status.HTTP_400_BAD_REQUEST,
    ValidationOutcome.ALREADY_VALIDATED: status.HTTP_409_CONFLICT,
    ValidationOutcome.ATTEMPTS_EXCEEDED: status.HTTP_423_LOCKED,
    ValidationOutcome.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ValidationOutcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def _is_order_owner(user, order) -> bool:
    return user.is_platform_admin or order.company_id == user.pk


# ============================================
# ORDERS
# ============================================

class OrderViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet
):
    """
    Orders and their driver-side transitions.

    POST /api/orders/                       - company creates an order
    POST /api/orders/{id}/accept/           - driver accepts a pending order
    POST /api/orders/{id}/dispatch-codes/   - assigned driver (re)sends codes
    """

    serializer_class = OrderSerializer
    lookup_value_regex = r'[0-9a-f-]+'
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['status']
    ordering_fields = ['created_at', 'total_value']

    def get_queryset(self):
        user = self.request.user
        queryset = Order.objects.select_related('company', 'driver').prefetch_related('legs')

        if user.is_platform_admin:
            return queryset
        elif user.role == UserRole.DRIVER:
            return queryset.filter(Q(driver=user) | Q(status=OrderStatus.PENDING))
        return queryset.filter(company=user)

    def get_permissions(self):
        if self.action == 'create':
            return [IsCompanyOrAdmin()]
        if self.action in ('accept', 'dispatch_codes'):
            return [IsDriver()]
        return super().get_permissions()

    @extend_schema(request=OrderCreateSerializer, responses=OrderSerializer)
    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order, issued = create_order(
            company=request.user,
            legs=data['legs'],
            total_value=data.get('total_value'),
            issue_codes=data['issue_codes']
        )

        payload = OrderSerializer(order).data
        if issued:
            # Shown once; only hashes are kept
            payload['codes'] = issued_codes_payload(order, issued)

        return Response(payload, status=status.HTTP_201_CREATED)

    @extend_schema(request=None, responses=OrderSerializer)
    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        """Accept a pending order as a driver."""
        try:
            order = accept_order(pk, request.user)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_409_CONFLICT)

        return Response({
            'status': 'ok',
            'message': 'Pedido aceito com sucesso!',
            'order': OrderSerializer(order).data,
        })

    @extend_schema(request=None)
    @action(detail=True, methods=['post'], url_path='dispatch-codes')
    def dispatch_codes(self, request, pk=None):
        """Send each leg's code to its customer by SMS."""
        try:
            result = dispatch_order_codes(pk, request.user)
        except DispatchNotFound as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except DispatchUnauthorized as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)

        return Response(result.to_dict())


# ============================================
# DELIVERY LEGS
# ============================================

class DeliveryLegViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Delivery leg status and validation code operations.

    GET  /api/legs/{id}/              - status (company owner, driver, admin)
    POST /api/legs/{id}/validate/     - driver redeems the customer's code
    POST /api/legs/{id}/issue-code/   - company issues a new code (shown once)
    GET  /api/legs/{id}/audit-logs/   - redemption attempts
    """

    serializer_class = DeliveryLegSerializer
    lookup_value_regex = r'[0-9a-f-]+'
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        queryset = DeliveryLeg.objects.select_related('order')

        if user.is_platform_admin:
            return queryset
        elif user.role == UserRole.DRIVER:
            return queryset.filter(order__driver=user)
        return queryset.filter(order__company=user)

    @extend_schema(request=CodeValidationSerializer)
    @action(detail=True, methods=['post'], permission_classes=[IsDriver])
    def validate(self, request, pk=None):
        """
        Redeem a validation code.

        The leg is looked up by the service itself so that a driver who is
        not assigned gets UNAUTHORIZED rather than a 404.
        """
        serializer = CodeValidationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = validate_code(
            pk,
            serializer.validated_data['code'],
            request.user,
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT'),
        )

        return Response(result.to_dict(), status=VALIDATION_HTTP_STATUS[result.outcome])

    @extend_schema(request=None)
    @action(
        detail=True,
        methods=['post'],
        url_path='issue-code',
        permission_classes=[IsCompanyOrAdmin]
    )
    def issue_code(self, request, pk=None):
        """Generate a new code for the leg and return the plaintext once."""
        leg = self.get_object()
        if not _is_order_owner(request.user, leg.order):
            return Response(
                {'error': 'Apenas a empresa do pedido pode gerar códigos.'},
                status=status.HTTP_403_FORBIDDEN
            )

        try:
            code = issue_leg_code(leg.pk)
        except CodeAlreadyValidated as e:
            return Response({'error': str(e)}, status=status.HTTP_409_CONFLICT)

        return Response({
            'leg_id': str(leg.pk),
            'code': code,
            'message': 'Informe este código apenas ao cliente.',
        }, status=status.HTTP_201_CREATED)

    @extend_schema(responses=DeliveryAuditLogSerializer(many=True))
    @action(
        detail=True,
        methods=['get'],
        url_path='audit-logs',
        permission_classes=[IsCompanyOrAdmin]
    )
    def audit_logs(self, request, pk=None):
        """Redemption attempts of the leg, newest first."""
        leg = self.get_object()
        if not _is_order_owner(request.user, leg.order):
            return Response(
                {'error': 'Apenas a empresa do pedido pode consultar o histórico.'},
                status=status.HTTP_403_FORBIDDEN
            )

        logs = DeliveryAuditLogFilter(request.query_params, queryset=get_audit_history(leg.pk)).qs
        return Response(DeliveryAuditLogSerializer(logs, many=True).data)
