"""
FLUX Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from core.health import health_check, readiness_check


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "FLUX - Painel Administrativo"
admin.site.site_title = "FLUX Admin"
admin.site.index_title = "Supervisão de pedidos e entregas"


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'FLUX API',
        'version': '1.0.0',
        'endpoints': {
            'auth': {
                'token': '/api/auth/token/',
                'refresh': '/api/auth/token/refresh/',
            },
            'orders': '/api/orders/',
            'legs': {
                'detail': '/api/legs/<id>/',
                'validate': '/api/legs/<id>/validate/',
                'issue_code': '/api/legs/<id>/issue-code/',
                'audit_logs': '/api/legs/<id>/audit-logs/',
            },
            'schema': '/api/schema/',
        }
    })


urlpatterns = [
    # Health checks
    path('health/', health_check, name='health'),
    path('health/ready/', readiness_check, name='health-ready'),

    # Admin
    path('admin/', admin.site.urls),

    # API Root
    path('api/', api_root, name='api-root'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),

    # App URLs
    path('api/', include('core.urls')),
    path('api/', include('logistics.urls')),
]
