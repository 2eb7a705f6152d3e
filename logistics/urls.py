"""
Logistics App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import OrderViewSet, DeliveryLegViewSet

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'legs', DeliveryLegViewSet, basename='leg')

urlpatterns = [
    path('', include(router.urls)),
]
