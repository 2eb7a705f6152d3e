"""
FLUX - Delivery brokering platform (companies, drivers, admins).
"""

from .celery import app as celery_app

__all__ = ('celery_app',)
