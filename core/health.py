"""
FLUX Health Check Endpoints
===========================

1. /health/ - Basic liveness check (for load balancers/Docker)
2. /health/ready/ - Readiness check (database and cache)
"""

import time
import logging
from django.http import JsonResponse
from django.db import connection, DatabaseError
from django.core.cache import cache
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt
from django.utils import timezone

logger = logging.getLogger('flux.monitoring')


@csrf_exempt
@require_GET
def health_check(request):
    """Liveness probe. Returns 200 if the Django process is alive."""
    return JsonResponse({
        'status': 'ok',
        'service': 'flux',
        'timestamp': timezone.now().isoformat(),
    })


@csrf_exempt
@require_GET
def readiness_check(request):
    """
    Readiness probe - checks the persistent store and the cache.
    Returns 503 if any dependency is down.
    """
    checks = {}
    all_healthy = True

    try:
        start = time.time()
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        checks['database'] = {
            'status': 'healthy',
            'response_time_ms': round((time.time() - start) * 1000, 2),
            'engine': connection.vendor,
        }
    except DatabaseError as e:
        checks['database'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"Health check - Database unhealthy: {e}")

    try:
        start = time.time()
        cache.set('_healthcheck_ping', 'pong', 10)
        if cache.get('_healthcheck_ping') != 'pong':
            raise RuntimeError("Cache read/write mismatch")
        checks['cache'] = {
            'status': 'healthy',
            'response_time_ms': round((time.time() - start) * 1000, 2),
        }
    except Exception as e:
        checks['cache'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"Health check - Cache unhealthy: {e}")

    return JsonResponse({
        'status': 'healthy' if all_healthy else 'unhealthy',
        'service': 'flux',
        'timestamp': timezone.now().isoformat(),
        'checks': checks,
    }, status=200 if all_healthy else 503)
