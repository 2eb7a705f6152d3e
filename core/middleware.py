"""
FLUX Security Middleware
========================

Provides:
1. Per-IP rate limiting backed by the Django cache
2. Security headers, with no-store on API responses (they can carry codes)
3. Audit logging of delivery code and order actions
"""

import re
import logging
from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger('flux.security')

UUID_RE = r'[0-9a-f-]{36}'

# Endpoints whose calls are audited, by event name
CODE_ENDPOINTS = [
    ('code_validation', re.compile(rf'^/api/legs/(?P<obj>{UUID_RE})/validate/$')),
    ('code_issue', re.compile(rf'^/api/legs/(?P<obj>{UUID_RE})/issue-code/$')),
    ('code_dispatch', re.compile(rf'^/api/orders/(?P<obj>{UUID_RE})/dispatch-codes/$')),
    ('order_accept', re.compile(rf'^/api/orders/(?P<obj>{UUID_RE})/accept/$')),
    ('order_create', re.compile(r'^/api/orders/$')),
    ('auth_token', re.compile(r'^/api/auth/token/(refresh/)?$')),
]


def get_client_ip(request) -> str:
    """Extract real client IP, considering proxy headers."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '0.0.0.0')


def match_code_endpoint(path):
    """Return (event, object id or None) for an audited endpoint, else None."""
    for event, pattern in CODE_ENDPOINTS:
        match = pattern.match(path)
        if match:
            return event, match.groupdict().get('obj')
    return None


class RateLimitMiddleware(MiddlewareMixin):
    """
    Fixed-window request counters per client IP and bucket.

    Code validation shares one bucket across all legs, so an IP gets
    10 guesses per 5 minutes in total, whatever leg it targets. This sits
    on top of the per-leg attempt ceiling of the validation service.
    """

    # (bucket, pattern, max_requests, window_seconds)
    RATE_LIMITS = [
        ('validate', re.compile(rf'^/api/legs/{UUID_RE}/validate/$'), 10, 300),
        ('auth', re.compile(r'^/api/auth/token/'), 10, 60),
    ]

    DEFAULT_API_LIMIT = ('api', 100, 60)

    def _get_rate_limit(self, path):
        for bucket, pattern, max_requests, window in self.RATE_LIMITS:
            if pattern.match(path):
                return bucket, max_requests, window

        if path.startswith('/api/'):
            return self.DEFAULT_API_LIMIT

        return None

    def process_request(self, request):
        if settings.DEBUG and not getattr(settings, 'RATE_LIMIT_IN_DEBUG', False):
            return None

        rate_limit = self._get_rate_limit(request.path)
        if rate_limit is None:
            return None

        bucket, max_requests, window = rate_limit
        client_ip = get_client_ip(request)
        cache_key = f"rl:{bucket}:{client_ip}"

        # add() only writes when the key is missing, so the window is not extended
        cache.add(cache_key, 0, window)
        try:
            count = cache.incr(cache_key)
        except ValueError:
            # Expired between add() and incr()
            cache.set(cache_key, 1, window)
            count = 1

        if count > max_requests:
            logger.warning(
                f"[RATE_LIMIT] {bucket} exceeded: ip={client_ip} path={request.path} "
                f"count={count}/{max_requests} window={window}s"
            )
            return JsonResponse({
                'error': 'Muitas requisições. Tente novamente mais tarde.',
                'retry_after': window,
            }, status=429, headers={
                'Retry-After': str(window),
                'X-RateLimit-Limit': str(max_requests),
                'X-RateLimit-Remaining': '0',
            })

        request._rate_limit = (max_requests, max_requests - count)
        return None

    def process_response(self, request, response):
        if hasattr(request, '_rate_limit'):
            limit, remaining = request._rate_limit
            response['X-RateLimit-Limit'] = str(limit)
            response['X-RateLimit-Remaining'] = str(remaining)
        return response


class SecurityHeadersMiddleware(MiddlewareMixin):
    """Add security headers to all responses."""

    def process_response(self, request, response):
        response['X-Content-Type-Options'] = 'nosniff'
        response['X-Frame-Options'] = 'DENY'
        response['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        if request.path.startswith('/api/'):
            response['Cache-Control'] = 'no-store'

        if not settings.DEBUG:
            response['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response


class RequestAuditMiddleware(MiddlewareMixin):
    """
    One `[AUDIT]` line per call to a code or order endpoint, plus any
    other failed API call. Request bodies are never logged: they carry
    plaintext codes and passwords.
    """

    def process_response(self, request, response):
        path = request.path
        endpoint = match_code_endpoint(path) if request.method != 'GET' else None

        if endpoint is None:
            if not path.startswith('/api/') or response.status_code < 400:
                return response
            event, obj = 'api_error', None
        else:
            event, obj = endpoint

        user = getattr(request, 'user', None)
        user_id = str(user.pk) if user is not None and user.is_authenticated else 'anonymous'

        message = (
            f"[AUDIT] {event} {request.method} {path} status={response.status_code} "
            f"user={user_id} ip={get_client_ip(request)}"
        )
        if obj:
            message += f" ref={obj[:8]}"

        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)

        return response
