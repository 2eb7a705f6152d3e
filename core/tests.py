"""
FLUX Core Tests
===============

Tests for:
1. Custom User Model (creation, roles)
2. Role permissions and the current-user endpoint
3. Security Middleware (rate limiting, headers)
4. Health checks
"""

import uuid
from django.contrib.auth.models import AnonymousUser
from django.core.cache import cache
from django.test import TestCase, RequestFactory, override_settings
from rest_framework.test import APIClient

from core.middleware import RateLimitMiddleware, get_client_ip, match_code_endpoint
from core.models import User, UserRole
from core.views import IsCompanyOrAdmin, IsDriver


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def setUp(self):
        """Create test users for each role."""
        self.admin = User.objects.create_user(
            phone_number='+5511990000001',
            password='testpass123',
            role=UserRole.ADMIN,
            full_name='Admin Test',
        )
        self.driver = User.objects.create_user(
            phone_number='+5511990000002',
            password='testpass123',
            role=UserRole.DRIVER,
            full_name='Driver Test',
        )
        self.company = User.objects.create_user(
            phone_number='+5511990000003',
            password='testpass123',
            role=UserRole.COMPANY,
            full_name='Company Test',
        )

    # ==========================================
    # User Creation Tests
    # ==========================================

    def test_user_creation_with_phone(self):
        """User should be created with phone number as identifier."""
        self.assertEqual(self.driver.phone_number, '+5511990000002')
        self.assertTrue(self.driver.check_password('testpass123'))

    def test_user_uuid_primary_key(self):
        self.assertIsInstance(self.driver.id, uuid.UUID)

    def test_user_without_password_cannot_log_in(self):
        user = User.objects.create_user(phone_number='+5511990000009', role=UserRole.DRIVER)
        self.assertFalse(user.has_usable_password())

    def test_phone_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(phone_number='')

    def test_default_role_is_company(self):
        user = User.objects.create_user(phone_number='+5511990000010')
        self.assertEqual(user.role, UserRole.COMPANY)

    def test_role_properties(self):
        self.assertTrue(self.driver.is_driver)
        self.assertFalse(self.company.is_driver)
        self.assertTrue(self.company.is_company)
        self.assertTrue(self.admin.is_platform_admin)
        self.assertFalse(self.driver.is_platform_admin)

    def test_superuser_is_platform_admin(self):
        superuser = User.objects.create_superuser(
            phone_number='+5511990000011',
            password='adminpass123',
        )
        self.assertTrue(superuser.is_staff)
        self.assertEqual(superuser.role, UserRole.ADMIN)
        self.assertTrue(superuser.is_platform_admin)


class TestCurrentUserEndpoint(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(
            phone_number='+5511990000005',
            password='testpass123',
            role=UserRole.DRIVER,
            full_name='Driver Test',
        )
        self.api = APIClient()
        cache.clear()

    def test_me_requires_auth(self):
        response = self.api.get('/api/users/me/')
        self.assertEqual(response.status_code, 401)

    def test_me_returns_profile(self):
        self.api.force_authenticate(user=self.user)
        response = self.api.get('/api/users/me/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['role'], UserRole.DRIVER)
        self.assertNotIn('password', response.data)

    def test_obtain_jwt_token(self):
        response = self.api.post(
            '/api/auth/token/',
            {'phone_number': '+5511990000005', 'password': 'testpass123'},
            format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)


class TestSecurityMiddleware(TestCase):
    """Tests for security middleware behavior."""

    def setUp(self):
        cache.clear()
        self.factory = RequestFactory()

    def test_health_endpoint_accessible(self):
        """Health check should be accessible without auth."""
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], 'ok')
        self.assertEqual(data['service'], 'flux')

    def test_readiness_endpoint_reports_checks(self):
        response = self.client.get('/health/ready/')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['checks']['database']['status'], 'healthy')
        self.assertEqual(data['checks']['cache']['status'], 'healthy')

    def test_security_headers_present(self):
        """Response should contain security headers."""
        response = self.client.get('/health/')
        self.assertEqual(response['X-Content-Type-Options'], 'nosniff')
        self.assertEqual(response['X-Frame-Options'], 'DENY')
        self.assertEqual(response['Referrer-Policy'], 'strict-origin-when-cross-origin')

    def test_client_ip_from_forwarded_header(self):
        request = self.factory.get('/', HTTP_X_FORWARDED_FOR='203.0.113.9, 10.0.0.1')
        self.assertEqual(get_client_ip(request), '203.0.113.9')

        request = self.factory.get('/', REMOTE_ADDR='198.51.100.4')
        self.assertEqual(get_client_ip(request), '198.51.100.4')

    def test_validation_endpoint_rate_limit(self):
        middleware = RateLimitMiddleware(lambda request: None)
        path = f'/api/legs/{uuid.uuid4()}/validate/'

        for _ in range(10):
            self.assertIsNone(middleware.process_request(self.factory.post(path)))

        response = middleware.process_request(self.factory.post(path))
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response['X-RateLimit-Limit'], '10')

    def test_rate_limit_is_per_ip(self):
        middleware = RateLimitMiddleware(lambda request: None)
        path = f'/api/legs/{uuid.uuid4()}/validate/'

        for _ in range(10):
            middleware.process_request(self.factory.post(path, REMOTE_ADDR='10.0.0.1'))

        self.assertIsNone(
            middleware.process_request(self.factory.post(path, REMOTE_ADDR='10.0.0.2'))
        )

    @override_settings(DEBUG=True, RATE_LIMIT_IN_DEBUG=False)
    def test_rate_limit_disabled_in_debug(self):
        middleware = RateLimitMiddleware(lambda request: None)
        path = f'/api/legs/{uuid.uuid4()}/validate/'

        for _ in range(15):
            self.assertIsNone(middleware.process_request(self.factory.post(path)))

    def test_non_api_paths_not_limited(self):
        middleware = RateLimitMiddleware(lambda request: None)
        self.assertIsNone(middleware._get_rate_limit('/health/'))
        self.assertEqual(middleware._get_rate_limit('/api/orders/'), ('api', 100, 60))

    def test_validation_limit_shared_across_legs(self):
        """Guesses spread over many legs still hit the same per-IP ceiling."""
        middleware = RateLimitMiddleware(lambda request: None)

        for _ in range(10):
            path = f'/api/legs/{uuid.uuid4()}/validate/'
            self.assertIsNone(middleware.process_request(self.factory.post(path)))

        response = middleware.process_request(
            self.factory.post(f'/api/legs/{uuid.uuid4()}/validate/')
        )
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response['Retry-After'], '300')

        # Other API buckets are untouched
        self.assertIsNone(middleware.process_request(self.factory.get('/api/orders/')))

    def test_remaining_header(self):
        response = self.client.get('/api/users/me/')
        self.assertEqual(response['X-RateLimit-Limit'], '100')
        self.assertEqual(response['X-RateLimit-Remaining'], '99')

    def test_api_responses_not_cached(self):
        response = self.client.get('/api/users/me/')
        self.assertEqual(response['Cache-Control'], 'no-store')

        response = self.client.get('/health/')
        self.assertNotEqual(response.get('Cache-Control'), 'no-store')

    # ==========================================
    # Audit logging
    # ==========================================

    def test_code_endpoints_matched(self):
        leg_id = str(uuid.uuid4())
        self.assertEqual(
            match_code_endpoint(f'/api/legs/{leg_id}/validate/'),
            ('code_validation', leg_id)
        )
        self.assertEqual(
            match_code_endpoint(f'/api/orders/{leg_id}/dispatch-codes/'),
            ('code_dispatch', leg_id)
        )
        self.assertEqual(match_code_endpoint('/api/auth/token/'), ('auth_token', None))
        self.assertIsNone(match_code_endpoint(f'/api/legs/{leg_id}/'))

    def test_validation_call_audited_without_body(self):
        leg_id = str(uuid.uuid4())

        with self.assertLogs('flux.security', level='INFO') as logs:
            self.client.post(
                f'/api/legs/{leg_id}/validate/', {'code': 'K7P2QX'},
                content_type='application/json'
            )

        self.assertEqual(len(logs.records), 1)
        line = logs.output[0]
        self.assertIn('[AUDIT] code_validation POST', line)
        self.assertIn('status=401', line)
        self.assertIn('user=anonymous', line)
        self.assertIn(f'ref={leg_id[:8]}', line)
        self.assertNotIn('K7P2QX', line)

    def test_successful_reads_not_audited(self):
        with self.assertNoLogs('flux.security', level='INFO'):
            self.client.get('/health/')


class TestRolePermissions(TestCase):

    def setUp(self):
        self.factory = RequestFactory()
        self.driver = User.objects.create_user(
            phone_number='+5511990000002', role=UserRole.DRIVER
        )
        self.company = User.objects.create_user(
            phone_number='+5511990000003', role=UserRole.COMPANY
        )
        self.admin = User.objects.create_user(
            phone_number='+5511990000001', role=UserRole.ADMIN
        )

    def allowed(self, permission, user):
        request = self.factory.get('/')
        request.user = user
        return permission.has_permission(request, None)

    def test_driver_permission(self):
        self.assertTrue(self.allowed(IsDriver(), self.driver))
        self.assertFalse(self.allowed(IsDriver(), self.company))
        self.assertFalse(self.allowed(IsDriver(), self.admin))

    def test_company_or_admin_permission(self):
        self.assertTrue(self.allowed(IsCompanyOrAdmin(), self.company))
        self.assertTrue(self.allowed(IsCompanyOrAdmin(), self.admin))
        self.assertFalse(self.allowed(IsCompanyOrAdmin(), self.driver))

    def test_anonymous_refused(self):
        self.assertFalse(self.allowed(IsDriver(), AnonymousUser()))
        self.assertFalse(self.allowed(IsCompanyOrAdmin(), AnonymousUser()))
