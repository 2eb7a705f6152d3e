"""
Concurrent redemption of one delivery leg against a real row lock.
"""

import threading
from decimal import Decimal

from django.db import connection
from django.test import TransactionTestCase, skipUnlessDBFeature
from django.utils import timezone

from core.models import User, UserRole
from logistics.models import Order, OrderStatus, DeliveryLeg, DeliveryAuditLog, MAX_VALIDATION_ATTEMPTS
from logistics.services.codes import hash_code
from logistics.services.validation import validate_code, ValidationOutcome


@skipUnlessDBFeature('has_select_for_update')
class TestConcurrentValidation(TransactionTestCase):

    def setUp(self):
        self.company = User.objects.create_user(
            phone_number='+5511990000001',
            password='testpass123',
            role=UserRole.COMPANY,
            full_name='Loja Teste',
        )
        self.driver = User.objects.create_user(
            phone_number='+5511990000002',
            password='testpass123',
            role=UserRole.DRIVER,
            full_name='Entregador X',
        )
        order = Order.objects.create(
            company=self.company,
            driver=self.driver,
            status=OrderStatus.ACCEPTED,
            total_value=Decimal('25.00'),
            accepted_at=timezone.now(),
        )
        self.leg = DeliveryLeg.objects.create(
            order=order,
            pickup_address='Rua Augusta, 100',
            dropoff_address='Av. Paulista, 1578',
            customer_name='Maria',
            customer_phone='11987654321',
            code_hash=hash_code('AB12CD'),
            validation_attempts=MAX_VALIDATION_ATTEMPTS - 1,
        )

    def _submit_together(self, codes):
        barrier = threading.Barrier(len(codes))
        outcomes = []
        errors = []

        def submit(code):
            try:
                barrier.wait(timeout=5)
                outcomes.append(validate_code(self.leg.id, code, self.driver).outcome)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=submit, args=(code,)) for code in codes]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(errors, [])
        return outcomes

    def test_last_attempt_is_spent_once(self):
        outcomes = self._submit_together(['ZZZZZZ', 'YYYYYY'])

        self.leg.refresh_from_db()
        self.assertEqual(self.leg.validation_attempts, MAX_VALIDATION_ATTEMPTS)
        self.assertEqual(DeliveryAuditLog.objects.filter(leg=self.leg).count(), 1)
        self.assertCountEqual(
            outcomes,
            [ValidationOutcome.MISMATCH, ValidationOutcome.ATTEMPTS_EXCEEDED]
        )

    def test_correct_and_wrong_code_race(self):
        outcomes = self._submit_together(['AB12CD', 'ZZZZZZ'])

        self.leg.refresh_from_db()
        self.assertEqual(self.leg.validation_attempts, MAX_VALIDATION_ATTEMPTS)
        self.assertEqual(DeliveryAuditLog.objects.filter(leg=self.leg).count(), 1)
        self.assertEqual(len(outcomes), 2)
        # Whichever request takes the lock first decides the leg
        if ValidationOutcome.VALIDATED in outcomes:
            self.assertIsNotNone(self.leg.validated_at)
            self.assertIn(ValidationOutcome.ALREADY_VALIDATED, outcomes)
        else:
            self.assertIsNone(self.leg.validated_at)
            self.assertCountEqual(
                outcomes,
                [ValidationOutcome.MISMATCH, ValidationOutcome.ATTEMPTS_EXCEEDED]
            )
