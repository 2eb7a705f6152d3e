"""
Tests for delivery code redemption and (re)configuration.
"""

import uuid
from unittest.mock import patch

from django.db import DatabaseError

from logistics.models import DeliveryLeg, DeliveryAuditLog, CodeState, MAX_VALIDATION_ATTEMPTS
from logistics.services.codes import hash_code, normalize_code
from logistics.services.validation import (
    validate_code, set_code_hash, issue_code, get_audit_history,
    ValidationOutcome, CodeAlreadyValidated,
)
from logistics.tests.base import LogisticsTestCase


class TestValidateCode(LogisticsTestCase):

    def refresh(self):
        self.leg.refresh_from_db()
        return self.leg

    # ==========================================
    # Happy path
    # ==========================================

    def test_correct_code_any_casing_validates(self):
        result = validate_code(self.leg.id, 'ab12cd', self.driver)

        self.assertTrue(result.success)
        self.assertEqual(result.outcome, ValidationOutcome.VALIDATED)
        self.assertEqual(result.message, 'Código validado com sucesso!')

        leg = self.refresh()
        self.assertIsNotNone(leg.validated_at)
        self.assertEqual(leg.validation_attempts, 1)
        self.assertEqual(leg.code_state, CodeState.VALIDATED)

        logs = list(DeliveryAuditLog.objects.filter(leg=leg))
        self.assertEqual(len(logs), 1)
        self.assertTrue(logs[0].success)
        self.assertEqual(logs[0].attempted_code, 'AB12CD')
        self.assertEqual(logs[0].driver, self.driver)

    def test_audit_entry_keeps_request_metadata(self):
        validate_code(self.leg.id, 'wrong1', self.driver,
                      ip_address='10.0.0.7', user_agent='FluxDriver/2.1')

        log = DeliveryAuditLog.objects.get(leg=self.leg)
        self.assertEqual(log.ip_address, '10.0.0.7')
        self.assertEqual(log.user_agent, 'FluxDriver/2.1')
        self.assertEqual(log.attempted_code, 'WRONG1')
        self.assertFalse(log.success)

    # ==========================================
    # Attempt ceiling
    # ==========================================

    def test_five_failures_then_locked(self):
        for expected_remaining in (4, 3, 2, 1, 0):
            result = validate_code(self.leg.id, 'ZZZZZZ', self.driver)
            self.assertFalse(result.success)
            self.assertEqual(result.outcome, ValidationOutcome.MISMATCH)
            self.assertEqual(result.remaining_attempts, expected_remaining)
            self.assertIn(f'Restam {expected_remaining}', result.message)

        leg = self.refresh()
        self.assertEqual(leg.validation_attempts, MAX_VALIDATION_ATTEMPTS)
        self.assertEqual(leg.code_state, CodeState.LOCKED)

        # Even the correct code is refused now
        result = validate_code(self.leg.id, 'AB12CD', self.driver)
        self.assertEqual(result.outcome, ValidationOutcome.ATTEMPTS_EXCEEDED)
        self.assertEqual(result.message, 'Limite de tentativas excedido')

        leg = self.refresh()
        self.assertIsNone(leg.validated_at)
        self.assertEqual(leg.validation_attempts, MAX_VALIDATION_ATTEMPTS)
        self.assertEqual(DeliveryAuditLog.objects.filter(leg=leg).count(), 5)

    def test_mismatch_message_singular(self):
        self.leg.validation_attempts = 3
        self.leg.save()

        result = validate_code(self.leg.id, 'ZZZZZZ', self.driver)
        self.assertEqual(result.message, 'Código inválido. Restam 1 tentativa.')

    def test_success_on_last_attempt(self):
        self.leg.validation_attempts = 4
        self.leg.save()

        result = validate_code(self.leg.id, 'AB12CD', self.driver)
        self.assertTrue(result.success)
        self.assertEqual(self.refresh().validation_attempts, 5)

    # ==========================================
    # Terminal state
    # ==========================================

    def test_already_validated_does_not_log_or_increment(self):
        validate_code(self.leg.id, 'AB12CD', self.driver)
        validated_at = self.refresh().validated_at

        for code in ('AB12CD', 'ZZZZZZ'):
            result = validate_code(self.leg.id, code, self.driver)
            self.assertEqual(result.outcome, ValidationOutcome.ALREADY_VALIDATED)
            self.assertEqual(result.message, 'Entrega já foi validada')

        leg = self.refresh()
        self.assertEqual(leg.validated_at, validated_at)
        self.assertEqual(leg.validation_attempts, 1)
        self.assertEqual(DeliveryAuditLog.objects.filter(leg=leg).count(), 1)

    # ==========================================
    # Short-circuits
    # ==========================================

    def test_unknown_leg(self):
        result = validate_code(uuid.uuid4(), 'AB12CD', self.driver)
        self.assertEqual(result.outcome, ValidationOutcome.NOT_FOUND)
        self.assertEqual(result.message, 'Entrega não encontrada')

    def test_malformed_leg_id_is_not_found(self):
        result = validate_code('not-a-uuid', 'AB12CD', self.driver)
        self.assertEqual(result.outcome, ValidationOutcome.NOT_FOUND)

    def test_leg_without_code(self):
        leg = self.make_leg(self.order)
        result = validate_code(leg.id, 'AB12CD', self.driver)

        self.assertEqual(result.outcome, ValidationOutcome.NOT_CONFIGURED)
        self.assertEqual(result.message, 'Código não configurado para esta entrega')
        leg.refresh_from_db()
        self.assertEqual(leg.validation_attempts, 0)

    def test_other_driver_is_unauthorized_without_side_effects(self):
        result = validate_code(self.leg.id, 'AB12CD', self.other_driver)

        self.assertEqual(result.outcome, ValidationOutcome.UNAUTHORIZED)
        self.assertEqual(result.message, 'Você não é o entregador deste pedido')
        leg = self.refresh()
        self.assertEqual(leg.validation_attempts, 0)
        self.assertIsNone(leg.validated_at)
        self.assertFalse(DeliveryAuditLog.objects.filter(leg=leg).exists())

    def test_order_without_driver_rejects_everyone(self):
        order = self.make_order(driver=None)
        leg = self.make_leg(order, code_hash=hash_code('AB12CD'))

        result = validate_code(leg.id, 'AB12CD', self.driver)
        self.assertEqual(result.outcome, ValidationOutcome.UNAUTHORIZED)

    def test_every_compared_attempt_leaves_one_entry(self):
        submissions = ['QQQQQQ', 'ab12cx', ' AB12CD ']
        for code in submissions:
            validate_code(self.leg.id, code, self.driver)

        logs = list(DeliveryAuditLog.objects.filter(leg=self.leg).order_by('created_at'))
        self.assertEqual(len(logs), 3)
        self.assertEqual([log.success for log in logs], [False, False, True])
        self.assertEqual(
            [log.attempted_code for log in logs],
            [normalize_code(code) for code in submissions]
        )

    # ==========================================
    # Store failures
    # ==========================================

    def test_store_error_propagates_and_commits_nothing(self):
        with patch.object(DeliveryAuditLog.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertRaises(DatabaseError):
                validate_code(self.leg.id, 'AB12CD', self.driver)

        leg = self.refresh()
        self.assertEqual(leg.validation_attempts, 0)
        self.assertIsNone(leg.validated_at)


class TestCodeConfiguration(LogisticsTestCase):

    def test_set_code_hash_resets_attempts(self):
        self.leg.validation_attempts = 5
        self.leg.save()

        set_code_hash(self.leg.id, hash_code('NEWC0D'))

        self.leg.refresh_from_db()
        self.assertEqual(self.leg.validation_attempts, 0)
        self.assertEqual(self.leg.code_hash, hash_code('NEWC0D'))
        self.assertTrue(validate_code(self.leg.id, 'newc0d', self.driver).success)

    def test_set_code_hash_rejects_malformed_hash(self):
        with self.assertRaises(ValueError):
            set_code_hash(self.leg.id, 'not-a-hash')
        with self.assertRaises(ValueError):
            set_code_hash(self.leg.id, hash_code('X').upper() + 'A')

    def test_set_code_hash_unknown_leg(self):
        with self.assertRaises(DeliveryLeg.DoesNotExist):
            set_code_hash(uuid.uuid4(), hash_code('AB12CD'))

    def test_set_code_hash_refused_after_validation(self):
        validate_code(self.leg.id, 'AB12CD', self.driver)

        with self.assertRaises(CodeAlreadyValidated):
            set_code_hash(self.leg.id, hash_code('OTHER2'))

        self.leg.refresh_from_db()
        self.assertEqual(self.leg.code_hash, hash_code('AB12CD'))

    def test_issue_code_returns_plaintext_and_stores_hash_only(self):
        leg = self.make_leg(self.order)
        code = issue_code(leg.id)

        leg.refresh_from_db()
        self.assertEqual(leg.code_hash, hash_code(code))
        self.assertNotIn(code, leg.code_hash)
        self.assertEqual(leg.code_state, CodeState.PENDING)


class TestAuditLog(LogisticsTestCase):

    def test_history_newest_first(self):
        validate_code(self.leg.id, 'AAAAAA', self.driver)
        validate_code(self.leg.id, 'AB12CD', self.driver)

        history = list(get_audit_history(self.leg.id))
        self.assertEqual(len(history), 2)
        self.assertGreaterEqual(history[0].created_at, history[1].created_at)

    def test_entries_are_immutable(self):
        validate_code(self.leg.id, 'AAAAAA', self.driver)
        log = DeliveryAuditLog.objects.get(leg=self.leg)

        log.success = True
        with self.assertRaises(ValueError):
            log.save()
        with self.assertRaises(ValueError):
            log.delete()

        log.refresh_from_db()
        self.assertFalse(log.success)
