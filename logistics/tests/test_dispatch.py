"""
Tests for delivery code dispatch by SMS.
"""

import uuid
from unittest.mock import patch

from logistics.models import OrderStatus, CodeState
from logistics.services.codes import hash_code
from logistics.services.dispatch import (
    dispatch_codes, find_pending_dispatch_orders,
    DispatchNotFound, DispatchUnauthorized, DispatchResult, LegDispatchResult,
)
from logistics.services.validation import validate_code
from logistics.tests.base import LogisticsTestCase


SEND_SMS = 'logistics.services.dispatch.TwilioSMSService.send_sms'


class TestDispatchCodes(LogisticsTestCase):

    def setUp(self):
        super().setUp()
        self.order = self.make_order()
        self.legs = [
            self.make_leg(self.order, customer_name='Ana', customer_phone='11911110001'),
            self.make_leg(self.order, customer_name='Bruno', customer_phone='11911110002'),
            self.make_leg(self.order, customer_name='Carla', customer_phone=None),
        ]

    @patch(SEND_SMS, return_value=('SM123', None))
    def test_leg_without_phone_fails_others_sent(self, mock_send):
        result = dispatch_codes(self.order.id, self.driver)

        self.assertEqual(result.sent, 2)
        self.assertEqual(result.failed, 1)
        self.assertEqual(result.skipped, 0)
        self.assertEqual(mock_send.call_count, 2)

        failures = [leg for leg in result.legs if not leg.success]
        self.assertEqual(failures[0].leg_id, str(self.legs[2].id))
        self.assertEqual(failures[0].error, 'Sem telefone do cliente')

        for leg in self.legs:
            leg.refresh_from_db()
        self.assertIsNotNone(self.legs[0].code_sent_at)
        self.assertIsNotNone(self.legs[1].code_sent_at)
        self.assertIsNone(self.legs[2].code_sent_at)
        self.assertIsNone(self.legs[2].code_hash)

    @patch(SEND_SMS, return_value=('SM123', None))
    def test_sent_code_matches_stored_hash(self, mock_send):
        dispatch_codes(self.order.id, self.driver)

        phone, text = mock_send.call_args_list[0][0]
        self.assertEqual(phone, '11911110001')
        self.assertIn('Olá Ana!', text)

        leg = self.legs[0]
        leg.refresh_from_db()
        code = text.split('Código de validação: ')[1].split('\n')[0]
        self.assertEqual(leg.code_hash, hash_code(code))
        self.assertEqual(leg.code_state, CodeState.PENDING)
        self.assertTrue(validate_code(leg.id, code.lower(), self.driver).success)

    @patch(SEND_SMS, return_value=('SM123', None))
    def test_second_dispatch_sends_nothing(self, mock_send):
        dispatch_codes(self.order.id, self.driver)
        self.legs[0].refresh_from_db()
        first_sent_at = self.legs[0].code_sent_at
        first_hash = self.legs[0].code_hash

        result = dispatch_codes(self.order.id, self.driver)

        self.assertEqual(mock_send.call_count, 2)
        self.assertEqual(result.sent, 2)
        self.assertEqual(result.skipped, 2)
        self.assertEqual(result.failed, 1)
        self.legs[0].refresh_from_db()
        self.assertEqual(self.legs[0].code_sent_at, first_sent_at)
        self.assertEqual(self.legs[0].code_hash, first_hash)

    def test_failed_sms_leaves_leg_pending_for_retry(self):
        with patch(SEND_SMS, return_value=(None, 'Twilio credentials not configured')):
            result = dispatch_codes(self.order.id, self.driver)

        self.assertEqual(result.sent, 0)
        self.assertEqual(result.failed, 3)
        self.assertEqual(result.legs[0].error, 'Twilio credentials not configured')
        self.legs[0].refresh_from_db()
        self.assertIsNone(self.legs[0].code_sent_at)
        stale_hash = self.legs[0].code_hash

        with patch(SEND_SMS, return_value=('SM999', None)):
            result = dispatch_codes(self.order.id, self.driver)

        self.assertEqual(result.sent, 2)
        self.legs[0].refresh_from_db()
        self.assertIsNotNone(self.legs[0].code_sent_at)
        self.assertNotEqual(self.legs[0].code_hash, stale_hash)

    def test_unexpected_error_on_one_leg_does_not_stop_siblings(self):
        with patch(SEND_SMS, side_effect=[RuntimeError('boom'), ('SM2', None)]):
            result = dispatch_codes(self.order.id, self.driver)

        self.assertEqual(result.sent, 1)
        self.assertEqual(result.failed, 2)
        self.assertEqual(result.legs[0].error, 'boom')
        self.legs[1].refresh_from_db()
        self.assertIsNotNone(self.legs[1].code_sent_at)

    @patch(SEND_SMS, return_value=('SM123', None))
    def test_validated_leg_is_skipped(self, mock_send):
        self.legs[0].code_hash = hash_code('AB12CD')
        self.legs[0].save()
        validate_code(self.legs[0].id, 'AB12CD', self.driver)

        result = dispatch_codes(self.order.id, self.driver)

        self.assertEqual(result.skipped, 1)
        self.assertEqual(result.sent, 2)
        self.assertEqual(result.failed, 1)
        self.legs[0].refresh_from_db()
        self.assertEqual(self.legs[0].code_hash, hash_code('AB12CD'))

    @patch(SEND_SMS, return_value=('SM123', None))
    def test_validated_leg_without_phone_is_skipped_not_failed(self, mock_send):
        carla = self.legs[2]
        carla.code_hash = hash_code('AB12CD')
        carla.save()
        validate_code(carla.id, 'AB12CD', self.driver)

        result = dispatch_codes(self.order.id, self.driver)

        self.assertEqual((result.sent, result.skipped, result.failed), (3, 1, 0))
        carla_result = next(r for r in result.legs if r.leg_id == str(carla.id))
        self.assertTrue(carla_result.success)
        self.assertTrue(carla_result.skipped)
        self.assertIsNone(carla_result.error)
        self.assertEqual(mock_send.call_count, 2)

    @patch(SEND_SMS, return_value=('SM123', None))
    def test_dispatch_resets_attempt_budget(self, mock_send):
        self.legs[0].code_hash = hash_code('AB12CD')
        self.legs[0].validation_attempts = 5
        self.legs[0].save()

        dispatch_codes(self.order.id, self.driver)

        self.legs[0].refresh_from_db()
        self.assertEqual(self.legs[0].validation_attempts, 0)

    # ==========================================
    # Preconditions
    # ==========================================

    def test_unknown_order(self):
        with self.assertRaises(DispatchNotFound):
            dispatch_codes(uuid.uuid4(), self.driver)

    def test_order_not_accepted(self):
        pending = self.make_order(status=OrderStatus.PENDING, driver=None)
        with self.assertRaises(DispatchNotFound):
            dispatch_codes(pending.id, self.driver)

    @patch(SEND_SMS)
    def test_not_assigned_driver(self, mock_send):
        with self.assertRaises(DispatchUnauthorized):
            dispatch_codes(self.order.id, self.other_driver)
        mock_send.assert_not_called()

    # ==========================================
    # Result & catch-up query
    # ==========================================

    def test_result_payload(self):
        result = DispatchResult()
        result.add(LegDispatchResult(leg_id='a', success=True))
        result.add(LegDispatchResult(leg_id='b', success=True, skipped=True))
        result.add(LegDispatchResult(leg_id='c', success=False, error='x'))

        data = result.to_dict()
        self.assertEqual((data['sent'], data['skipped'], data['failed']), (2, 1, 1))
        self.assertEqual(len(data['results']), 3)
        self.assertTrue(data['results'][1]['skipped'])

    @patch(SEND_SMS, return_value=('SM123', None))
    def test_pending_dispatch_orders(self, mock_send):
        self.assertIn(self.order, find_pending_dispatch_orders())

        dispatch_codes(self.order.id, self.driver)

        # Only the phone-less leg remains unsent
        self.assertNotIn(self.order, find_pending_dispatch_orders())
