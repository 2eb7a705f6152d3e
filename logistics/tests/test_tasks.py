"""
Tests for the code dispatch Celery tasks.
"""

import uuid
from unittest.mock import patch

from logistics.tasks import dispatch_delivery_codes, retry_pending_code_dispatch
from logistics.tests.base import LogisticsTestCase


class TestDispatchTasks(LogisticsTestCase):

    @patch('logistics.services.dispatch.TwilioSMSService.send_sms', return_value=('SM1', None))
    def test_dispatch_task_returns_payload(self, mock_send):
        result = dispatch_delivery_codes(str(self.order.id), str(self.driver.pk))

        self.assertTrue(result['success'])
        self.assertEqual(result['sent'], 1)
        self.leg.refresh_from_db()
        self.assertIsNotNone(self.leg.code_sent_at)

    def test_precondition_failure_is_not_retried(self):
        with patch.object(dispatch_delivery_codes, 'retry') as mock_retry:
            result = dispatch_delivery_codes(str(self.order.id), str(self.other_driver.pk))

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Você não é o entregador deste pedido')
        mock_retry.assert_not_called()

    def test_unknown_driver(self):
        result = dispatch_delivery_codes(str(self.order.id), str(uuid.uuid4()))
        self.assertFalse(result['success'])

    @patch('logistics.tasks.dispatch_delivery_codes.delay')
    def test_retry_requeues_pending_orders(self, mock_delay):
        queued = retry_pending_code_dispatch()

        self.assertEqual(queued, 1)
        mock_delay.assert_called_once_with(str(self.order.id), str(self.driver.pk))

    @patch('logistics.tasks.dispatch_delivery_codes.delay')
    def test_retry_ignores_sent_and_validated_legs(self, mock_delay):
        self.leg.validated_at = self.leg.created_at
        self.leg.save()

        self.assertEqual(retry_pending_code_dispatch(), 0)
        mock_delay.assert_not_called()
