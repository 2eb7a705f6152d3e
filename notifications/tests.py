"""
FLUX Notifications Tests
========================

Tests for:
1. Phone number formatting (E.164)
2. Delivery code SMS template
3. Twilio SMS gateway (client mocked)
"""

from unittest.mock import patch, MagicMock
from django.test import SimpleTestCase, override_settings
from twilio.base.exceptions import TwilioRestException

from notifications.sms_service import (
    TwilioSMSService, build_delivery_code_message, format_phone_number,
)


TWILIO_SETTINGS = {
    'TWILIO_ACCOUNT_SID': 'ACtest',
    'TWILIO_AUTH_TOKEN': 'token',
    'TWILIO_PHONE_NUMBER': '+15005550006',
}


class TestFormatPhoneNumber(SimpleTestCase):

    def test_local_numbers_get_country_code(self):
        self.assertEqual(format_phone_number('(11) 98765-4321'), '+5511987654321')
        self.assertEqual(format_phone_number('1132654321'), '+551132654321')

    def test_international_numbers_kept(self):
        self.assertEqual(format_phone_number('+55 11 98765-4321'), '+5511987654321')
        self.assertEqual(format_phone_number('5511987654321'), '+5511987654321')

    def test_custom_country_code(self):
        self.assertEqual(format_phone_number('2025550143', country_code='1'), '+12025550143')

    def test_invalid_numbers(self):
        for raw in ('', None, '12345', '+44 20 7946 0958 1234'):
            with self.assertRaises(ValueError):
                format_phone_number(raw)


class TestDeliveryCodeMessage(SimpleTestCase):

    def test_message_contains_name_and_code(self):
        text = build_delivery_code_message('Maria', 'K7P2QX')
        self.assertIn('Olá Maria!', text)
        self.assertIn('Código de validação: K7P2QX', text)
        self.assertIn('APENAS ao entregador', text)

    def test_default_customer_name(self):
        self.assertIn('Olá Cliente!', build_delivery_code_message(None, 'K7P2QX'))
        self.assertIn('Olá Cliente!', build_delivery_code_message('  ', 'K7P2QX'))


class TestTwilioSMSService(SimpleTestCase):

    def setUp(self):
        TwilioSMSService.reset_client()

    def tearDown(self):
        TwilioSMSService.reset_client()

    @override_settings(TWILIO_ACCOUNT_SID='', TWILIO_AUTH_TOKEN='', TWILIO_PHONE_NUMBER='')
    def test_missing_credentials(self):
        sid, error = TwilioSMSService.send_sms('11987654321', 'hello')
        self.assertIsNone(sid)
        self.assertEqual(error, 'Twilio credentials not configured')

    @override_settings(**TWILIO_SETTINGS)
    @patch('twilio.rest.Client')
    def test_send_success(self, mock_client_cls):
        mock_client = MagicMock()
        mock_client.messages.create.return_value = MagicMock(sid='SM123')
        mock_client_cls.return_value = mock_client

        sid, error = TwilioSMSService.send_sms('11987654321', 'hello')

        self.assertEqual(sid, 'SM123')
        self.assertIsNone(error)
        mock_client_cls.assert_called_once_with('ACtest', 'token')
        mock_client.messages.create.assert_called_once_with(
            from_='+15005550006', to='+5511987654321', body='hello'
        )

    @override_settings(**TWILIO_SETTINGS)
    @patch('twilio.rest.Client')
    def test_provider_rejection(self, mock_client_cls):
        mock_client_cls.return_value.messages.create.side_effect = TwilioRestException(
            status=400, uri='/Messages', msg='Invalid To number', code=21211
        )

        sid, error = TwilioSMSService.send_sms('11987654321', 'hello')

        self.assertIsNone(sid)
        self.assertEqual(error, 'Invalid To number')

    @override_settings(**TWILIO_SETTINGS)
    @patch('twilio.rest.Client')
    def test_transport_failure(self, mock_client_cls):
        mock_client_cls.return_value.messages.create.side_effect = ConnectionError('timeout')

        sid, error = TwilioSMSService.send_sms('11987654321', 'hello')

        self.assertIsNone(sid)
        self.assertEqual(error, 'timeout')

    @override_settings(**TWILIO_SETTINGS)
    @patch('twilio.rest.Client')
    def test_invalid_number_never_reaches_provider(self, mock_client_cls):
        sid, error = TwilioSMSService.send_sms('123', 'hello')

        self.assertIsNone(sid)
        self.assertIn('inválido', error)
        mock_client_cls.return_value.messages.create.assert_not_called()
