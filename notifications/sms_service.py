"""
Twilio SMS Service for FLUX

Delivers the plaintext validation code of a delivery leg to the end
customer. The service never raises for provider failures: callers get a
``(sid, error)`` pair and decide what to record.
"""

import logging
from typing import Optional, Tuple
from django.conf import settings
from twilio.base.exceptions import TwilioException, TwilioRestException

logger = logging.getLogger(__name__)


DELIVERY_CODE_TEMPLATE = (
    "🔐 FLUX - Código de Entrega\n"
    "\n"
    "Olá {customer_name}! Seu pedido está a caminho.\n"
    "\n"
    "Código de validação: {code}\n"
    "\n"
    "⚠️ Informe este código APENAS ao entregador no momento da entrega.\n"
    "\n"
    "Não compartilhe com ninguém!"
)


def build_delivery_code_message(customer_name: Optional[str], code: str) -> str:
    """Render the SMS sent to the customer of a delivery leg."""
    return DELIVERY_CODE_TEMPLATE.format(
        customer_name=(customer_name or '').strip() or 'Cliente',
        code=code,
    )


def format_phone_number(raw: str, country_code: Optional[str] = None) -> str:
    """
    Normalize a customer phone number to E.164.

    Local numbers (DDD + number, 10 or 11 digits) get the default country
    code prepended; numbers already carrying it are kept as they are.

    Raises:
        ValueError: if the number cannot be interpreted
    """
    country_code = country_code or getattr(settings, 'SMS_DEFAULT_COUNTRY_CODE', '55')
    digits = ''.join(ch for ch in (raw or '') if ch.isdigit())

    if len(digits) in (10, 11):
        return f"+{country_code}{digits}"
    if digits.startswith(country_code) and len(digits) in (
        len(country_code) + 10, len(country_code) + 11
    ):
        return f"+{digits}"

    raise ValueError(f"Número de telefone inválido: {raw!r}")


class TwilioSMSService:
    """
    Twilio Programmable SMS integration.

    The REST client is created lazily from TWILIO_ACCOUNT_SID and
    TWILIO_AUTH_TOKEN and reused across calls.
    """

    _client = None

    @classmethod
    def is_configured(cls) -> bool:
        return all([
            getattr(settings, 'TWILIO_ACCOUNT_SID', ''),
            getattr(settings, 'TWILIO_AUTH_TOKEN', ''),
            getattr(settings, 'TWILIO_PHONE_NUMBER', ''),
        ])

    @classmethod
    def get_client(cls):
        """Get or create Twilio client (singleton pattern)."""
        if cls._client is None:
            from twilio.rest import Client
            cls._client = Client(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN
            )
        return cls._client

    @classmethod
    def reset_client(cls):
        cls._client = None

    @classmethod
    def send_sms(cls, to_number: str, text: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Send an SMS via Twilio.

        Args:
            to_number: Recipient phone number, local or international
            text: Message body

        Returns:
            (message_sid, None) on success, (None, error_message) on failure
        """
        if not cls.is_configured():
            logger.error("[SMS] Missing TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN or TWILIO_PHONE_NUMBER")
            return None, 'Twilio credentials not configured'

        try:
            formatted = format_phone_number(to_number)
        except ValueError as e:
            logger.warning(f"[SMS] {e}")
            return None, str(e)

        try:
            message = cls.get_client().messages.create(
                from_=settings.TWILIO_PHONE_NUMBER,
                to=formatted,
                body=text
            )
        except TwilioRestException as e:
            logger.error(f"[SMS] Twilio rejected message to {formatted}: {e.code} {e.msg}")
            return None, e.msg or f'Twilio error {e.code}'
        except TwilioException as e:
            logger.error(f"[SMS] Failed to send to {formatted}: {e}")
            return None, str(e)
        except Exception as e:
            logger.error(f"[SMS] Transport failure sending to {formatted}: {e}")
            return None, str(e)

        logger.info(f"[SMS] Sent to {formatted}: SID={message.sid}")
        return message.sid, None
