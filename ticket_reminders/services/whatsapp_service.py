"""WhatsApp Service - Outbound reminder channel via the WhatsApp Business API

Sends the approved template first and falls back to a plain text message when
the template is rejected (e.g. not yet approved for the account).
"""
import re
from typing import Any, Dict, Optional
import httpx

from ..config.settings import settings
from ..domain.enums import RecipientType
from ..domain.errors import ChannelError, ChannelNotConfiguredError, RecipientNotFoundError
from ..domain.models import ChannelReceipt, OutboundMessage
from ..repositories.interfaces import ContactDirectory
from ..utils.logger import get_logger

logger = get_logger(__name__)


def format_phone_number(phone: str, country_code: str = "91") -> str:
    """
    Normalize a phone number to WhatsApp format (country code, digits only)

    Examples:
        >>> format_phone_number("+91 98765-43210")
        '919876543210'
        >>> format_phone_number("09876543210")
        '919876543210'
        >>> format_phone_number("9876543210")
        '919876543210'
    """
    cleaned = re.sub(r"\D", "", phone)

    if cleaned.startswith("0"):
        cleaned = country_code + cleaned[1:]

    if len(cleaned) == 10:
        cleaned = country_code + cleaned

    return cleaned


class WhatsAppService:
    """Notification channel backed by the WhatsApp Business Cloud API"""

    def __init__(
        self,
        contacts: ContactDirectory,
        api_url: Optional[str] = None,
        access_token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        language_code: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.contacts = contacts
        self.api_url = (api_url or settings.whatsapp_api_url).rstrip("/")
        self.access_token = access_token if access_token is not None else settings.whatsapp_access_token
        self.phone_number_id = phone_number_id if phone_number_id is not None else settings.whatsapp_phone_number_id
        self.language_code = language_code or settings.whatsapp_language_code
        self.timeout = timeout or settings.whatsapp_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    async def send(
        self,
        recipient_type: RecipientType,
        recipient_ref: str,
        message: OutboundMessage
    ) -> ChannelReceipt:
        """
        Send a reminder to a user or agency

        Raises:
            ChannelNotConfiguredError: Credentials missing
            RecipientNotFoundError: Recipient has no phone on file
            ChannelError: API rejected the message or the network failed
        """
        if not self.is_configured:
            raise ChannelNotConfiguredError("WhatsApp API not configured")

        phone = await self.contacts.get_phone(recipient_type, recipient_ref)
        if not phone:
            raise RecipientNotFoundError(
                f"No phone number for {recipient_type.value.lower()} {recipient_ref}",
                details={"recipient_ref": recipient_ref}
            )

        to = format_phone_number(phone, settings.default_country_code)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                message_id = await self._post(client, self._template_payload(to, message))
                return ChannelReceipt(message_id=message_id)
            except ChannelError as e:
                if "template" not in e.message.lower():
                    raise
                logger.info(
                    "Template rejected, trying text message fallback",
                    extra={"ticket_ref": message.ticket_ref, "recipient_ref": recipient_ref}
                )

            message_id = await self._post(client, self._text_payload(to, message))
            return ChannelReceipt(message_id=message_id, used_fallback=True)

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> Optional[str]:
        url = f"{self.api_url}/{self.phone_number_id}/messages"
        try:
            response = await client.post(
                url,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json"
                },
                json=payload
            )
        except httpx.HTTPError as e:
            raise ChannelError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        messages = data.get("messages") or []
        if response.is_success and messages:
            return messages[0].get("id")

        error = data.get("error") or {}
        raise ChannelError(
            error.get("message") or f"WhatsApp API error: {response.status_code}",
            details={"status_code": response.status_code, "error_code": str(error.get("code", ""))}
        )

    def _template_payload(self, to: str, message: OutboundMessage) -> Dict[str, Any]:
        template: Dict[str, Any] = {
            "name": message.template_name,
            "language": {"code": self.language_code},
        }
        if message.template_params:
            template["components"] = [{
                "type": "body",
                "parameters": [
                    {"type": "text", "text": value}
                    for value in message.template_params.values()
                ]
            }]

        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "template",
            "template": template,
        }

    @staticmethod
    def _text_payload(to: str, message: OutboundMessage) -> Dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": message.fallback_text},
        }
