"""ZeptoMail implementation of NotificationSender for email.

- async httpx via the shared HttpClient
- credentials injected through EmailSettings
- bodies arrive pre-rendered (see services.messages.MessageRenderer)
"""

from typing import Optional

from config import EmailSettings
from infrastructure.http_client import HttpClient
from infrastructure.notifications import DeliveryReceipt, RenderedMessage
from shared.logging import get_logger
from shared.validators import mask_email

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.com/v1.1/email"


class ZeptoMailProvider:
    def __init__(self, settings: EmailSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    async def send(
        self,
        destination: str,
        message: RenderedMessage,
        *,
        recipient_name: Optional[str] = None,
    ) -> DeliveryReceipt:
        if not self._settings.zepto_api_token:
            log.error("zepto_mail_send_failed", reason="token_not_configured")
            return DeliveryReceipt(delivered=False)

        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [
                {
                    "email_address": {
                        "address": destination,
                        "name": recipient_name or destination,
                    }
                }
            ],
            "subject": message.subject,
            "textbody": message.text,
        }
        if message.html:
            payload["htmlbody"] = message.html

        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"

        headers = {"Authorization": token, "Content-Type": "application/json"}
        masked = mask_email(destination)

        try:
            response = await self._http.post(_ZEPTO_API_URL, json=payload, headers=headers)
        except Exception as e:
            log.error(
                "email_send_error",
                to_email=masked,
                subject=message.subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryReceipt(delivered=False)

        if response.status_code in (200, 201, 202):
            log.info("email_sent_success", to_email=masked, subject=message.subject)
            return DeliveryReceipt(delivered=True)

        log.error(
            "email_sent_failed",
            to_email=masked,
            subject=message.subject,
            status_code=response.status_code,
            response=response.text[:200],
        )
        return DeliveryReceipt(delivered=False)
